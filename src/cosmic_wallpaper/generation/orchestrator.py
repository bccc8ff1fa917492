"""Generation orchestrator — turns a request into a persisted artifact.

Steps, in order:
  1. credential gate (pro tier or video only)
  2. dispatch: one synchronous image call, or a video job polled to completion
  3. build the immutable artifact, save it to History, record the prompt

Nothing is persisted unless step 2 produced media. Backend failures are
classified into the ``GenerationError`` taxonomy and never retried here.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog
from pydantic import ValidationError

from cosmic_wallpaper.config import settings
from cosmic_wallpaper.errors import (
    CredentialRequired,
    DownloadFailed,
    EmptyResult,
    GenerationCancelled,
    GenerationError,
    InvalidRequest,
    StoreError,
    TransportError,
)
from cosmic_wallpaper.models.artifact import Artifact, ArtifactKind, AspectRatio, ModelTier
from cosmic_wallpaper.models.request import GenerationRequest, ImageRequest, VideoRequest
from cosmic_wallpaper.observability.feed import LogFeed
from cosmic_wallpaper.store.persistent import Collection, PersistentStore
from cosmic_wallpaper.store.prompt_history import PromptHistoryService
from cosmic_wallpaper.tools.client import GenerationClient, VideoJob
from cosmic_wallpaper.tools.media import MediaPayload

_SOURCE = "GenerationOrchestrator"

VIDEO_ASPECT_RATIOS = (AspectRatio.PORTRAIT, AspectRatio.LANDSCAPE)

# Backend messages meaning the selected key lost access mid-flight
_REVOCATION_SIGNATURES = (
    "requested entity was not found",
    "permission_denied",
    "api key not valid",
)


def coerce_video_aspect_ratio(ratio: AspectRatio) -> AspectRatio:
    """Nearest ratio the video backend supports (log distance, ties go landscape)."""
    if ratio in VIDEO_ASPECT_RATIOS:
        return ratio
    target = math.log(ratio.ratio)
    portrait, landscape = (abs(math.log(r.ratio) - target) for r in VIDEO_ASPECT_RATIOS)
    return AspectRatio.PORTRAIT if portrait < landscape - 1e-9 else AspectRatio.LANDSCAPE


def validate_request(request: GenerationRequest | dict) -> GenerationRequest:
    """Validate at the orchestrator boundary, raising ``InvalidRequest``."""
    try:
        if isinstance(request, GenerationRequest):
            # Re-run validation; model_copy/model_construct skip it
            return GenerationRequest.model_validate(request.model_dump())
        return GenerationRequest.model_validate(request)
    except ValidationError as exc:
        raise InvalidRequest(str(exc)) from exc


def is_credential_rejection(exc: BaseException) -> bool:
    if getattr(exc, "code", None) in (401, 403):
        return True
    message = str(exc).lower()
    return any(sig in message for sig in _REVOCATION_SIGNATURES)


@dataclass(frozen=True)
class GenerationResult:
    """The new artifact; ``saved`` is False when it could not be written to History."""

    artifact: Artifact
    saved: bool = True
    save_error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return not self.saved


class GenerationOrchestrator:
    def __init__(
        self,
        client: GenerationClient,
        store: PersistentStore,
        prompts: PromptHistoryService,
        *,
        feed: LogFeed | None = None,
        image_models: Optional[dict[ModelTier, str]] = None,
        video_model: Optional[str] = None,
        poll_interval: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = client
        self._store = store
        self._prompts = prompts
        self.image_models = image_models or {
            ModelTier.STANDARD: settings.standard_image_model,
            ModelTier.PRO: settings.pro_image_model,
        }
        self.video_model = video_model or settings.video_model
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.video_poll_interval_sec
        )
        self._sleep = sleep
        self._log = (
            feed.logger(_SOURCE) if feed else structlog.get_logger().bind(source=_SOURCE)
        )

    async def generate(
        self,
        request: GenerationRequest | dict,
        *,
        cancel: Optional[asyncio.Event] = None,
    ) -> GenerationResult:
        """Produce, persist and return a new artifact.

        Args:
            request: The generation request (a dict is validated first).
            cancel: Optional event; once set, the video poll loop is abandoned
                with ``GenerationCancelled``. The backend job keeps running.

        Raises:
            InvalidRequest: The request failed validation.
            CredentialRequired: No credential, selection cancelled, or revoked.
            EmptyResult: The backend returned no media.
            DownloadFailed: The finished video could not be fetched.
            TransportError: Any other backend failure.
        """
        request = validate_request(request)
        self._log.info(
            "generate.start",
            kind=request.kind.value,
            tier=request.tier.value,
            provenance=request.provenance.value,
            aspect_ratio=request.aspect_ratio.value,
        )

        await self._credential_gate(request)

        try:
            if request.kind is ArtifactKind.VIDEO:
                media, model_identifier, aspect_ratio = await self._produce_video(request, cancel)
            else:
                media, model_identifier, aspect_ratio = await self._produce_image(request)
        except GenerationError as exc:
            self._log.error("generate.failed", error_type=type(exc).__name__, error=str(exc))
            raise
        except Exception as exc:
            if is_credential_rejection(exc):
                self._log.error("generate.credential_revoked", error=str(exc))
                await self._select_credential()
                raise CredentialRequired(
                    "Model access revoked or unavailable. Select a key with billing enabled."
                ) from exc
            self._log.error("generate.transport_error", error=str(exc))
            raise TransportError(str(exc) or type(exc).__name__) from exc

        artifact = Artifact.create(
            media_ref=media.to_data_uri(),
            prompt=request.recorded_prompt,
            aspect_ratio=aspect_ratio,
            model_identifier=model_identifier,
            kind=request.kind,
            categories=request.categories,
        )
        return await self._persist(artifact, request.prompt)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _credential_gate(self, request: GenerationRequest) -> None:
        if request.tier is not ModelTier.PRO and request.kind is not ArtifactKind.VIDEO:
            return
        try:
            has_key = await self._client.has_credential()
        except Exception as exc:
            raise TransportError(f"credential check failed: {exc}") from exc
        if has_key:
            return
        self._log.info("generate.credential_required", tier=request.tier.value)
        await self._select_credential()

    async def _select_credential(self) -> None:
        try:
            await self._client.select_credential()
        except CredentialRequired:
            raise
        except Exception as exc:
            raise CredentialRequired(f"credential selection failed: {exc}") from exc

    async def _produce_image(
        self, request: GenerationRequest
    ) -> tuple[MediaPayload, str, AspectRatio]:
        model = self.image_models[request.tier]
        image_request = ImageRequest(
            prompt=request.prompt,
            aspect_ratio=request.aspect_ratio,
            model=model,
            image_size=request.image_size if request.tier is ModelTier.PRO else None,
            source_image=_payload(request.source_image),
            mask_image=_payload(request.mask_image),
        )
        media = await self._client.generate_image(image_request)
        if media is None or not media.data:
            raise EmptyResult("The engine returned an empty response. Try a more descriptive prompt.")
        return media, model, request.aspect_ratio

    async def _produce_video(
        self, request: GenerationRequest, cancel: Optional[asyncio.Event]
    ) -> tuple[MediaPayload, str, AspectRatio]:
        aspect_ratio = coerce_video_aspect_ratio(request.aspect_ratio)
        if aspect_ratio is not request.aspect_ratio:
            self._log.info(
                "generate.video.aspect_ratio_coerced",
                requested=request.aspect_ratio.value,
                used=aspect_ratio.value,
            )

        job = await self._client.start_video_job(
            VideoRequest(
                prompt=request.prompt,
                aspect_ratio=aspect_ratio,
                model=self.video_model,
                source_image=_payload(request.source_image),
            )
        )
        job = await self._wait_for_job(job, cancel)

        if job.error:
            raise TransportError(f"Video generation failed: {job.error}")
        if not job.result_uri:
            raise EmptyResult("Video generation failed: no download link provided.")

        try:
            media = await self._client.fetch_media(job.result_uri)
        except Exception as exc:
            raise DownloadFailed(f"Failed to download video: {exc}") from exc
        if not media.data:
            raise DownloadFailed("Downloaded video was empty.")
        return media, self.video_model, aspect_ratio

    async def _wait_for_job(self, job: VideoJob, cancel: Optional[asyncio.Event]) -> VideoJob:
        polls = 0
        while not job.done:
            await self._sleep(self.poll_interval)
            if cancel is not None and cancel.is_set():
                self._log.warning("generate.video.cancelled", job=job.name, polls=polls)
                raise GenerationCancelled(f"Stopped waiting for video job {job.name}")
            job = await self._client.poll_video_job(job)
            polls += 1
            self._log.debug("generate.video.polled", job=job.name, polls=polls, done=job.done)
        self._log.info("generate.video.done", job=job.name, polls=polls)
        return job

    async def _persist(self, artifact: Artifact, prompt: str) -> GenerationResult:
        saved, save_error = True, None
        try:
            await self._store.put(Collection.HISTORY, artifact)
        except StoreError as exc:
            # The artifact stays usable in memory; the caller reports the degraded save
            saved, save_error = False, str(exc)
            self._log.warning("generate.history_save_failed", id=artifact.id, error=save_error)

        if prompt.strip():
            try:
                await self._prompts.record(prompt)
            except StoreError as exc:
                self._log.warning("generate.prompt_record_failed", error=str(exc))

        self._log.info("generate.done", id=artifact.id, kind=artifact.kind.value, saved=saved)
        return GenerationResult(artifact=artifact, saved=saved, save_error=save_error)


def _payload(uri: Optional[str]) -> Optional[MediaPayload]:
    return MediaPayload.from_data_uri(uri) if uri is not None else None
