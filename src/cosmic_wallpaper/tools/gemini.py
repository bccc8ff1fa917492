"""Gemini image and Veo video generation — async client."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Sequence

import httpx
import structlog
from google import genai
from google.genai import types

from cosmic_wallpaper.config import Settings, settings
from cosmic_wallpaper.errors import CredentialRequired
from cosmic_wallpaper.models.request import ImageRequest, VideoRequest
from cosmic_wallpaper.observability.feed import LogFeed
from cosmic_wallpaper.tools.client import VideoJob
from cosmic_wallpaper.tools.media import MediaPayload

_SOURCE = "GeminiClient"

DEFAULT_IMAGE_PROMPT = "Generate a highly detailed desktop wallpaper."
DEFAULT_VIDEO_PROMPT = "A cinematic journey through time and space"
DEFAULT_ANIMATE_PROMPT = "Cinematic movement"
FALLBACK_SUGGESTION = "A sleek neon cityscape at night, cinematic lighting, 4k"
EMPTY_SUGGESTION = "A beautiful cosmic horizon, ethereal lighting, 4k"

# Returns a new API key, or None when the user cancelled
CredentialSelector = Callable[[], Awaitable[Optional[str]]]


async def reload_key_from_environment() -> Optional[str]:
    """Default selector: re-read the environment / .env file for a key."""
    return Settings().gemini_api_key or None


class GeminiClient:
    """``GenerationClient`` implementation over the google-genai SDK."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        selector: CredentialSelector = reload_key_from_environment,
        feed: LogFeed | None = None,
        video_resolution: Optional[str] = None,
        prompt_model: Optional[str] = None,
        download_timeout: Optional[float] = None,
    ):
        self._api_key = api_key if api_key is not None else settings.gemini_api_key
        self._selector = selector
        self._client: Optional[genai.Client] = None
        self.video_resolution = video_resolution or settings.video_resolution
        self.prompt_model = prompt_model or settings.prompt_model
        self.download_timeout = download_timeout or settings.download_timeout_sec
        self._log = (
            feed.logger(_SOURCE) if feed else structlog.get_logger().bind(source=_SOURCE)
        )

    def _genai(self) -> genai.Client:
        if not self._api_key:
            raise CredentialRequired("No API key found. Select a key before generating.")
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def has_credential(self) -> bool:
        return bool(self._api_key)

    async def select_credential(self) -> None:
        key = await self._selector()
        if not key:
            self._log.warning("credential.selection_cancelled")
            raise CredentialRequired("Credential selection was cancelled.")
        self._api_key = key
        self._client = None
        self._log.info("credential.selected")

    # ------------------------------------------------------------------
    # Still images
    # ------------------------------------------------------------------

    async def generate_image(self, request: ImageRequest) -> Optional[MediaPayload]:
        self._log.info(
            "generate_image.start",
            model=request.model,
            aspect_ratio=request.aspect_ratio.value,
            image_size=request.image_size.value if request.image_size else None,
            has_source=request.source_image is not None,
            has_mask=request.mask_image is not None,
        )

        parts: list[types.Part] = []
        for media in (request.source_image, request.mask_image):
            if media is not None:
                parts.append(types.Part.from_bytes(data=media.data, mime_type=media.mime_type))
        parts.append(types.Part.from_text(text=request.prompt or DEFAULT_IMAGE_PROMPT))

        # image_size is pro-only; the standard model rejects it
        image_config: dict = {"aspect_ratio": request.aspect_ratio.value}
        if request.image_size is not None:
            image_config["image_size"] = request.image_size.value

        response = await self._genai().aio.models.generate_content(
            model=request.model,
            contents=types.Content(role="user", parts=parts),
            config=types.GenerateContentConfig(
                image_config=types.ImageConfig(**image_config),
            ),
        )

        for candidate in response.candidates or []:
            content = candidate.content
            for part in (content.parts if content and content.parts else []):
                if part.inline_data and part.inline_data.data:
                    self._log.info("generate_image.done", bytes=len(part.inline_data.data))
                    return MediaPayload(
                        data=part.inline_data.data,
                        mime_type=part.inline_data.mime_type or "image/png",
                    )

        self._log.warning("generate_image.empty_response", model=request.model)
        return None

    # ------------------------------------------------------------------
    # Video jobs
    # ------------------------------------------------------------------

    async def start_video_job(self, request: VideoRequest) -> VideoJob:
        image = None
        if request.source_image is not None:
            image = types.Image(
                image_bytes=request.source_image.data,
                mime_type=request.source_image.mime_type,
            )
        prompt = request.prompt or (
            DEFAULT_ANIMATE_PROMPT if image is not None else DEFAULT_VIDEO_PROMPT
        )

        self._log.info(
            "start_video_job.start",
            model=request.model,
            aspect_ratio=request.aspect_ratio.value,
            image_to_video=image is not None,
        )
        operation = await self._genai().aio.models.generate_videos(
            model=request.model,
            prompt=prompt,
            image=image,
            config=types.GenerateVideosConfig(
                number_of_videos=1,
                resolution=self.video_resolution,
                aspect_ratio=request.aspect_ratio.value,
            ),
        )
        return self._to_job(operation)

    async def poll_video_job(self, job: VideoJob) -> VideoJob:
        operation = await self._genai().aio.operations.get(job.raw)
        return self._to_job(operation)

    @staticmethod
    def _to_job(operation: types.GenerateVideosOperation) -> VideoJob:
        result_uri = None
        error = None
        if operation.done:
            videos = operation.response.generated_videos if operation.response else None
            if videos and videos[0].video:
                result_uri = videos[0].video.uri
            if operation.error:
                error = str(operation.error.get("message", operation.error))
        return VideoJob(
            name=operation.name or "",
            done=bool(operation.done),
            result_uri=result_uri,
            error=error,
            raw=operation,
        )

    async def fetch_media(self, uri: str) -> MediaPayload:
        async with httpx.AsyncClient(timeout=self.download_timeout, follow_redirects=True) as http:
            resp = await http.get(uri, headers={"x-goog-api-key": self._api_key or ""})
            resp.raise_for_status()

        mime_type = resp.headers.get("content-type", "video/mp4").split(";")[0].strip()
        self._log.info("fetch_media.done", bytes=len(resp.content), mime_type=mime_type)
        return MediaPayload(data=resp.content, mime_type=mime_type or "video/mp4")

    # ------------------------------------------------------------------
    # Prompt suggestions
    # ------------------------------------------------------------------

    async def suggest_prompt(
        self,
        categories: Sequence[str] = ("Any",),
        reference_image: Optional[MediaPayload] = None,
    ) -> str:
        """Ask the text model for a short wallpaper prompt; falls back on any failure."""
        cats = [c for c in categories if c.strip()] or ["Any"]
        themes = "diverse creative themes" if "Any" in cats else " and ".join(cats)

        parts: list[types.Part] = []
        if reference_image is not None:
            parts.append(
                types.Part.from_bytes(
                    data=reference_image.data, mime_type=reference_image.mime_type
                )
            )
            instruction = (
                "Analyze this image and generate a single short creative wallpaper prompt "
                f"(under 20 words) inspired by: {themes}. Return ONLY the prompt text."
            )
        else:
            instruction = (
                "Generate a single short creative wallpaper prompt (under 20 words) "
                f"for: {themes}. Return ONLY the prompt text."
            )
        parts.append(types.Part.from_text(text=instruction))

        try:
            response = await self._genai().aio.models.generate_content(
                model=self.prompt_model,
                contents=types.Content(role="user", parts=parts),
            )
        except Exception as exc:
            self._log.warning("suggest_prompt.failed", error=str(exc))
            return FALLBACK_SUGGESTION

        text = (response.text or "").strip()
        return text or EMPTY_SUGGESTION
