"""Shared fixtures: a temporary store and a scripted generation backend."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from cosmic_wallpaper.errors import CredentialRequired
from cosmic_wallpaper.generation.orchestrator import GenerationOrchestrator
from cosmic_wallpaper.models.artifact import Artifact, ArtifactKind, AspectRatio, ModelTier
from cosmic_wallpaper.models.request import ImageRequest, VideoRequest
from cosmic_wallpaper.store.persistent import PersistentStore
from cosmic_wallpaper.store.prompt_history import PromptHistoryService
from cosmic_wallpaper.studio import WallpaperStudio
from cosmic_wallpaper.tools.client import VideoJob
from cosmic_wallpaper.tools.media import MediaPayload

PNG = MediaPayload(data=b"\x89PNG\r\n\x1a\nfake-image", mime_type="image/png")
MP4 = MediaPayload(data=b"\x00\x00\x00\x18ftypmp42fake-video", mime_type="video/mp4")
VIDEO_URI = "https://generativelanguage.example/files/video-1:download?alt=media"

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)

STANDARD_MODEL = "image-standard-test"
PRO_MODEL = "image-pro-test"
VIDEO_MODEL = "video-test"


class FakeGenerationClient:
    """Scripted stand-in for the Gemini backend that records every call."""

    def __init__(self) -> None:
        self.has_key = True
        self.selection_succeeds = True
        self.image: Optional[MediaPayload] = PNG
        self.image_error: Optional[Exception] = None
        self.video = MP4
        self.result_uri: Optional[str] = VIDEO_URI
        self.job_error: Optional[str] = None
        self.fetch_error: Optional[Exception] = None
        self.polls_until_done = 0
        self.suggestion = "A quiet lighthouse under the aurora"

        self.image_requests: list[ImageRequest] = []
        self.video_requests: list[VideoRequest] = []
        self.poll_calls = 0
        self.fetch_calls: list[str] = []
        self.select_calls = 0
        self.suggest_calls: list[tuple] = []

    async def has_credential(self) -> bool:
        return self.has_key

    async def select_credential(self) -> None:
        self.select_calls += 1
        if not self.selection_succeeds:
            raise CredentialRequired("Credential selection was cancelled.")
        self.has_key = True

    async def generate_image(self, request: ImageRequest) -> Optional[MediaPayload]:
        self.image_requests.append(request)
        if self.image_error is not None:
            raise self.image_error
        return self.image

    async def start_video_job(self, request: VideoRequest) -> VideoJob:
        self.video_requests.append(request)
        return VideoJob(name="operations/video-1", done=False)

    async def poll_video_job(self, job: VideoJob) -> VideoJob:
        self.poll_calls += 1
        if self.poll_calls <= self.polls_until_done:
            return VideoJob(name=job.name, done=False)
        return VideoJob(name=job.name, done=True, result_uri=self.result_uri, error=self.job_error)

    async def fetch_media(self, uri: str) -> MediaPayload:
        self.fetch_calls.append(uri)
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.video

    async def suggest_prompt(self, categories, reference_image=None) -> str:
        self.suggest_calls.append((tuple(categories), reference_image))
        return self.suggestion


class SleepRecorder:
    """Zero-delay replacement for asyncio.sleep."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_artifact(
    artifact_id: str,
    minutes: int = 0,
    *,
    prompt: str = "a nebula over mountains",
    kind: ArtifactKind = ArtifactKind.IMAGE,
    categories: tuple[str, ...] = (),
) -> Artifact:
    media = PNG if kind is ArtifactKind.IMAGE else MP4
    return Artifact(
        id=artifact_id,
        media_ref=media.to_data_uri(),
        prompt=prompt,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        aspect_ratio=AspectRatio.LANDSCAPE,
        model_identifier=STANDARD_MODEL if kind is ArtifactKind.IMAGE else VIDEO_MODEL,
        kind=kind,
        categories=categories,
    )


@pytest.fixture
def artifact_factory():
    return make_artifact


@pytest.fixture
async def store(tmp_path):
    store = PersistentStore(tmp_path / "wallpapers.db")
    await store.open()
    yield store
    await store.close()


@pytest.fixture
def prompts(store):
    return PromptHistoryService(store, max_entries=50)


@pytest.fixture
def client():
    return FakeGenerationClient()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def orchestrator(client, store, prompts, sleeper):
    return GenerationOrchestrator(
        client,
        store,
        prompts,
        image_models={ModelTier.STANDARD: STANDARD_MODEL, ModelTier.PRO: PRO_MODEL},
        video_model=VIDEO_MODEL,
        poll_interval=5.0,
        sleep=sleeper,
    )


@pytest.fixture
def studio(orchestrator, store, prompts, client):
    return WallpaperStudio(orchestrator, store, prompts, suggester=client)
