"""Contract for the external generation backend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from cosmic_wallpaper.models.request import ImageRequest, VideoRequest
from cosmic_wallpaper.tools.media import MediaPayload


@dataclass(frozen=True)
class VideoJob:
    """Handle for a long-running video job. Each poll returns a fresh one."""

    name: str
    done: bool = False
    result_uri: Optional[str] = None
    error: Optional[str] = None
    raw: Any = None


@runtime_checkable
class GenerationClient(Protocol):
    async def generate_image(self, request: ImageRequest) -> Optional[MediaPayload]:
        """Return inline media, or None when the response carried no media."""
        ...

    async def start_video_job(self, request: VideoRequest) -> VideoJob: ...

    async def poll_video_job(self, job: VideoJob) -> VideoJob: ...

    async def fetch_media(self, uri: str) -> MediaPayload: ...

    async def has_credential(self) -> bool: ...

    async def select_credential(self) -> None:
        """Interactively select a credential; raises CredentialRequired on cancel."""
        ...
