"""Generation request models.

``GenerationRequest`` is what callers hand to the orchestrator. It is validated
once at that boundary and then narrowed into one of the closed per-operation
requests (``ImageRequest`` / ``VideoRequest``) that a ``GenerationClient``
receives, so no backend call is ever built from a loose parameter bag.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from cosmic_wallpaper.models.artifact import (
    ArtifactKind,
    AspectRatio,
    ImageSize,
    ModelTier,
)
from cosmic_wallpaper.tools.media import MediaPayload


class Provenance(str, Enum):
    ORIGINAL = "original"
    EDIT = "edit"
    ANIMATE = "animate"

    @property
    def prompt_prefix(self) -> str:
        return {
            Provenance.ORIGINAL: "",
            Provenance.EDIT: "Edit: ",
            Provenance.ANIMATE: "Animate: ",
        }[self]


class GenerationRequest(BaseModel):
    prompt: str = ""
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
    kind: ArtifactKind = ArtifactKind.IMAGE
    tier: ModelTier = ModelTier.STANDARD
    image_size: ImageSize = ImageSize.X1K
    categories: list[str] = Field(default_factory=list)
    source_image: Optional[str] = Field(default=None, repr=False, description="data URI")
    mask_image: Optional[str] = Field(default=None, repr=False, description="data URI")
    provenance: Provenance = Provenance.ORIGINAL

    @field_validator("source_image", "mask_image")
    @classmethod
    def _check_data_uri(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            MediaPayload.from_data_uri(value)
        return value

    @model_validator(mode="after")
    def _check_combination(self) -> GenerationRequest:
        if not self.prompt.strip() and self.source_image is None:
            raise ValueError("a prompt or a source image is required")
        if self.provenance is not Provenance.ORIGINAL and self.source_image is None:
            raise ValueError(f"an {self.provenance.value} request needs a source image")
        if self.mask_image is not None:
            if self.source_image is None:
                raise ValueError("a mask requires a source image")
            if self.kind is ArtifactKind.VIDEO:
                raise ValueError("masks are only supported for still images")
        return self

    @property
    def recorded_prompt(self) -> str:
        """Prompt stored on the resulting artifact, tagged with its provenance."""
        return f"{self.provenance.prompt_prefix}{self.prompt}"


@dataclass(frozen=True)
class ImageRequest:
    prompt: str
    aspect_ratio: AspectRatio
    model: str
    image_size: Optional[ImageSize] = None  # pro tier only
    source_image: Optional[MediaPayload] = None
    mask_image: Optional[MediaPayload] = None


@dataclass(frozen=True)
class VideoRequest:
    prompt: str
    aspect_ratio: AspectRatio  # PORTRAIT or LANDSCAPE
    model: str
    source_image: Optional[MediaPayload] = None
