"""Pydantic models for generated artifacts."""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ArtifactKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class ModelTier(str, Enum):
    STANDARD = "standard"
    PRO = "pro"


class AspectRatio(str, Enum):
    SQUARE = "1:1"
    PORTRAIT = "9:16"
    LANDSCAPE = "16:9"
    WIDE = "4:3"

    @property
    def ratio(self) -> float:
        width, height = self.value.split(":")
        return int(width) / int(height)


class ImageSize(str, Enum):
    X1K = "1K"
    X2K = "2K"
    X4K = "4K"


DEFAULT_CATEGORY = "Custom"


def new_artifact_id() -> str:
    """Return a creation-time-derived id: epoch milliseconds plus a short random suffix."""
    return f"{time.time_ns() // 1_000_000}-{uuid.uuid4().hex[:8]}"


# Keys written by the original browser app's backups
_LEGACY_KEYS = {
    "url": "mediaRef",
    "model": "modelIdentifier",
    "type": "kind",
}


class Artifact(BaseModel):
    """A generated wallpaper or video. Immutable once created."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str
    media_ref: str = Field(repr=False)
    prompt: str = ""
    created_at: datetime
    aspect_ratio: AspectRatio
    model_identifier: str
    kind: ArtifactKind
    categories: tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        *,
        media_ref: str,
        prompt: str,
        aspect_ratio: AspectRatio,
        model_identifier: str,
        kind: ArtifactKind,
        categories: Iterable[str] = (),
    ) -> Artifact:
        return cls(
            id=new_artifact_id(),
            media_ref=media_ref,
            prompt=prompt,
            created_at=datetime.now(timezone.utc),
            aspect_ratio=aspect_ratio,
            model_identifier=model_identifier,
            kind=kind,
            categories=tuple(categories),
        )

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for old, new in _LEGACY_KEYS.items():
            if old in data and new not in data:
                data[new] = data.pop(old)
        if "timestamp" in data and "createdAt" not in data:
            # Epoch milliseconds
            data["createdAt"] = datetime.fromtimestamp(
                float(data.pop("timestamp")) / 1000, tz=timezone.utc
            )
        if "category" in data and "categories" not in data:
            category = data.pop("category")
            data["categories"] = [category] if category else []
        return data

    @field_validator("categories", mode="before")
    @classmethod
    def _dedupe_categories(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        seen: list[str] = []
        for item in value:
            tag = str(item).strip()
            if tag and tag not in seen:
                seen.append(tag)
        return tuple(seen)

    @field_validator("created_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_document(self) -> dict[str, Any]:
        """JSON-safe dict using the camelCase backup field names."""
        return self.model_dump(mode="json", by_alias=True)


def sort_newest_first(artifacts: Iterable[Artifact]) -> list[Artifact]:
    return sorted(artifacts, key=lambda a: a.created_at, reverse=True)


def group_by_category(artifacts: Iterable[Artifact]) -> dict[str, list[Artifact]]:
    """Group artifacts for display; one with several tags appears under each."""
    groups: dict[str, list[Artifact]] = {}
    for artifact in artifacts:
        for tag in artifact.categories or (DEFAULT_CATEGORY,):
            groups.setdefault(tag, []).append(artifact)
    return groups
