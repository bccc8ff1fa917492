"""Request/Response schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from cosmic_wallpaper.generation.edits import EditTool
from cosmic_wallpaper.models.artifact import (
    Artifact,
    ArtifactKind,
    AspectRatio,
    ImageSize,
    ModelTier,
)
from cosmic_wallpaper.session.edit_session import EditSession, SessionState
from cosmic_wallpaper.store.persistent import Collection


class SessionResponse(BaseModel):
    state: SessionState
    active: Optional[Artifact] = None
    can_undo: bool = False
    can_redo: bool = False
    undo_depth: int = 0
    redo_depth: int = 0

    @classmethod
    def from_session(cls, session: EditSession) -> SessionResponse:
        return cls(
            state=session.state,
            active=session.active,
            can_undo=session.can_undo,
            can_redo=session.can_redo,
            undo_depth=len(session.undo_stack),
            redo_depth=len(session.redo_stack),
        )


class GenerationResponse(BaseModel):
    artifact: Artifact
    saved: bool
    warning: Optional[str] = None  # set when the artifact could not be saved to History
    session: SessionResponse


class GenerateRequest(BaseModel):
    """Body of a fresh generation. Edits and animations have their own routes."""

    prompt: str = ""
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
    kind: ArtifactKind = ArtifactKind.IMAGE
    tier: ModelTier = ModelTier.STANDARD
    image_size: ImageSize = ImageSize.X1K
    categories: list[str] = Field(default_factory=list)
    source_image: Optional[str] = Field(default=None, description="data URI")
    mask_image: Optional[str] = Field(default=None, description="data URI")


class EditRequest(BaseModel):
    tool: EditTool
    detail: str = ""
    mask_image: Optional[str] = Field(default=None, description="data URI of the region mask")
    tier: ModelTier = ModelTier.STANDARD


class AnimateRequest(BaseModel):
    prompt: str = ""


class SelectRequest(BaseModel):
    collection: Collection
    id: str


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(min_length=1)


class LibraryToggleRequest(BaseModel):
    id: str


class LibraryToggleResponse(BaseModel):
    id: str
    in_library: bool


class PromptListResponse(BaseModel):
    prompts: list[str]


class SuggestPromptRequest(BaseModel):
    categories: list[str] = Field(default_factory=lambda: ["Any"])
    use_active_as_reference: bool = False


class SuggestPromptResponse(BaseModel):
    prompt: str


class ImportResponse(BaseModel):
    imported: dict[str, int]
    problems: list[str] = Field(default_factory=list)
