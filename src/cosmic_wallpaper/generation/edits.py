"""Edit and animate requests built from the artifact on display.

Edits are ordinary generation requests whose source image is the active
artifact's media; they differ only in provenance, categories and prompt.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from cosmic_wallpaper.errors import InvalidRequest
from cosmic_wallpaper.models.artifact import Artifact, ArtifactKind, ImageSize, ModelTier
from cosmic_wallpaper.models.request import GenerationRequest, Provenance

EDITED_CATEGORY = "Edited"
ANIMATED_CATEGORY = "Animated"


class EditTool(str, Enum):
    REMOVE = "remove"
    TRANSFER = "transfer"
    UPSCALE = "upscale"
    CUSTOM = "custom"


def edit_instruction(tool: EditTool, detail: str = "") -> str:
    detail = detail.strip()
    if tool is EditTool.UPSCALE:
        return (
            "Upscale this image to a much higher resolution. Maintain all existing details, "
            "textures, and composition perfectly while enhancing sharpness and clarity. "
            "Do not change the subject."
        )
    if not detail:
        raise InvalidRequest(f"the {tool.value} tool needs a description")
    if tool is EditTool.REMOVE:
        return (
            f"Remove the {detail} from the image. Blend the area naturally with the "
            "surrounding background, textures, and lighting. The result must be seamless."
        )
    if tool is EditTool.TRANSFER:
        return (
            f"Recreate this image but apply the style of {detail}. Keep the overall "
            "composition and subjects the same, but transform the visual style completely."
        )
    return detail


def _require_still(artifact: Optional[Artifact], action: str, done: str) -> Artifact:
    if artifact is None:
        raise InvalidRequest(f"nothing is displayed to {action}")
    if artifact.kind is not ArtifactKind.IMAGE:
        raise InvalidRequest(f"only still images can be {done}")
    return artifact


def _with_tag(categories: tuple[str, ...], tag: str) -> list[str]:
    return [c for c in categories if c != tag] + [tag]


def build_edit_request(
    active: Optional[Artifact],
    tool: EditTool,
    detail: str = "",
    *,
    mask_image: Optional[str] = None,
    tier: ModelTier = ModelTier.STANDARD,
) -> GenerationRequest:
    """Request that transforms *active* in place (optionally within *mask_image*)."""
    source = _require_still(active, "edit", "edited")
    image_size = ImageSize.X1K
    if tool is EditTool.UPSCALE:
        tier, image_size = ModelTier.PRO, ImageSize.X4K

    return GenerationRequest(
        prompt=edit_instruction(tool, detail),
        aspect_ratio=source.aspect_ratio,
        kind=ArtifactKind.IMAGE,
        tier=tier,
        image_size=image_size,
        categories=_with_tag(source.categories, EDITED_CATEGORY),
        source_image=source.media_ref,
        mask_image=mask_image,
        provenance=Provenance.EDIT,
    )


def build_animate_request(active: Optional[Artifact], prompt: str = "") -> GenerationRequest:
    """Request that turns the still on display into a short video."""
    source = _require_still(active, "animate", "animated")
    return GenerationRequest(
        prompt=prompt.strip(),
        aspect_ratio=source.aspect_ratio,
        kind=ArtifactKind.VIDEO,
        categories=_with_tag(source.categories, ANIMATED_CATEGORY),
        source_image=source.media_ref,
        provenance=Provenance.ANIMATE,
    )
