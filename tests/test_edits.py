from __future__ import annotations

import pytest

from cosmic_wallpaper.errors import InvalidRequest
from cosmic_wallpaper.generation.edits import (
    ANIMATED_CATEGORY,
    EDITED_CATEGORY,
    EditTool,
    build_animate_request,
    build_edit_request,
    edit_instruction,
)
from cosmic_wallpaper.models.artifact import ArtifactKind, ImageSize, ModelTier
from cosmic_wallpaper.models.request import Provenance


def test_remove_instruction_mentions_the_target():
    assert "Remove the lamp post" in edit_instruction(EditTool.REMOVE, " lamp post ")


def test_custom_instruction_is_passed_through():
    assert edit_instruction(EditTool.CUSTOM, "add a red moon") == "add a red moon"


@pytest.mark.parametrize("tool", [EditTool.REMOVE, EditTool.TRANSFER, EditTool.CUSTOM])
def test_tools_other_than_upscale_need_a_description(tool):
    with pytest.raises(InvalidRequest):
        edit_instruction(tool, "  ")


def test_edit_request_uses_active_media_and_tags(artifact_factory):
    active = artifact_factory("a", categories=("Space",))

    request = build_edit_request(active, EditTool.TRANSFER, "Van Gogh")

    assert request.source_image == active.media_ref
    assert request.aspect_ratio is active.aspect_ratio
    assert request.provenance is Provenance.EDIT
    assert request.categories == ["Space", EDITED_CATEGORY]
    assert request.recorded_prompt.startswith("Edit: Recreate this image")


def test_edit_tag_is_not_duplicated(artifact_factory):
    active = artifact_factory("a", categories=(EDITED_CATEGORY, "Space"))

    request = build_edit_request(active, EditTool.CUSTOM, "brighter")

    assert request.categories == ["Space", EDITED_CATEGORY]


def test_upscale_forces_pro_tier_at_4k(artifact_factory):
    request = build_edit_request(artifact_factory("a"), EditTool.UPSCALE)

    assert request.tier is ModelTier.PRO
    assert request.image_size is ImageSize.X4K


def test_edit_with_mask(artifact_factory):
    active = artifact_factory("a")

    request = build_edit_request(
        active, EditTool.REMOVE, "bird", mask_image=active.media_ref
    )

    assert request.mask_image == active.media_ref


def test_nothing_to_edit():
    with pytest.raises(InvalidRequest, match="nothing is displayed"):
        build_edit_request(None, EditTool.CUSTOM, "anything")


def test_videos_cannot_be_edited_or_animated(artifact_factory):
    video = artifact_factory("v", kind=ArtifactKind.VIDEO)

    with pytest.raises(InvalidRequest, match="edited"):
        build_edit_request(video, EditTool.CUSTOM, "anything")
    with pytest.raises(InvalidRequest, match="animated"):
        build_animate_request(video)


def test_animate_request(artifact_factory):
    active = artifact_factory("a", categories=("Space",))

    request = build_animate_request(active, "  slow drift  ")

    assert request.kind is ArtifactKind.VIDEO
    assert request.prompt == "slow drift"
    assert request.source_image == active.media_ref
    assert request.categories == ["Space", ANIMATED_CATEGORY]
    assert request.recorded_prompt == "Animate: slow drift"
