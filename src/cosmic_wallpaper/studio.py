"""Studio — wires generation, the local store and the edit session together."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Optional, Sequence

import structlog

from cosmic_wallpaper.errors import GenerationInProgress, InvalidRequest
from cosmic_wallpaper.generation.edits import (
    EditTool,
    build_animate_request,
    build_edit_request,
)
from cosmic_wallpaper.generation.orchestrator import (
    GenerationOrchestrator,
    GenerationResult,
    validate_request,
)
from cosmic_wallpaper.models.artifact import Artifact, ModelTier
from cosmic_wallpaper.models.request import GenerationRequest, Provenance
from cosmic_wallpaper.session.edit_session import EditSession
from cosmic_wallpaper.store.backup import ImportReport, export_backup, import_backup
from cosmic_wallpaper.store.persistent import Collection, PersistentStore
from cosmic_wallpaper.store.prompt_history import PromptHistoryService
from cosmic_wallpaper.tools.media import MediaPayload

logger = structlog.get_logger()


class WallpaperStudio:
    """Single-user application core.

    Callers must not run two generations at once; ``busy`` is exposed so a
    front end can disable its trigger while one is in flight.
    """

    def __init__(
        self,
        orchestrator: GenerationOrchestrator,
        store: PersistentStore,
        prompts: PromptHistoryService,
        session: Optional[EditSession] = None,
        suggester: Any = None,
    ):
        self.orchestrator = orchestrator
        self.store = store
        self.prompts = prompts
        self.session = session or EditSession()
        self._suggester = suggester
        self._generating = False

    @property
    def busy(self) -> bool:
        return self._generating

    @property
    def active(self) -> Optional[Artifact]:
        return self.session.active

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        request: GenerationRequest | dict,
        *,
        cancel: Optional[asyncio.Event] = None,
    ) -> GenerationResult:
        """Run a generation and make its artifact the one on display."""
        request = validate_request(request)
        if self._generating:
            raise GenerationInProgress("a generation is already in progress")
        self._generating = True
        try:
            result = await self.orchestrator.generate(request, cancel=cancel)
        finally:
            self._generating = False

        if request.provenance is Provenance.ORIGINAL:
            self.session.select(result.artifact)
        else:
            self.session.apply_result(result.artifact)
        return result

    async def edit(
        self,
        tool: EditTool,
        detail: str = "",
        *,
        mask_image: Optional[str] = None,
        tier: ModelTier = ModelTier.STANDARD,
        cancel: Optional[asyncio.Event] = None,
    ) -> GenerationResult:
        request = build_edit_request(
            self.session.active, tool, detail, mask_image=mask_image, tier=tier
        )
        return await self.generate(request, cancel=cancel)

    async def animate(
        self, prompt: str = "", *, cancel: Optional[asyncio.Event] = None
    ) -> GenerationResult:
        return await self.generate(build_animate_request(self.session.active, prompt), cancel=cancel)

    async def suggest_prompt(
        self, categories: Sequence[str] = ("Any",), use_active_as_reference: bool = False
    ) -> str:
        if self._suggester is None:
            raise InvalidRequest("prompt suggestions are not available")
        reference = None
        if use_active_as_reference and self.active is not None:
            reference = MediaPayload.from_data_uri(self.active.media_ref)
        return await self._suggester.suggest_prompt(categories, reference)

    # ------------------------------------------------------------------
    # Display and undo/redo
    # ------------------------------------------------------------------

    def select(self, artifact: Artifact) -> Artifact:
        return self.session.select(artifact)

    async def select_by_id(self, collection: Collection, artifact_id: str) -> Artifact:
        artifact = await self.store.get(collection, artifact_id)
        if artifact is None:
            raise KeyError(artifact_id)
        return self.session.select(artifact)

    def undo(self) -> Optional[Artifact]:
        return self.session.undo()

    def redo(self) -> Optional[Artifact]:
        return self.session.redo()

    def close_display(self) -> None:
        self.session.clear()

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def history(self) -> list[Artifact]:
        return await self.store.get_all(Collection.HISTORY)

    async def library(self) -> list[Artifact]:
        return await self.store.get_all(Collection.LIBRARY)

    async def is_in_library(self, artifact_id: str) -> bool:
        return await self.store.contains(Collection.LIBRARY, artifact_id)

    async def toggle_library(self, artifact: Artifact) -> bool:
        """Add or remove *artifact* from the Library; returns the new membership."""
        if await self.store.contains(Collection.LIBRARY, artifact.id):
            await self.store.delete(Collection.LIBRARY, artifact.id)
            logger.info("studio.library.removed", id=artifact.id)
            return False
        await self.store.put(Collection.LIBRARY, artifact)
        logger.info("studio.library.added", id=artifact.id)
        return True

    async def delete(self, collection: Collection, artifact_id: str) -> None:
        await self.store.delete(collection, artifact_id)
        if self.session.references(artifact_id):
            self.session.clear()

    async def delete_many(self, collection: Collection, artifact_ids: Iterable[str]) -> None:
        ids = list(artifact_ids)
        await self.store.delete_many(collection, ids)
        if any(self.session.references(i) for i in ids):
            self.session.clear()

    async def clear(self, collection: Collection) -> None:
        displayed = self.active is not None and await self.store.contains(
            collection, self.active.id
        )
        await self.store.clear(collection)
        if displayed:
            self.session.clear()

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    async def export_backup(self) -> dict[str, Any]:
        return await export_backup(self.store)

    async def import_backup(self, document: Any) -> ImportReport:
        return await import_backup(self.store, document)
