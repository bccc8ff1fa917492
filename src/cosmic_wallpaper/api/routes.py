"""FastAPI route handlers for the local studio API."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from sse_starlette.sse import EventSourceResponse

from cosmic_wallpaper.api.dependencies import get_feed, get_studio
from cosmic_wallpaper.api.schemas import (
    AnimateRequest,
    BulkDeleteRequest,
    EditRequest,
    GenerateRequest,
    GenerationResponse,
    ImportResponse,
    LibraryToggleRequest,
    LibraryToggleResponse,
    PromptListResponse,
    SelectRequest,
    SessionResponse,
    SuggestPromptRequest,
    SuggestPromptResponse,
)
from cosmic_wallpaper.generation.orchestrator import GenerationResult
from cosmic_wallpaper.models.artifact import Artifact, group_by_category
from cosmic_wallpaper.observability.feed import LogEntry, LogFeed
from cosmic_wallpaper.store.backup import backup_filename
from cosmic_wallpaper.store.persistent import Collection
from cosmic_wallpaper.studio import WallpaperStudio

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1")

# Entries pushed per SSE event
_STREAM_BATCH = 50


def _generation_response(studio: WallpaperStudio, result: GenerationResult) -> GenerationResponse:
    warning = None
    if result.degraded:
        warning = f"Generated, but could not be saved to History: {result.save_error}"
    return GenerationResponse(
        artifact=result.artifact,
        saved=result.saved,
        warning=warning,
        session=SessionResponse.from_session(studio.session),
    )


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


@router.post("/generate", response_model=GenerationResponse)
async def generate(request: GenerateRequest, studio: WallpaperStudio = Depends(get_studio)):
    """Generate a new image or video from a prompt (and optional source image)."""
    result = await studio.generate(request.model_dump())
    return _generation_response(studio, result)


@router.post("/edit", response_model=GenerationResponse)
async def edit(request: EditRequest, studio: WallpaperStudio = Depends(get_studio)):
    """Apply an AI edit to the artifact on display."""
    result = await studio.edit(
        request.tool, request.detail, mask_image=request.mask_image, tier=request.tier
    )
    return _generation_response(studio, result)


@router.post("/animate", response_model=GenerationResponse)
async def animate(request: AnimateRequest, studio: WallpaperStudio = Depends(get_studio)):
    """Turn the still on display into a short video."""
    result = await studio.animate(request.prompt)
    return _generation_response(studio, result)


# ---------------------------------------------------------------------------
# Session (display + undo/redo)
# ---------------------------------------------------------------------------


@router.get("/session", response_model=SessionResponse)
async def get_session(studio: WallpaperStudio = Depends(get_studio)):
    return SessionResponse.from_session(studio.session)


@router.post("/session/select", response_model=SessionResponse)
async def select(request: SelectRequest, studio: WallpaperStudio = Depends(get_studio)):
    try:
        await studio.select_by_id(request.collection, request.id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Artifact {request.id} not found")
    return SessionResponse.from_session(studio.session)


@router.post("/session/undo", response_model=SessionResponse)
async def undo(studio: WallpaperStudio = Depends(get_studio)):
    studio.undo()
    return SessionResponse.from_session(studio.session)


@router.post("/session/redo", response_model=SessionResponse)
async def redo(studio: WallpaperStudio = Depends(get_studio)):
    studio.redo()
    return SessionResponse.from_session(studio.session)


@router.delete("/session", response_model=SessionResponse)
async def close_display(studio: WallpaperStudio = Depends(get_studio)):
    studio.close_display()
    return SessionResponse.from_session(studio.session)


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


@router.get("/collections/{collection}", response_model=list[Artifact])
async def list_collection(collection: Collection, studio: WallpaperStudio = Depends(get_studio)):
    return await studio.store.get_all(collection)


@router.get("/collections/{collection}/grouped", response_model=dict[str, list[Artifact]])
async def list_grouped(collection: Collection, studio: WallpaperStudio = Depends(get_studio)):
    return group_by_category(await studio.store.get_all(collection))


@router.delete("/collections/{collection}/{artifact_id}", status_code=204)
async def delete_artifact(
    collection: Collection, artifact_id: str, studio: WallpaperStudio = Depends(get_studio)
):
    await studio.delete(collection, artifact_id)
    return Response(status_code=204)


@router.post("/collections/{collection}/bulk-delete", status_code=204)
async def bulk_delete(
    collection: Collection,
    request: BulkDeleteRequest,
    studio: WallpaperStudio = Depends(get_studio),
):
    await studio.delete_many(collection, request.ids)
    return Response(status_code=204)


@router.post("/library/toggle", response_model=LibraryToggleResponse)
async def toggle_library(request: LibraryToggleRequest, studio: WallpaperStudio = Depends(get_studio)):
    """Add the artifact to the Library, or remove it if already there."""
    artifact = await studio.store.get(Collection.HISTORY, request.id)
    if artifact is None:
        artifact = await studio.store.get(Collection.LIBRARY, request.id)
    if artifact is None and studio.active is not None and studio.active.id == request.id:
        artifact = studio.active
    if artifact is None:
        raise HTTPException(status_code=404, detail=f"Artifact {request.id} not found")
    in_library = await studio.toggle_library(artifact)
    return LibraryToggleResponse(id=artifact.id, in_library=in_library)


# ---------------------------------------------------------------------------
# Prompt ledger
# ---------------------------------------------------------------------------


@router.get("/prompts", response_model=PromptListResponse)
async def list_prompts(studio: WallpaperStudio = Depends(get_studio)):
    return PromptListResponse(prompts=await studio.prompts.list())


@router.delete("/prompts", response_model=PromptListResponse)
async def clear_prompts(studio: WallpaperStudio = Depends(get_studio)):
    await studio.prompts.clear()
    return PromptListResponse(prompts=[])


@router.post("/prompts/suggest", response_model=SuggestPromptResponse)
async def suggest_prompt(request: SuggestPromptRequest, studio: WallpaperStudio = Depends(get_studio)):
    prompt = await studio.suggest_prompt(request.categories, request.use_active_as_reference)
    return SuggestPromptResponse(prompt=prompt)


# ---------------------------------------------------------------------------
# Backup
# ---------------------------------------------------------------------------


@router.get("/backup")
async def export_backup(studio: WallpaperStudio = Depends(get_studio)):
    document = await studio.export_backup()
    return Response(
        content=json.dumps(document, indent=2),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{backup_filename()}"'},
    )


@router.post("/backup", response_model=ImportResponse)
async def import_backup(request: Request, studio: WallpaperStudio = Depends(get_studio)):
    report = await studio.import_backup(await request.body())
    return ImportResponse(imported=report.imported, problems=[str(p) for p in report.problems])


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------


@router.get("/logs")
async def get_logs(feed: LogFeed = Depends(get_feed)) -> list[dict[str, Any]]:
    return json.loads(feed.export_json())


@router.delete("/logs", status_code=204)
async def clear_logs(feed: LogFeed = Depends(get_feed)):
    feed.clear()
    return Response(status_code=204)


@router.get("/logs/stream")
async def stream_logs(feed: LogFeed = Depends(get_feed)):
    """Server-sent events: the newest entries every time the feed changes."""
    queue: asyncio.Queue[list[LogEntry]] = asyncio.Queue()
    loop = asyncio.get_running_loop()
    unsubscribe = feed.subscribe(lambda entries: loop.call_soon_threadsafe(queue.put_nowait, entries))

    async def events():
        try:
            while True:
                entries = await queue.get()
                yield {
                    "event": "logs",
                    "data": json.dumps([e.to_dict() for e in entries[:_STREAM_BATCH]], default=str),
                }
        finally:
            unsubscribe()
            logger.debug("logs.stream.closed")

    return EventSourceResponse(events())
