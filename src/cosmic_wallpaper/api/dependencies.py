"""FastAPI dependency injection — one store, client, feed and studio per process."""

from __future__ import annotations

from functools import lru_cache

from cosmic_wallpaper.config import settings
from cosmic_wallpaper.generation.orchestrator import GenerationOrchestrator
from cosmic_wallpaper.observability.feed import LogFeed
from cosmic_wallpaper.store.persistent import PersistentStore
from cosmic_wallpaper.store.prompt_history import PromptHistoryService
from cosmic_wallpaper.studio import WallpaperStudio
from cosmic_wallpaper.tools.gemini import GeminiClient


@lru_cache(maxsize=1)
def get_feed() -> LogFeed:
    return LogFeed(settings.log_feed_max_entries)


@lru_cache(maxsize=1)
def get_store() -> PersistentStore:
    """Return the singleton store. It is opened and closed by the app lifespan."""
    return PersistentStore(settings.database_path, feed=get_feed())


@lru_cache(maxsize=1)
def get_client() -> GeminiClient:
    return GeminiClient(feed=get_feed())


@lru_cache(maxsize=1)
def get_studio() -> WallpaperStudio:
    store = get_store()
    client = get_client()
    prompts = PromptHistoryService(store, settings.prompt_ledger_max)
    orchestrator = GenerationOrchestrator(client, store, prompts, feed=get_feed())
    return WallpaperStudio(orchestrator, store, prompts, suggester=client)
