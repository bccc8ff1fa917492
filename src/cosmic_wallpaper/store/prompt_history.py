"""Recent-prompt ledger — capped, deduplicated, most recent first."""

from __future__ import annotations

import time
from typing import Callable

import structlog

from cosmic_wallpaper.config import settings
from cosmic_wallpaper.store.persistent import PersistentStore

logger = structlog.get_logger()


class PromptHistoryService:
    def __init__(
        self,
        store: PersistentStore,
        max_entries: int | None = None,
        clock: Callable[[], int] = time.time_ns,
    ):
        self._store = store
        self.max_entries = max_entries or settings.prompt_ledger_max
        self._clock = clock
        self._last_stamp: int | None = None

    async def record(self, prompt: str) -> None:
        """Move *prompt* to the front of the ledger. Blank input is ignored."""
        text = prompt.strip()
        if not text:
            return
        await self._store.put_prompt(text, await self._next_stamp())
        logger.debug("prompt_history.recorded", prompt_len=len(text))

    async def list(self) -> list[str]:
        return await self._store.get_prompts(self.max_entries)

    async def clear(self) -> None:
        await self._store.clear_prompts()
        self._last_stamp = None

    async def _next_stamp(self) -> int:
        # Strictly increasing so two records within one clock tick keep their order
        if self._last_stamp is None:
            self._last_stamp = await self._store.latest_prompt_stamp()
        self._last_stamp = max(self._clock(), self._last_stamp + 1)
        return self._last_stamp
