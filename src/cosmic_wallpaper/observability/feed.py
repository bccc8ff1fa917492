"""Live feed of recent log entries.

A ``LogFeed`` is an ordinary structlog processor: loggers obtained from
``feed.logger(source)`` copy each event into the feed before it reaches the
configured renderer, and subscribers are notified with the new snapshot.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

import structlog

from cosmic_wallpaper.config import settings

logger = structlog.get_logger()

# structlog method name → feed level
_LEVELS = {
    "debug": "debug",
    "info": "info",
    "msg": "info",
    "warn": "warn",
    "warning": "warn",
    "error": "error",
    "exception": "error",
    "critical": "error",
}

# Keys managed by structlog itself, never copied into entry data
_RESERVED = {"event", "source", "level", "timestamp", "exc_info", "stack_info"}

Listener = Callable[[list["LogEntry"]], None]


@dataclass(frozen=True)
class LogEntry:
    level: str
    source: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:9])
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class LogFeed:
    """Bounded, newest-first buffer of log entries with subscribers."""

    def __init__(self, max_entries: int | None = None):
        self.max_entries = max_entries or settings.log_feed_max_entries
        self._entries: list[LogEntry] = []
        self._listeners: list[Listener] = []
        self._disposed = False

    # -- structlog processor ------------------------------------------------

    def __call__(self, _logger: Any, method_name: str, event_dict: dict) -> dict:
        if not self._disposed:
            self.add(
                LogEntry(
                    level=_LEVELS.get(method_name, "info"),
                    source=str(event_dict.get("source", "app")),
                    message=str(event_dict.get("event", "")),
                    data={k: v for k, v in event_dict.items() if k not in _RESERVED},
                )
            )
        return event_dict

    def logger(self, source: str):
        """Return a structlog logger bound to *source* that feeds this buffer."""
        config = structlog.get_config()
        return structlog.wrap_logger(
            config["logger_factory"](),
            processors=[self, *config["processors"]],
            wrapper_class=config["wrapper_class"],
            context_class=config["context_class"],
            source=source,
        )

    # -- buffer ---------------------------------------------------------------

    def add(self, entry: LogEntry) -> None:
        self._entries = [entry, *self._entries][: self.max_entries]
        self._notify()

    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries = []
        self._notify()

    def export_json(self) -> str:
        return json.dumps([e.to_dict() for e in self._entries], indent=2, default=str)

    # -- subscribers ------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*, deliver the current snapshot, return an unsubscribe callable."""
        if self._disposed:
            raise RuntimeError("LogFeed has been disposed")
        self._listeners.append(listener)
        listener(self.entries())
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def dispose(self) -> None:
        self._listeners.clear()
        self._entries = []
        self._disposed = True

    def _notify(self) -> None:
        snapshot = self.entries()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("log_feed.listener_failed")
