"""Durable local store for the History, Library and prompt ledger collections.

Backed by a single SQLite file. Blocking calls run in a worker thread so the
event loop stays responsive; a lock serializes them because the connection is
shared across threads.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Iterator, TypeVar

import structlog
from pydantic import ValidationError

from cosmic_wallpaper.config import settings
from cosmic_wallpaper.errors import StoreUnavailable, WriteRejected
from cosmic_wallpaper.models.artifact import Artifact, sort_newest_first
from cosmic_wallpaper.observability.feed import LogFeed

_SOURCE = "PersistentStore"

T = TypeVar("T")


class Collection(str, Enum):
    HISTORY = "history"
    LIBRARY = "library"


# Ordered, additive schema steps. Never edit a released step; append a new one.
_MIGRATIONS: list[tuple[int, tuple[str, ...]]] = [
    (
        1,
        (
            "CREATE TABLE IF NOT EXISTS history ("
            " id TEXT PRIMARY KEY, created_at REAL NOT NULL, document TEXT NOT NULL)",
            "CREATE TABLE IF NOT EXISTS library ("
            " id TEXT PRIMARY KEY, created_at REAL NOT NULL, document TEXT NOT NULL)",
        ),
    ),
    (
        2,
        (
            "CREATE TABLE IF NOT EXISTS prompt_ledger ("
            " prompt TEXT PRIMARY KEY, used_at INTEGER NOT NULL)",
            "CREATE INDEX IF NOT EXISTS prompt_ledger_used_at ON prompt_ledger (used_at)",
        ),
    ),
]

SCHEMA_VERSION = _MIGRATIONS[-1][0]


def _row(artifact: Artifact) -> tuple[str, float, str]:
    try:
        document = json.dumps(artifact.to_document())
    except (TypeError, ValueError) as exc:
        raise WriteRejected(f"artifact {artifact.id} is not serializable: {exc}") from exc
    return artifact.id, artifact.created_at.timestamp(), document


class PersistentStore:
    """History/Library artifact collections plus the prompt ledger."""

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        feed: LogFeed | None = None,
        target_version: int = SCHEMA_VERSION,
    ):
        self.path = str(path or settings.database_path)
        self.target_version = target_version
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._log = (
            feed.logger(_SOURCE) if feed else structlog.get_logger().bind(source=_SOURCE)
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> PersistentStore:
        if self._conn is None:
            await asyncio.to_thread(self._open_sync)
        return self

    async def close(self) -> None:
        if self._conn is not None:
            await asyncio.to_thread(self._close_sync)

    async def __aenter__(self) -> PersistentStore:
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _open_sync(self) -> None:
        with self._lock:
            try:
                if self.path != ":memory:":
                    Path(self.path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
            except (sqlite3.Error, OSError) as exc:
                self._log.error("store.open.failed", path=self.path, error=str(exc))
                raise StoreUnavailable(f"cannot open store at {self.path}: {exc}") from exc
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
                self._conn = conn
                self._migrate()
            except sqlite3.Error as exc:
                self._conn = None
                conn.close()
                self._log.error("store.init.failed", path=self.path, error=str(exc))
                raise StoreUnavailable(f"cannot initialise store at {self.path}: {exc}") from exc

    def _close_sync(self) -> None:
        # Waits for any in-flight statement on another worker thread
        with self._lock:
            conn, self._conn = self._conn, None
            if conn is not None:
                conn.close()

    def _migrate(self) -> None:
        current = self._conn.execute("PRAGMA user_version").fetchone()[0]
        pending = [
            (version, statements)
            for version, statements in _MIGRATIONS
            if current < version <= self.target_version
        ]
        if not pending:
            return
        with self._transaction() as conn:
            for version, statements in pending:
                for statement in statements:
                    conn.execute(statement)
            # PRAGMA does not accept bound parameters
            conn.execute(f"PRAGMA user_version = {int(pending[-1][0])}")
        self._log.info(
            "store.migrated",
            path=self.path,
            from_version=current,
            to_version=pending[-1][0],
        )

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connection()
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            # SQLite may already have rolled back (e.g. SQLITE_FULL)
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreUnavailable("store is not open")
        return self._conn

    async def schema_version(self) -> int:
        return await self._read(
            lambda: self._connection().execute("PRAGMA user_version").fetchone()[0]
        )

    # ------------------------------------------------------------------
    # Thread helpers
    # ------------------------------------------------------------------

    async def _read(self, fn: Callable[[], T]) -> T:
        def run() -> T:
            with self._lock:
                try:
                    return fn()
                except sqlite3.Error as exc:
                    raise StoreUnavailable(str(exc)) from exc

        return await asyncio.to_thread(run)

    async def _write(self, op: str, fn: Callable[[sqlite3.Connection], T]) -> T:
        def run() -> T:
            with self._lock:
                try:
                    with self._transaction() as conn:
                        return fn(conn)
                except sqlite3.Error as exc:
                    raise WriteRejected(f"{op} failed: {exc}") from exc

        try:
            return await asyncio.to_thread(run)
        except WriteRejected as exc:
            self._log.error("store.write.rejected", op=op, error=str(exc))
            raise

    # ------------------------------------------------------------------
    # Artifact collections
    # ------------------------------------------------------------------

    async def get_all(self, collection: Collection) -> list[Artifact]:
        """All artifacts in *collection*, newest first."""
        table = Collection(collection).value
        rows = await self._read(
            lambda: self._connection().execute(f"SELECT id, document FROM {table}").fetchall()
        )
        artifacts: list[Artifact] = []
        for artifact_id, document in rows:
            try:
                artifacts.append(Artifact.model_validate_json(document))
            except ValidationError as exc:
                self._log.warning(
                    "store.row.invalid", collection=table, id=artifact_id, error=str(exc)
                )
        return sort_newest_first(artifacts)

    async def get(self, collection: Collection, artifact_id: str) -> Artifact | None:
        table = Collection(collection).value
        row = await self._read(
            lambda: self._connection()
            .execute(f"SELECT document FROM {table} WHERE id = ?", (artifact_id,))
            .fetchone()
        )
        if row is None:
            return None
        try:
            return Artifact.model_validate_json(row[0])
        except ValidationError as exc:
            self._log.warning(
                "store.row.invalid", collection=table, id=artifact_id, error=str(exc)
            )
            return None

    async def contains(self, collection: Collection, artifact_id: str) -> bool:
        table = Collection(collection).value
        row = await self._read(
            lambda: self._connection()
            .execute(f"SELECT 1 FROM {table} WHERE id = ?", (artifact_id,))
            .fetchone()
        )
        return row is not None

    async def put(self, collection: Collection, artifact: Artifact) -> None:
        """Upsert *artifact* keyed by its id."""
        table = Collection(collection).value
        row = _row(artifact)
        await self._write(
            "put",
            lambda conn: conn.execute(
                f"INSERT OR REPLACE INTO {table} (id, created_at, document) VALUES (?, ?, ?)",
                row,
            ),
        )
        self._log.debug("store.put", collection=table, id=artifact.id)

    async def bulk_put(self, collection: Collection, artifacts: Iterable[Artifact]) -> None:
        """Upsert every artifact in one transaction: all are written or none are."""
        table = Collection(collection).value
        rows = [_row(a) for a in artifacts]
        await self._write(
            "bulk_put",
            lambda conn: conn.executemany(
                f"INSERT OR REPLACE INTO {table} (id, created_at, document) VALUES (?, ?, ?)",
                rows,
            ),
        )
        self._log.info("store.bulk_put", collection=table, count=len(rows))

    async def replace_all(self, collection: Collection, artifacts: Iterable[Artifact]) -> None:
        """Clear *collection* and write *artifacts* in a single transaction."""
        table = Collection(collection).value
        rows = [_row(a) for a in artifacts]

        def replace(conn: sqlite3.Connection) -> None:
            conn.execute(f"DELETE FROM {table}")
            conn.executemany(
                f"INSERT OR REPLACE INTO {table} (id, created_at, document) VALUES (?, ?, ?)",
                rows,
            )

        await self._write("replace_all", replace)
        self._log.info("store.replace_all", collection=table, count=len(rows))

    async def delete(self, collection: Collection, artifact_id: str) -> None:
        table = Collection(collection).value
        await self._write(
            "delete",
            lambda conn: conn.execute(f"DELETE FROM {table} WHERE id = ?", (artifact_id,)),
        )
        self._log.info("store.delete", collection=table, id=artifact_id)

    async def delete_many(self, collection: Collection, artifact_ids: Iterable[str]) -> None:
        table = Collection(collection).value
        ids = [(i,) for i in artifact_ids]
        await self._write(
            "delete_many",
            lambda conn: conn.executemany(f"DELETE FROM {table} WHERE id = ?", ids),
        )
        self._log.info("store.delete_many", collection=table, count=len(ids))

    async def clear(self, collection: Collection) -> None:
        table = Collection(collection).value
        await self._write("clear", lambda conn: conn.execute(f"DELETE FROM {table}"))
        self._log.info("store.clear", collection=table)

    # ------------------------------------------------------------------
    # Prompt ledger
    # ------------------------------------------------------------------

    async def put_prompt(self, prompt: str, used_at: int) -> None:
        """Upsert *prompt* with a fresh recency stamp; the string is the key."""
        await self._write(
            "put_prompt",
            lambda conn: conn.execute(
                "INSERT INTO prompt_ledger (prompt, used_at) VALUES (?, ?) "
                "ON CONFLICT(prompt) DO UPDATE SET used_at = excluded.used_at",
                (prompt, used_at),
            ),
        )

    async def get_prompts(self, limit: int) -> list[str]:
        """Most recent first, dropping anything beyond *limit* from the ledger."""

        def trim_and_read(conn: sqlite3.Connection) -> list[str]:
            conn.execute(
                "DELETE FROM prompt_ledger WHERE prompt NOT IN ("
                " SELECT prompt FROM prompt_ledger ORDER BY used_at DESC LIMIT ?)",
                (limit,),
            )
            rows = conn.execute(
                "SELECT prompt FROM prompt_ledger ORDER BY used_at DESC"
            ).fetchall()
            return [r[0] for r in rows]

        return await self._write("get_prompts", trim_and_read)

    async def latest_prompt_stamp(self) -> int:
        row = await self._read(
            lambda: self._connection()
            .execute("SELECT MAX(used_at) FROM prompt_ledger")
            .fetchone()
        )
        return int(row[0] or 0)

    async def clear_prompts(self) -> None:
        await self._write("clear_prompts", lambda conn: conn.execute("DELETE FROM prompt_ledger"))
        self._log.info("store.clear_prompts")
