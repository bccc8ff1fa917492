"""PersistentStore: CRUD, ordering, atomic bulk writes and schema upgrades."""

from __future__ import annotations

import asyncio
import sqlite3

import pytest

from cosmic_wallpaper.errors import StoreUnavailable, WriteRejected
from cosmic_wallpaper.store.persistent import SCHEMA_VERSION, Collection, PersistentStore


async def test_get_all_is_newest_first(store, artifact_factory):
    for artifact_id, minutes in [("b", 5), ("a", 1), ("c", 9)]:
        await store.put(Collection.HISTORY, artifact_factory(artifact_id, minutes))

    ids = [a.id for a in await store.get_all(Collection.HISTORY)]

    assert ids == ["c", "b", "a"]


async def test_put_upserts_by_id(store, artifact_factory):
    await store.put(Collection.HISTORY, artifact_factory("a", prompt="first"))
    await store.put(Collection.HISTORY, artifact_factory("a", prompt="second"))

    items = await store.get_all(Collection.HISTORY)

    assert len(items) == 1
    assert items[0].prompt == "second"


async def test_get_returns_equal_artifact(store, artifact_factory):
    original = artifact_factory("a", categories=("Space", "Ocean"))
    await store.put(Collection.LIBRARY, original)

    assert await store.get(Collection.LIBRARY, "a") == original
    assert await store.get(Collection.LIBRARY, "missing") is None
    assert await store.contains(Collection.LIBRARY, "a")


async def test_collections_are_independent(store, artifact_factory):
    artifact = artifact_factory("a")
    await store.put(Collection.HISTORY, artifact)
    await store.put(Collection.LIBRARY, artifact)

    await store.delete(Collection.HISTORY, "a")

    assert await store.get_all(Collection.HISTORY) == []
    assert [a.id for a in await store.get_all(Collection.LIBRARY)] == ["a"]


async def test_delete_many_and_clear(store, artifact_factory):
    await store.bulk_put(Collection.HISTORY, [artifact_factory(str(i), i) for i in range(4)])

    await store.delete_many(Collection.HISTORY, ["0", "2"])
    assert [a.id for a in await store.get_all(Collection.HISTORY)] == ["3", "1"]

    await store.clear(Collection.HISTORY)
    assert await store.get_all(Collection.HISTORY) == []


async def test_data_survives_reopen(tmp_path, artifact_factory):
    path = tmp_path / "persist.db"
    async with PersistentStore(path) as first:
        await first.put(Collection.HISTORY, artifact_factory("kept"))

    async with PersistentStore(path) as second:
        assert [a.id for a in await second.get_all(Collection.HISTORY)] == ["kept"]


async def test_bulk_put_is_all_or_nothing(store, artifact_factory):
    # A trigger rejecting one row simulates a write failing mid-batch
    with sqlite3.connect(store.path) as conn:
        conn.execute(
            "CREATE TRIGGER reject_bad BEFORE INSERT ON history "
            "WHEN NEW.id = 'bad' BEGIN SELECT RAISE(ABORT, 'quota exceeded'); END"
        )
    batch = [artifact_factory("a", 1), artifact_factory("bad", 2), artifact_factory("c", 3)]

    with pytest.raises(WriteRejected):
        await store.bulk_put(Collection.HISTORY, batch)

    assert await store.get_all(Collection.HISTORY) == []


async def test_replace_all_rolls_back_on_failure(store, artifact_factory):
    await store.put(Collection.LIBRARY, artifact_factory("existing"))
    with sqlite3.connect(store.path) as conn:
        conn.execute(
            "CREATE TRIGGER reject_bad BEFORE INSERT ON library "
            "WHEN NEW.id = 'bad' BEGIN SELECT RAISE(ABORT, 'rejected'); END"
        )

    with pytest.raises(WriteRejected):
        await store.replace_all(Collection.LIBRARY, [artifact_factory("bad")])

    assert [a.id for a in await store.get_all(Collection.LIBRARY)] == ["existing"]


async def test_invalid_rows_are_skipped_on_read(store, artifact_factory):
    await store.put(Collection.HISTORY, artifact_factory("good"))
    with sqlite3.connect(store.path) as conn:
        conn.execute(
            "INSERT INTO history (id, created_at, document) VALUES ('broken', 0, '{\"id\": 1}')"
        )

    assert [a.id for a in await store.get_all(Collection.HISTORY)] == ["good"]


async def test_upgrade_adds_prompt_ledger_without_touching_artifacts(tmp_path, artifact_factory):
    path = tmp_path / "legacy.db"
    async with PersistentStore(path, target_version=1) as legacy:
        assert await legacy.schema_version() == 1
        await legacy.put(Collection.HISTORY, artifact_factory("h1"))
        await legacy.put(Collection.LIBRARY, artifact_factory("l1"))

    async with PersistentStore(path) as upgraded:
        assert await upgraded.schema_version() == SCHEMA_VERSION
        assert [a.id for a in await upgraded.get_all(Collection.HISTORY)] == ["h1"]
        assert [a.id for a in await upgraded.get_all(Collection.LIBRARY)] == ["l1"]
        await upgraded.put_prompt("aurora", 1)
        assert await upgraded.get_prompts(10) == ["aurora"]


async def test_open_failure_is_reported(tmp_path):
    # A directory cannot be opened as a database file
    with pytest.raises(StoreUnavailable):
        await PersistentStore(tmp_path).open()


async def test_operations_on_closed_store_fail(tmp_path):
    store = PersistentStore(tmp_path / "closed.db")

    with pytest.raises(StoreUnavailable):
        await store.get_all(Collection.HISTORY)


class _FlakyConnection:
    """Delegates to a real connection, failing the first statement that starts with *fail_on*."""

    def __init__(self, conn: sqlite3.Connection, fail_on: str):
        self._conn = conn
        self._fail_on = fail_on
        self.closed = False

    def execute(self, sql, *args):
        if self._fail_on and sql.startswith(self._fail_on):
            self._fail_on = None
            raise sqlite3.OperationalError("disk I/O error")
        return self._conn.execute(sql, *args)

    def close(self):
        self.closed = True
        self._conn.close()

    def __getattr__(self, name):
        return getattr(self._conn, name)


async def test_failed_commit_is_rolled_back_and_store_stays_usable(store, artifact_factory):
    store._conn = _FlakyConnection(store._conn, "COMMIT")

    with pytest.raises(WriteRejected):
        await store.put(Collection.HISTORY, artifact_factory("lost"))

    await store.put(Collection.HISTORY, artifact_factory("kept"))

    assert [a.id for a in await store.get_all(Collection.HISTORY)] == ["kept"]


async def test_connection_is_closed_when_initialisation_fails(tmp_path, monkeypatch):
    connect = sqlite3.connect
    opened: list[_FlakyConnection] = []

    def flaky_connect(*args, **kwargs):
        conn = _FlakyConnection(connect(*args, **kwargs), "PRAGMA journal_mode")
        opened.append(conn)
        return conn

    monkeypatch.setattr(sqlite3, "connect", flaky_connect)
    store = PersistentStore(tmp_path / "init.db")

    with pytest.raises(StoreUnavailable):
        await store.open()

    assert [c.closed for c in opened] == [True]
    with pytest.raises(StoreUnavailable):
        await store.get_all(Collection.HISTORY)


async def test_close_waits_for_in_flight_work(store):
    store._lock.acquire()
    try:
        closing = asyncio.create_task(store.close())
        await asyncio.sleep(0.05)
        assert not closing.done()
    finally:
        store._lock.release()

    await closing

    with pytest.raises(StoreUnavailable):
        await store.get_all(Collection.HISTORY)


async def test_get_skips_invalid_row(store):
    with sqlite3.connect(store.path) as conn:
        conn.execute(
            "INSERT INTO library (id, created_at, document) VALUES ('broken', 0, '{\"id\": 1}')"
        )

    assert await store.get(Collection.LIBRARY, "broken") is None
    assert await store.contains(Collection.LIBRARY, "broken")
