"""Tests for async database connection abstraction."""

from pathlib import Path

import pytest

from schoolbell.db import AsyncConnection, Store, get_connection

pytestmark = pytest.mark.usefixtures("_no_turso")


class TestGetConnection:
    async def test_returns_async_connection(self, tmp_path: Path):
        conn = await get_connection(local_path_override=tmp_path / "test.db")
        assert isinstance(conn, AsyncConnection)
        await conn.close()

    async def test_creates_parent_dirs(self, tmp_path: Path):
        db_path = tmp_path / "nested" / "dir" / "test.db"
        conn = await get_connection(local_path_override=db_path)
        assert db_path.parent.exists()
        await conn.close()


class TestAsyncConnection:
    async def test_execute_and_fetchall(self, tmp_path: Path):
        conn = await get_connection(local_path_override=tmp_path / "test.db")
        await conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)")
        await conn.execute("INSERT INTO t (name) VALUES (?)", ("alice",))
        await conn.commit()

        cursor = await conn.execute("SELECT name FROM t")
        rows = await cursor.fetchall()
        assert rows == [("alice",)]
        await conn.close()

    async def test_fetchone_returns_none_when_empty(self, tmp_path: Path):
        conn = await get_connection(local_path_override=tmp_path / "test.db")
        await conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY)")
        cursor = await conn.execute("SELECT id FROM t")
        assert await cursor.fetchone() is None
        await conn.close()

    async def test_rowcount_reflects_updates(self, tmp_path: Path):
        conn = await get_connection(local_path_override=tmp_path / "test.db")
        await conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, flag INTEGER)")
        await conn.execute("INSERT INTO t (flag) VALUES (0)")
        await conn.commit()

        cursor = await conn.execute("UPDATE t SET flag = 1 WHERE flag = 0")
        assert cursor.rowcount == 1
        cursor = await conn.execute("UPDATE t SET flag = 1 WHERE flag = 0")
        assert cursor.rowcount == 0
        await conn.close()


class _NotesStore(Store):
    _SCHEMA = ("CREATE TABLE IF NOT EXISTS notes (body TEXT)",)

    async def add(self, body: str) -> None:
        async with self._connect() as db:
            await db.execute("INSERT INTO notes (body) VALUES (?)", (body,))
            await db.commit()

    async def all(self) -> list[str]:
        async with self._connect() as db:
            cursor = await db.execute("SELECT body FROM notes")
            return [row[0] for row in await cursor.fetchall()]


class TestStore:
    async def test_creates_schema_lazily(self, tmp_path: Path):
        store = _NotesStore(tmp_path / "notes.db")
        await store.add("hello")
        assert await store.all() == ["hello"]

    async def test_data_survives_new_store_instance(self, tmp_path: Path):
        await _NotesStore(tmp_path / "notes.db").add("kept")
        assert await _NotesStore(tmp_path / "notes.db").all() == ["kept"]
