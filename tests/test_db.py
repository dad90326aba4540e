"""Tests for async database connection abstraction."""

from pathlib import Path

import pytest

from src.db import _AsyncConnection, get_connection
from src.errors import StoreError

pytestmark = pytest.mark.usefixtures("_no_turso")


class TestGetConnection:
    async def test_returns_async_connection(self, tmp_path: Path):
        conn = await get_connection(local_path_override=tmp_path / "test.db")
        assert isinstance(conn, _AsyncConnection)
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

    async def test_last_insert_id(self, tmp_path: Path):
        conn = await get_connection(local_path_override=tmp_path / "test.db")
        await conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)")
        await conn.execute("INSERT INTO t (name) VALUES (?)", ("a",))
        first = await conn.last_insert_id()
        await conn.execute("INSERT INTO t (name) VALUES (?)", ("b",))
        second = await conn.last_insert_id()
        assert second == first + 1
        await conn.close()

    async def test_driver_errors_become_store_errors(self, tmp_path: Path):
        conn = await get_connection(local_path_override=tmp_path / "test.db")
        with pytest.raises(StoreError):
            await conn.execute("SELECT * FROM missing_table")
        await conn.close()
