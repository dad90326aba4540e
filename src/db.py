"""Async database connection abstraction over libsql.

Provides a thin async wrapper around the synchronous ``libsql`` driver using
``asyncio.to_thread()``.  Connection target is determined by settings:

- **Hosted**: ``TURSO_DATABASE_URL`` + ``TURSO_AUTH_TOKEN`` → remote Turso
- **Local**: no Turso env vars → local SQLite file via ``database_path``

Every driver failure surfaces as :class:`~src.errors.StoreError`, so callers
never need to know which driver sits underneath.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import libsql

from src.config import settings
from src.errors import StoreError

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


async def _call(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a blocking driver call in a thread, translating its errors."""
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except StoreError:
        raise
    except Exception as exc:
        raise StoreError(f"Database operation failed: {exc}") from exc


class _AsyncCursor:
    """Thin async wrapper around a synchronous libsql cursor."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    async def fetchone(self) -> tuple | None:
        return await _call(self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await _call(self._cursor.fetchall)

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class _AsyncConnection:
    """Thin async wrapper around a synchronous libsql connection."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> _AsyncCursor:
        cursor = await _call(self._conn.execute, sql, params)
        return _AsyncCursor(cursor)

    async def last_insert_id(self) -> int:
        """Return the rowid generated by the most recent INSERT."""
        cursor = await self.execute("SELECT last_insert_rowid()")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def commit(self) -> None:
        await _call(self._conn.commit)

    async def close(self) -> None:
        await _call(self._conn.close)


def _open_local(path: str) -> Any:
    """Open a local libsql connection with WAL mode and busy timeout."""
    conn = libsql.connect(path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


async def get_connection(local_path_override: Path | None = None) -> _AsyncConnection:
    """Return an async-wrapped libsql connection.

    If *local_path_override* is given (test isolation), it takes priority.
    Otherwise, ``TURSO_DATABASE_URL`` triggers a remote connection, and
    ``database_path`` falls back to a local file.
    """
    if local_path_override:
        local_path_override.parent.mkdir(parents=True, exist_ok=True)
        conn = await _call(_open_local, str(local_path_override))
        return _AsyncConnection(conn)

    if settings.turso_database_url:
        conn = await _call(
            libsql.connect,
            database=settings.turso_database_url,
            auth_token=settings.turso_auth_token,
        )
        return _AsyncConnection(conn)

    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    conn = await _call(_open_local, str(settings.database_path))
    return _AsyncConnection(conn)
