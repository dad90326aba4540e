"""PersistentStore: async key/value collections over libsql.

Three collections back the chat core:

- ``settings``: credential list, model name, rotation pointer
- ``messages``: append-only conversation log
- ``memory``: remembered facts

Each ``put`` is its own transaction; nothing spans collections.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from src.db import get_connection
from src.errors import StoreError
from src.storage.models import ConversationMessage, MemoryItem, SettingRecord

if TYPE_CHECKING:
    from pathlib import Path

    from pydantic import BaseModel

logger = logging.getLogger(__name__)

SETTINGS = "settings"
MESSAGES = "messages"
MEMORY = "memory"


@dataclass(frozen=True)
class _Collection:
    table: str
    columns: tuple[str, ...]
    model: type[BaseModel]
    ddl: str
    autoincrement: bool
    upsert: bool = False


_COLLECTIONS: dict[str, _Collection] = {
    SETTINGS: _Collection(
        table="settings",
        columns=("id", "value"),
        model=SettingRecord,
        ddl="""
        CREATE TABLE IF NOT EXISTS settings (
            id    TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """,
        autoincrement=False,
        upsert=True,
    ),
    MESSAGES: _Collection(
        table="messages",
        columns=("id", "role", "text", "image_data", "image_mime_type", "timestamp"),
        model=ConversationMessage,
        ddl="""
        CREATE TABLE IF NOT EXISTS messages (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            role            TEXT NOT NULL,
            text            TEXT,
            image_data      TEXT,
            image_mime_type TEXT,
            timestamp       TEXT NOT NULL
        )
        """,
        autoincrement=True,
    ),
    MEMORY: _Collection(
        table="memory",
        columns=("id", "text", "timestamp"),
        model=MemoryItem,
        ddl="""
        CREATE TABLE IF NOT EXISTS memory (
            id        INTEGER PRIMARY KEY AUTOINCREMENT,
            text      TEXT NOT NULL,
            timestamp TEXT NOT NULL
        )
        """,
        autoincrement=True,
    ),
}


def _collection(name: str) -> _Collection:
    try:
        return _COLLECTIONS[name]
    except KeyError:
        raise StoreError(f"Unknown collection: {name!r}") from None


class PersistentStore:
    """Owns all durable state of the chat client.

    Singleton accessed via ``PersistentStore.shared()``.  Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: PersistentStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def shared(cls) -> PersistentStore:
        """Return the shared PersistentStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self):  # noqa: ANN202
        db = await get_connection(local_path_override=self._db_path)
        if not self._initialised:
            try:
                for table_def in _COLLECTIONS.values():
                    await db.execute(table_def.ddl)
                await db.commit()
            except StoreError:
                await db.close()
                raise
            self._initialised = True
        return db

    # -- Collection operations -------------------------------------------------

    async def get(self, collection: str, key: Any) -> Any:
        """Fetch one record by id, or None if absent."""
        table_def = _collection(collection)
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {', '.join(table_def.columns)} FROM {table_def.table} WHERE id = ?",  # noqa: S608
                (key,),
            )
            row = await cursor.fetchone()
            return table_def.model.from_row(row) if row else None
        finally:
            await db.close()

    async def get_all(self, collection: str) -> list[Any]:
        """Return every record in the collection, in insertion order."""
        table_def = _collection(collection)
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {', '.join(table_def.columns)} FROM {table_def.table} ORDER BY rowid"  # noqa: S608
            )
            rows = await cursor.fetchall()
            return [table_def.model.from_row(row) for row in rows]
        finally:
            await db.close()

    async def put(self, collection: str, record: Any) -> Any:
        """Write *record* and return its id.

        Settings are upserted by key. The message log and memory are
        append-only: a record without an id gets a generated one written back
        onto it, and an id that already exists raises :class:`StoreError`.
        """
        table_def = _collection(collection)
        if not isinstance(record, table_def.model):
            raise StoreError(
                f"Collection {collection!r} expects {table_def.model.__name__}, "
                f"got {type(record).__name__}"
            )
        if record.id is None and not table_def.autoincrement:
            raise StoreError(f"Records in {collection!r} need an explicit id")

        row = record.to_row()
        columns = table_def.columns
        if record.id is None:
            row = row[1:]
            columns = columns[1:]

        placeholders = ", ".join("?" for _ in columns)
        verb = "INSERT OR REPLACE" if table_def.upsert else "INSERT"
        db = await self._connect()
        try:
            await db.execute(
                f"{verb} INTO {table_def.table} ({', '.join(columns)}) "  # noqa: S608
                f"VALUES ({placeholders})",
                row,
            )
            if record.id is None:
                record.id = await db.last_insert_id()
            await db.commit()
            logger.debug("Stored %s record %s", collection, record.id)
            return record.id
        finally:
            await db.close()

    async def clear(self, collection: str) -> None:
        """Delete every record in the collection."""
        table_def = _collection(collection)
        db = await self._connect()
        try:
            cursor = await db.execute(f"DELETE FROM {table_def.table}")  # noqa: S608
            await db.commit()
            logger.info("Cleared %s (%d record(s))", collection, max(cursor.rowcount, 0))
        finally:
            await db.close()

    # -- Settings --------------------------------------------------------------

    async def get_setting(self, key: str, default: Any = None) -> Any:
        record = await self.get(SETTINGS, key)
        return record.value if record else default

    async def save_setting(self, key: str, value: Any) -> None:
        await self.put(SETTINGS, SettingRecord(id=key, value=value))

    # -- Messages --------------------------------------------------------------

    async def get_messages(self) -> list[ConversationMessage]:
        return await self.get_all(MESSAGES)

    async def save_message(self, message: ConversationMessage) -> int:
        return await self.put(MESSAGES, message)

    async def clear_messages(self) -> None:
        await self.clear(MESSAGES)

    # -- Memory ----------------------------------------------------------------

    async def save_memory(self, text: str) -> int:
        return await self.put(MEMORY, MemoryItem(text=text))

    async def get_all_memory(self) -> list[MemoryItem]:
        return await self.get_all(MEMORY)

    async def clear_memory(self) -> None:
        await self.clear(MEMORY)
