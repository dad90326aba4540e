"""Record models for the settings, messages and memory collections."""

from __future__ import annotations

import base64
import json
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


def _now() -> str:
    return datetime.now(UTC).isoformat()


class SettingRecord(BaseModel):
    """A named setting. ``value`` is any JSON-serializable payload."""

    id: str
    value: Any = None

    def to_row(self) -> tuple:
        return (self.id, json.dumps(self.value))

    @classmethod
    def from_row(cls, row: tuple) -> SettingRecord:
        return cls(id=row[0], value=json.loads(row[1]))


class ImageAttachment(BaseModel):
    """Inline image carried by a message."""

    data: bytes
    mime_type: str

    @property
    def encoded(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @classmethod
    def from_base64(cls, encoded: str, mime_type: str) -> ImageAttachment:
        return cls(data=base64.b64decode(encoded), mime_type=mime_type)


class ConversationMessage(BaseModel):
    """A single entry in the append-only message log.

    ``id`` is assigned by the store on first insert and defines log order.
    """

    id: int | None = None
    role: Literal["user", "model"]
    text: str | None = None
    image: ImageAttachment | None = None
    timestamp: str = Field(default_factory=_now)

    @model_validator(mode="after")
    def _has_content(self) -> ConversationMessage:
        if self.text is None and self.image is None:
            raise ValueError("A message needs text, an image, or both")
        return self

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``messages`` column order."""
        return (
            self.id,
            self.role,
            self.text,
            self.image.encoded if self.image else None,
            self.image.mime_type if self.image else None,
            self.timestamp,
        )

    @classmethod
    def from_row(cls, row: tuple) -> ConversationMessage:
        image = None
        if row[3] is not None:
            image = ImageAttachment.from_base64(row[3], row[4] or "application/octet-stream")
        return cls(id=row[0], role=row[1], text=row[2], image=image, timestamp=row[5])


class MemoryItem(BaseModel):
    """A remembered fact. Immutable once written; duplicates are allowed."""

    id: int | None = None
    text: str
    timestamp: str = Field(default_factory=_now)

    def to_row(self) -> tuple:
        return (self.id, self.text, self.timestamp)

    @classmethod
    def from_row(cls, row: tuple) -> MemoryItem:
        return cls(id=row[0], text=row[1], timestamp=row[2])
