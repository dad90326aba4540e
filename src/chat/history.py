"""Conversion of the stored message log into request-shaped history."""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.llm.provider import ImagePart, Part, TextPart, Turn

if TYPE_CHECKING:
    from collections.abc import Sequence

    from src.storage.models import ConversationMessage, ImageAttachment


def to_parts(text: str | None, image: ImageAttachment | None) -> tuple[Part, ...]:
    """Text first, then the inline image, skipping whichever is absent."""
    parts: list[Part] = []
    if text:
        parts.append(TextPart(text=text))
    if image is not None:
        parts.append(ImagePart(data=image.data, mime_type=image.mime_type))
    return tuple(parts)


def build_history(messages: Sequence[ConversationMessage]) -> list[Turn]:
    """Map stored messages to turns and trim to the first user turn.

    A log without any user turn is not a valid context seed and collapses
    to an empty history.
    """
    turns = [
        Turn(role=m.role, parts=parts)
        for m in messages
        if (parts := to_parts(m.text, m.image))
    ]
    for index, turn in enumerate(turns):
        if turn.role == "user":
            return turns[index:]
    return []
