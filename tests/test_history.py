"""Tests for message log → request history conversion."""

from src.chat.history import build_history, to_parts
from src.llm.provider import ImagePart, TextPart
from src.storage.models import ConversationMessage, ImageAttachment


def _msg(role: str, text: str | None = "x", image: ImageAttachment | None = None):
    return ConversationMessage(role=role, text=text, image=image)


def test_trims_to_first_user_turn() -> None:
    log = [_msg("model", "intro"), _msg("user", "hi"), _msg("model", "hello")]

    history = build_history(log)

    assert [t.role for t in history] == ["user", "model"]
    assert history[0].parts == (TextPart("hi"),)


def test_no_user_turn_collapses_to_empty() -> None:
    assert build_history([_msg("model", "intro"), _msg("model", "again")]) == []


def test_empty_log() -> None:
    assert build_history([]) == []


def test_image_parts_follow_text() -> None:
    image = ImageAttachment(data=b"img", mime_type="image/jpeg")

    [turn] = build_history([_msg("user", "look", image)])

    assert turn.parts == (TextPart("look"), ImagePart(b"img", "image/jpeg"))


def test_empty_text_messages_are_dropped() -> None:
    log = [_msg("user", "hi"), _msg("model", ""), _msg("user", "still there?")]

    history = build_history(log)

    assert [t.parts[0].text for t in history] == ["hi", "still there?"]


def test_to_parts_image_only() -> None:
    image = ImageAttachment(data=b"img", mime_type="image/png")
    assert to_parts("", image) == (ImagePart(b"img", "image/png"),)
