"""System instruction assembly with ambient context and recalled memories."""

from __future__ import annotations

import logging
import platform
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

import zoneinfo

from src.config import settings

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AmbientContext:
    """Opaque descriptive strings about where the user is chatting from."""

    platform: str
    browser: str
    local_time: str
    timezone: str


class ContextProvider(Protocol):
    def current(self) -> AmbientContext: ...


class SystemContextProvider:
    """Reads ambient context from the host running the client.

    There is no browser in a terminal client, so the ``browser`` slot carries
    the client name and the Python runtime.
    """

    def __init__(self, timezone: str | None = None) -> None:
        self._timezone = timezone if timezone is not None else settings.timezone

    def _now(self) -> tuple[datetime, str]:
        if self._timezone:
            try:
                tz = zoneinfo.ZoneInfo(self._timezone)
                return datetime.now(tz), self._timezone
            except zoneinfo.ZoneInfoNotFoundError:
                logger.warning("Unknown timezone %r, falling back to local time", self._timezone)
        now = datetime.now().astimezone()
        return now, now.tzname() or "UTC"

    def current(self) -> AmbientContext:
        now, tz_name = self._now()
        return AmbientContext(
            platform=f"{platform.system()} {platform.release()}".strip(),
            browser=(
                f"{settings.client_name} "
                f"({platform.python_implementation()} {platform.python_version()})"
            ),
            local_time=now.strftime("%A, %B %d, %Y %I:%M %p"),
            timezone=tz_name,
        )


def build_system_instruction(
    context: AmbientContext,
    memories: Sequence[str],
    assistant_name: str | None = None,
) -> str:
    """Assemble the persona, ambient context and recalled memories.

    Memories are embedded verbatim, one per line.
    """
    name = assistant_name or settings.assistant_name
    lines = [
        f"You are a helpful and friendly conversational AI. Your name is {name}.",
        "Current user context:",
        f"- OS: {context.platform}",
        f"- Browser: {context.browser}",
        f"- Current Time: {context.local_time}",
        f"- Timezone: {context.timezone}",
        "",
        "Here are some relevant memories from past conversations:",
        *memories,
        "",
        "Always format your responses using Markdown. "
        "For code, use language-specific code blocks.",
    ]
    return "\n".join(lines)
