"""Shared test fixtures."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from src.llm.prompt import AmbientContext
from src.llm.provider import DeltaStream
from src.storage.store import PersistentStore


class FakeProvider:
    """In-memory GenerationProvider.

    ``streams`` maps a credential to the deltas its stream yields; an
    exception instance anywhere in the list (or in place of the list) is
    raised when the stream reaches it. Unknown credentials stream ``["ok"]``.
    ``replies`` are returned by ``complete()`` in order.
    """

    def __init__(self) -> None:
        self.streams: dict[str, Any] = {}
        self.replies: list[Any] = []
        self.generate_calls: list[dict[str, Any]] = []
        self.complete_calls: list[dict[str, Any]] = []

    def generate(self, credential, model, system_instruction, history, new_parts) -> DeltaStream:
        self.generate_calls.append(
            {
                "credential": credential,
                "model": model,
                "system_instruction": system_instruction,
                "history": list(history),
                "new_parts": list(new_parts),
            }
        )
        return DeltaStream(self._iterate(self.streams.get(credential, ["ok"])))

    async def _iterate(self, outcome):
        if isinstance(outcome, Exception):
            raise outcome
        for item in outcome:
            if isinstance(item, Exception):
                raise item
            yield item

    async def complete(self, credential: str, model: str, prompt: str) -> str:
        self.complete_calls.append({"credential": credential, "model": model, "prompt": prompt})
        if not self.replies:
            return '{"memory": [], "relevant_memories": []}'
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@dataclass
class FixedContextProvider:
    context: AmbientContext = field(
        default_factory=lambda: AmbientContext(
            platform="Linux 6.1",
            browser="mnemo-cli (CPython 3.12.1)",
            local_time="Monday, January 01, 2024 09:00 AM",
            timezone="Europe/Berlin",
        )
    )

    def current(self) -> AmbientContext:
        return self.context


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("src.config.settings.turso_database_url", "")


@pytest.fixture
async def store(tmp_path: Path, _no_turso: None) -> PersistentStore:
    """Create a PersistentStore backed by a temp database."""
    return PersistentStore(db_path=tmp_path / "test.db")


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def context_provider() -> FixedContextProvider:
    return FixedContextProvider()
