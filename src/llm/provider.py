"""Generation provider: Anthropic Messages API behind a per-credential client.

The core only sees :class:`GenerationProvider`. A generation call yields a
:class:`DeltaStream`, a lazy, finite, non-restartable pull sequence of text
fragments with ``aclose()`` as its cancellation point.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Protocol

import anthropic

from src.config import settings
from src.errors import ProviderError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

logger = logging.getLogger(__name__)

Role = Literal["user", "model"]

_API_ROLES: dict[str, str] = {"user": "user", "model": "assistant"}


# -- Request shapes ------------------------------------------------------------


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    data: bytes
    mime_type: str


Part = TextPart | ImagePart


@dataclass(frozen=True)
class Turn:
    """One request-shaped conversation turn."""

    role: Role
    parts: tuple[Part, ...]


# -- Streaming -----------------------------------------------------------------


class DeltaStream:
    """Pull-based sequence of text deltas from a single generation call.

    Iterate with ``async for`` or call :meth:`next_delta`. Once exhausted or
    closed the stream cannot be restarted.
    """

    def __init__(self, source: AsyncIterator[str]) -> None:
        self._source = source
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> DeltaStream:
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self._source.__anext__()
        except StopAsyncIteration:
            self._closed = True
            raise

    async def next_delta(self) -> str | None:
        """Return the next delta, or None when the stream is finished."""
        try:
            return await self.__anext__()
        except StopAsyncIteration:
            return None

    async def aclose(self) -> None:
        """Stop the stream and release the underlying call."""
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> DeltaStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


# -- Provider ------------------------------------------------------------------


class GenerationProvider(Protocol):
    def generate(
        self,
        credential: str,
        model: str,
        system_instruction: str | None,
        history: Sequence[Turn],
        new_parts: Sequence[Part],
    ) -> DeltaStream: ...

    async def complete(self, credential: str, model: str, prompt: str) -> str: ...


def _content_block(part: Part) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    return {
        "type": "image",
        "source": {
            "type": "base64",
            "media_type": part.mime_type,
            "data": base64.b64encode(part.data).decode("ascii"),
        },
    }


def to_api_messages(history: Sequence[Turn], new_parts: Sequence[Part]) -> list[dict[str, Any]]:
    """Convert turns to Messages API format.

    Adjacent turns with the same role are merged, since the API requires
    user and assistant turns to alternate.
    """
    messages: list[dict[str, Any]] = []
    turns = [*history, Turn(role="user", parts=tuple(new_parts))]
    for turn in turns:
        blocks = [_content_block(p) for p in turn.parts]
        if not blocks:
            continue
        role = _API_ROLES[turn.role]
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"].extend(blocks)
        else:
            messages.append({"role": role, "content": blocks})
    return messages


class AnthropicProvider:
    """Anthropic-backed provider. One lazily created client per API key."""

    def __init__(self, max_tokens: int | None = None) -> None:
        self._clients: dict[str, anthropic.AsyncAnthropic] = {}
        self._max_tokens = max_tokens or settings.max_tokens

    def _get_client(self, credential: str) -> anthropic.AsyncAnthropic:
        """Lazily initialize the Anthropic client for *credential*."""
        client = self._clients.get(credential)
        if client is None:
            client = anthropic.AsyncAnthropic(api_key=credential)
            self._clients[credential] = client
        return client

    def generate(
        self,
        credential: str,
        model: str,
        system_instruction: str | None,
        history: Sequence[Turn],
        new_parts: Sequence[Part],
    ) -> DeltaStream:
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": self._max_tokens,
            "messages": to_api_messages(history, new_parts),
        }
        if system_instruction:
            kwargs["system"] = system_instruction
        logger.debug("Opening stream: model=%s, %d message(s)", model, len(kwargs["messages"]))
        return DeltaStream(self._stream_text(credential, kwargs))

    async def _stream_text(self, credential: str, kwargs: dict[str, Any]) -> AsyncIterator[str]:
        client = self._get_client(credential)
        try:
            async with client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    yield text
        except anthropic.APIError as exc:
            raise ProviderError(f"Streaming call failed: {exc}") from exc

    async def complete(self, credential: str, model: str, prompt: str) -> str:
        """Single-shot call without system prompt, history or streaming."""
        client = self._get_client(credential)
        try:
            response = await client.messages.create(
                model=model,
                max_tokens=self._max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            raise ProviderError(f"Completion call failed: {exc}") from exc
        return "".join(block.text for block in response.content if block.type == "text")
