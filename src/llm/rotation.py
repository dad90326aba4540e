"""Sticky round-robin failover across API keys.

The pointer moves (and is persisted) only when an attempt fails. A success
leaves it parked on the working key, so the next call starts there; a
failing key is skipped next time because the pointer already moved past it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from src.errors import AllCredentialsExhausted

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CredentialRotator:
    """Owns the credential list and rotation pointer for one session.

    Args:
        credentials: Ordered API keys. Replaced wholesale, never edited.
        pointer: Index of the key to try first. Normalised into range.
        persist_pointer: Async callback invoked with the new pointer after
            every failed attempt.
    """

    def __init__(
        self,
        credentials: Sequence[str],
        pointer: int = 0,
        persist_pointer: Callable[[int], Awaitable[None]] | None = None,
    ) -> None:
        self._credentials = tuple(credentials)
        self._pointer = pointer % len(self._credentials) if self._credentials else 0
        self._persist_pointer = persist_pointer

    @property
    def credentials(self) -> tuple[str, ...]:
        return self._credentials

    @property
    def pointer(self) -> int:
        return self._pointer

    @property
    def current(self) -> str:
        """The credential the pointer is parked on."""
        return self._credentials[self._pointer]

    async def attempt(self, unit_of_work: Callable[[str], Awaitable[T]]) -> T:
        """Run *unit_of_work* with successive credentials until one succeeds.

        Raises:
            AllCredentialsExhausted: every credential failed once (or there
                are none). The last failure is chained as ``__cause__``.
            Exception: whatever *persist_pointer* raises. The in-memory pointer
                is left on the failed key so it still matches the stored one.
        """
        max_tries = len(self._credentials)
        last_error: BaseException | None = None

        for _ in range(max_tries):
            logger.info("Attempting to use API key #%d", self._pointer + 1)
            try:
                result = await unit_of_work(self._credentials[self._pointer])
            except Exception as exc:
                logger.warning("API key #%d failed: %s", self._pointer + 1, exc)
                last_error = exc
                next_pointer = (self._pointer + 1) % max_tries
                if self._persist_pointer is not None:
                    await self._persist_pointer(next_pointer)
                self._pointer = next_pointer
                continue
            logger.info("API key #%d succeeded", self._pointer + 1)
            return result

        logger.error("All %d API key(s) failed", max_tries)
        raise AllCredentialsExhausted(max_tries) from last_error
