"""Chat orchestration: one user turn from prompt assembly to remembered facts.

A turn runs in this order:

1. Inside a credential attempt: load the message log, recall memories,
   build the system instruction and stream the reply to the observer.
2. On success: persist the user turn and the model turn.
3. In the background: extract new facts from the exchange and store them.

A failed attempt restarts output from empty on the next key. Text already
shown to the observer is not retracted.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.chat.history import build_history, to_parts
from src.config import settings
from src.llm.models import default_chat_model, friendly, resolve
from src.llm.prompt import SystemContextProvider, build_system_instruction
from src.llm.provider import TextPart, Turn
from src.llm.rotation import CredentialRotator
from src.memory.agents import extract_memories, retrieve_memories, store_memories
from src.storage.models import ConversationMessage

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from src.llm.prompt import ContextProvider
    from src.llm.provider import GenerationProvider, Part
    from src.storage.models import ImageAttachment, MemoryItem
    from src.storage.store import PersistentStore

logger = logging.getLogger(__name__)

API_KEYS = "api_keys"
MODEL_NAME = "model_name"
KEY_INDEX = "current_key_index"


@dataclass
class ChatContext:
    """Session state rebuilt from the store at session start."""

    credentials: tuple[str, ...]
    model_name: str
    rotator: CredentialRotator


class ChatOrchestrator:
    """Drives chat turns for a single user session.

    Concurrent ``send_turn`` calls are not supported; the caller must wait
    for one turn to finish before starting the next.
    """

    def __init__(
        self,
        store: PersistentStore,
        provider: GenerationProvider,
        context_provider: ContextProvider | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._context_provider = context_provider or SystemContextProvider()
        self._context: ChatContext | None = None
        self._memory_task: asyncio.Task[None] | None = None

    # -- Session state ---------------------------------------------------------

    @property
    def context(self) -> ChatContext | None:
        return self._context

    async def _save_pointer(self, pointer: int) -> None:
        await self._store.save_setting(KEY_INDEX, pointer)

    async def load_context(self) -> ChatContext:
        """Read credentials, model and rotation pointer from the store.

        When no keys are stored, ``ANTHROPIC_API_KEYS`` seeds the list.
        """
        credentials = await self._store.get_setting(API_KEYS, []) or settings.get_api_keys()
        pointer = await self._store.get_setting(KEY_INDEX, 0)
        model_name = await self._store.get_setting(MODEL_NAME, None) or default_chat_model()

        rotator = CredentialRotator(credentials, int(pointer), persist_pointer=self._save_pointer)
        self._context = ChatContext(
            credentials=rotator.credentials,
            model_name=resolve(model_name),
            rotator=rotator,
        )
        logger.info(
            "Loaded %d API key(s), model=%s, key index=%d",
            len(rotator.credentials),
            friendly(self._context.model_name),
            rotator.pointer,
        )
        return self._context

    async def start_session(self) -> list[ConversationMessage]:
        """Load session state and return the message log for display.

        An empty log is seeded with an intro message from the assistant.
        """
        context = await self.load_context()
        messages = await self._store.get_messages()
        if not messages and context.credentials:
            intro = ConversationMessage(
                role="model",
                text=(
                    f"Hello! I am {settings.assistant_name}, your personal AI assistant. "
                    f"Loaded {len(context.credentials)} API key(s). "
                    "Your chat history will be saved. How can I help you today?"
                ),
            )
            await self._store.save_message(intro)
            messages = [intro]
        return messages

    async def update_credentials(
        self, keys: Sequence[str], model_name: str | None = None
    ) -> ChatContext:
        """Replace the key list wholesale and reset the rotation pointer."""
        cleaned = [k.strip() for k in keys if k.strip()]
        if not cleaned:
            raise ValueError("API key(s) cannot be empty.")

        await self._store.save_setting(API_KEYS, cleaned)
        if model_name:
            await self._store.save_setting(MODEL_NAME, resolve(model_name))
        await self._save_pointer(0)
        return await self.load_context()

    # -- Turns -----------------------------------------------------------------

    async def send_turn(
        self,
        text: str,
        image: ImageAttachment | None = None,
        on_delta: Callable[[str], Awaitable[None]] | None = None,
    ) -> str:
        """Send one user turn and return the model's full reply.

        Args:
            text: User text. May be empty when an image is attached.
            image: Optional inline image.
            on_delta: Async observer called with the accumulated reply after
                every streamed fragment.

        Raises:
            ValueError: Neither text nor image was supplied.
            AllCredentialsExhausted: Every key failed; nothing was persisted.
            StoreError: Persisting the finished turn failed.
        """
        text = (text or "").strip()
        if not text and image is None:
            raise ValueError("Nothing to send: provide text or an image")

        # Finish the previous turn's memory work before starting a new call
        await self.wait_for_memory()

        context = self._context or await self.load_context()
        new_parts = to_parts(text, image)

        async def unit_of_work(credential: str) -> tuple[str, list[Turn]]:
            return await self._generate(
                credential, context.model_name, text, new_parts, on_delta
            )

        reply, prior = await context.rotator.attempt(unit_of_work)

        await self._store.save_message(
            ConversationMessage(role="user", text=text or None, image=image)
        )
        await self._store.save_message(ConversationMessage(role="model", text=reply))

        conversation = [
            *prior,
            Turn(role="user", parts=new_parts),
            Turn(role="model", parts=(TextPart(text=reply),)),
        ]
        self._schedule_memory(context.rotator.current, conversation)
        return reply

    async def _generate(
        self,
        credential: str,
        model: str,
        text: str,
        new_parts: tuple[Part, ...],
        on_delta: Callable[[str], Awaitable[None]] | None,
    ) -> tuple[str, list[Turn]]:
        """One credential attempt: build the request and stream it to completion."""
        history = build_history(await self._store.get_messages())
        memories = (
            await retrieve_memories(self._provider, credential, self._store, text)
            if text
            else []
        )
        system_instruction = build_system_instruction(
            self._context_provider.current(), memories
        )

        accumulated = ""
        stream = self._provider.generate(
            credential, model, system_instruction, history, new_parts
        )
        async with stream:
            async for delta in stream:
                accumulated += delta
                if on_delta is not None:
                    await on_delta(accumulated)
        return accumulated, history

    # -- Memory post-processing -----------------------------------------------

    def _schedule_memory(self, credential: str, conversation: list[Turn]) -> None:
        if not settings.memory_extraction_enabled:
            return
        self._memory_task = asyncio.create_task(self._remember(credential, conversation))

    async def _remember(self, credential: str, conversation: list[Turn]) -> None:
        try:
            facts = await extract_memories(self._provider, credential, conversation)
            await store_memories(self._store, facts)
        except Exception:
            logger.exception("Memory post-processing failed (non-fatal)")

    async def wait_for_memory(self) -> None:
        """Wait for the last turn's extraction and storage to finish."""
        task, self._memory_task = self._memory_task, None
        if task is not None:
            await task

    # -- Pass-throughs ---------------------------------------------------------

    async def get_messages(self) -> list[ConversationMessage]:
        return await self._store.get_messages()

    async def clear_history(self) -> None:
        await self._store.clear_messages()

    async def list_memories(self) -> list[MemoryItem]:
        return await self._store.get_all_memory()

    async def clear_memories(self) -> None:
        await self._store.clear_memory()
