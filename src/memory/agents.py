"""Memory pipeline: extraction, storage and retrieval agents.

After each exchange the extraction agent asks the model what is worth
remembering and the storage agent appends it to the ``memory`` collection.
Before each turn the retrieval agent asks the model which stored memories
matter for the new message.

Every agent is fail-soft: errors are logged and mapped to an empty result,
never raised to the caller.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from src.config import settings
from src.llm.models import memory_model
from src.llm.provider import ImagePart, TextPart
from src.memory.parsing import MalformedAgentResponse, parse_string_list

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from src.llm.provider import GenerationProvider, Turn
    from src.storage.store import PersistentStore

logger = logging.getLogger(__name__)

EXTRACTION_KEY = "memory"
RETRIEVAL_KEY = "relevant_memories"


# -- Prompt building -----------------------------------------------------------


def _render_turn(turn: Turn) -> str:
    pieces = []
    for part in turn.parts:
        if isinstance(part, TextPart):
            pieces.append(part.text)
        elif isinstance(part, ImagePart):
            pieces.append(f"[image: {part.mime_type}]")
    return f"<{turn.role}>{' '.join(pieces)}</{turn.role}>"


def build_extraction_prompt(conversation: Sequence[Turn]) -> str:
    transcript = "\n".join(_render_turn(t) for t in conversation)
    return (
        "You are a memory agent. Your task is to analyze the following conversation "
        "and extract key information to be stored in a long-term memory.\n"
        "Extract facts, user preferences, and any other important details that should "
        "be remembered for future conversations.\n"
        f'Return ONLY the information as a valid JSON object with a single key "{EXTRACTION_KEY}" '
        "which contains an array of strings.\n"
        "If no new information is present, return an empty array.\n\n"
        f"Conversation:\n<conversation>\n{transcript}\n</conversation>"
    )


def build_retrieval_prompt(memories: Sequence[str], query: str, limit: int) -> str:
    return (
        "You are a retrieval agent. Your task is to select the most relevant memories "
        "from the following list to help answer the user's query.\n"
        f'Return ONLY the most relevant memories as a valid JSON object with a single key '
        f'"{RETRIEVAL_KEY}" which contains an array of strings.\n'
        f"Do not return more than {limit} memories.\n\n"
        f"Memories:\n{json.dumps(list(memories), ensure_ascii=False)}\n\n"
        f"Query:\n{query}"
    )


# -- Agents --------------------------------------------------------------------


async def extract_memories(
    provider: GenerationProvider,
    credential: str,
    conversation: Sequence[Turn],
) -> list[str]:
    """Ask the model for newly learned facts and preferences.

    Returns an empty list when the call fails or the reply is malformed.
    """
    try:
        reply = await provider.complete(
            credential, memory_model(), build_extraction_prompt(conversation)
        )
    except Exception:
        logger.exception("Memory extraction failed (non-fatal)")
        return []

    result = parse_string_list(reply, EXTRACTION_KEY)
    if isinstance(result, MalformedAgentResponse):
        logger.warning("Ignoring malformed extraction reply: %s", result.reason)
        return []
    return result.items


async def store_memories(store: PersistentStore, facts: Iterable[str]) -> int:
    """Append each fact to the memory collection. Returns how many were saved.

    Writes run one at a time; a failed write is logged and the next fact is
    still attempted.
    """
    saved = 0
    for fact in facts:
        try:
            await store.save_memory(fact)
        except Exception:
            logger.exception("Failed to store memory: %s", fact[:80])
            continue
        saved += 1
    if saved:
        logger.info("Stored %d new memory item(s)", saved)
    return saved


async def retrieve_memories(
    provider: GenerationProvider,
    credential: str,
    store: PersistentStore,
    query: str,
    limit: int | None = None,
) -> list[str]:
    """Select the stored memories most relevant to *query*.

    An empty memory collection short-circuits without a model call.
    """
    if limit is None:
        limit = settings.retrieval_limit
    try:
        items = await store.get_all_memory()
    except Exception:
        logger.exception("Memory retrieval failed (non-fatal)")
        return []

    if not items:
        return []

    try:
        reply = await provider.complete(
            credential,
            memory_model(),
            build_retrieval_prompt([m.text for m in items], query, limit),
        )
    except Exception:
        logger.exception("Memory retrieval failed (non-fatal)")
        return []

    result = parse_string_list(reply, RETRIEVAL_KEY)
    if isinstance(result, MalformedAgentResponse):
        logger.warning("Ignoring malformed retrieval reply: %s", result.reason)
        return []
    return result.items[:limit]
