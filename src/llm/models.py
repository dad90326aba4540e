"""Model name resolution for the chat and memory calls."""

import logging

from src.config import settings

logger = logging.getLogger(__name__)

MODEL_MAP: dict[str, str] = {
    "haiku": "claude-haiku-4-5-20251001",
    "sonnet": "claude-sonnet-4-5-20250929",
    "opus": "claude-opus-4-1-20250805",
}

# Reverse lookup: full model string → friendly name
FRIENDLY_NAMES: dict[str, str] = {v: k for k, v in MODEL_MAP.items()}


def resolve(name_or_id: str) -> str:
    """Resolve a friendly name to a full model ID.

    Unknown names pass through untouched so newer model IDs work without a
    code change.
    """
    name = name_or_id.strip()
    return MODEL_MAP.get(name.lower(), name)


def friendly(model_id: str) -> str:
    """Return the friendly name for a model ID, or the ID itself."""
    return FRIENDLY_NAMES.get(model_id, model_id)


def default_chat_model() -> str:
    return resolve(settings.default_model)


def memory_model() -> str:
    """Model used by the extraction and retrieval agents."""
    model_id = resolve(settings.memory_model)
    logger.debug("Memory model: %s", friendly(model_id))
    return model_id
