"""Exception types shared across the chat core."""


class ChatError(Exception):
    """Base class for errors raised by the chat core."""


class ProviderError(ChatError):
    """A generation call failed for one credential.

    Covers auth, quota, network, stream aborts and malformed requests alike;
    the rotator treats every cause the same way.
    """


class AllCredentialsExhausted(ChatError):
    """Every credential failed within a single rotation cycle."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            f"All API keys failed ({attempts} attempt(s)). "
            "Please check your keys in the settings."
        )


class StoreError(ChatError):
    """A persistent store operation failed."""
