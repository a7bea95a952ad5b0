"""
Exception types for the assistant.

Every failure a component can raise derives from AssistantError so the turn
boundary (CLI) can catch one type and decide what the user sees.
"""

from typing import Optional


class AssistantError(Exception):
    """Base class for all assistant failures."""


class ConfigError(AssistantError):
    """Missing or malformed startup configuration."""


class RemoteError(AssistantError):
    """Non-success response (or transport failure) from a remote endpoint."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class RemoteTimeoutError(RemoteError):
    """A remote call exceeded the per-request timeout."""


class DecodeError(AssistantError):
    """Response body did not match the expected schema."""


class EmptyResponseError(AssistantError):
    """Completion endpoint returned zero choices."""


class StreamInterruptedError(AssistantError):
    """Connection dropped mid-stream after some text had arrived."""

    def __init__(self, message: str, partial: str):
        super().__init__(message)
        self.partial = partial


class EmbeddingError(AssistantError):
    """Embedding endpoint failed or returned no vector."""


class PersistenceError(AssistantError):
    """Reading or writing a persisted file failed."""
