"""Error taxonomy shared by the chat engine and the API adapters.

Network and API errors are absorbed by ``ChatService`` into ``last_error``.
State and protocol errors are programming mistakes and always propagate.
"""

from __future__ import annotations


class ChatDeskError(Exception):
    """Base class for all chatdesk errors."""


class NetworkError(ChatDeskError):
    """Transport-level failure (connection refused, reset, closed early)."""


class APIError(ChatDeskError):
    """The remote endpoint reported a structured failure.

    Args:
        message: Human readable description from the server.
        code: Optional recovery hint for the UI layer, e.g. ``"refresh"``
            when credentials expired or ``"relogin"`` when the user has to
            authenticate again.
    """

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class AbortError(ChatDeskError):
    """The exchange was cancelled by the caller."""

    def __init__(self, message: str = "The operation was aborted."):
        super().__init__(message)


class ProtocolError(ChatDeskError):
    """An adapter sent structurally invalid data."""


class StateError(ChatDeskError):
    """An operation was invoked against a service invariant."""


__all__ = [
    "ChatDeskError",
    "NetworkError",
    "APIError",
    "AbortError",
    "ProtocolError",
    "StateError",
]
