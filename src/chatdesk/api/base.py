"""Adapter contract for chat backends.

Created: 2026-03-02

Two variants share the ``WebAPI`` base:

- ``ChatCompletionAPI`` is stateless. Every call carries the whole history.
- ``ChatConversationAPI`` keeps a server-side session. Every call carries
  only the newest user text; ``clone()`` gives a new instance with an empty
  session.

Adapters report progress through ``on_message_delta(delta, response)``:
zero or more calls with ``pending=True`` and then, normally, one call with
``pending=False``. They raise ``NetworkError``, ``APIError`` or
``AbortError`` on failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Any, ClassVar

from chatdesk.aborter import AbortSignal
from chatdesk.api.endpoint import APIEndpoint
from chatdesk.chat.models import ChatMessage, ChatResponse, MessageDelta

OnMessageDelta = Callable[[MessageDelta, ChatResponse], None]


class WebAPI(ABC):
    """Shared base: endpoint, parameter overrides and cloning."""

    # Endpoint type this adapter serves, e.g. "OpenAI API".
    type_name: ClassVar[str] = ""

    def __init__(self, endpoint: APIEndpoint, *, timeout: float | None = None):
        self.endpoint = endpoint
        self.timeout = timeout if timeout is not None else 120.0
        self._params: dict[str, Any] = {}

    @property
    def params(self) -> dict[str, Any]:
        """Snapshot of the per-instance overrides."""
        return dict(self._params)

    @params.setter
    def params(self, value: dict[str, Any] | None) -> None:
        self._params = dict(value or {})

    def set_param(self, name: str, value: Any) -> None:
        self._params[name] = value

    def get_param(self, name: str, default: Any = None) -> Any:
        """Look up *name* in the overrides first, then in the endpoint defaults."""
        if name in self._params:
            return self._params[name]
        return self.endpoint.params.get(name, default)

    def clone(self) -> WebAPI:
        """Return an independent instance talking to the same endpoint."""
        api = type(self)(self.endpoint, timeout=self.timeout)
        api.params = self._params
        return api

    def __repr__(self) -> str:
        return f"<{type(self).__name__} endpoint={self.endpoint.name!r}>"


class ChatCompletionAPI(WebAPI):
    """Stateless chat API: the caller resends the whole history every time."""

    @abstractmethod
    async def send_conversation(
        self,
        history: Sequence[ChatMessage],
        *,
        signal: AbortSignal | None = None,
        on_message_delta: OnMessageDelta,
    ) -> None:
        """Send *history* and stream the reply through *on_message_delta*."""


class ChatConversationAPI(WebAPI):
    """Stateful chat API: the server remembers previous turns."""

    # Title generation must not spend requests on this backend.
    is_highly_rate_limited: ClassVar[bool] = False
    # ``remove_from_server`` is implemented.
    can_remove_from_server: ClassVar[bool] = False
    # ``remove_messages_after`` is implemented.
    can_remove_messages_after: ClassVar[bool] = False

    def __init__(self, endpoint: APIEndpoint, *, timeout: float | None = None):
        super().__init__(endpoint, timeout=timeout)
        self.session: dict[str, Any] | None = None

    @abstractmethod
    async def send_message(
        self,
        text: str,
        *,
        signal: AbortSignal | None = None,
        on_message_delta: OnMessageDelta,
    ) -> None:
        """Send one user message and stream the reply through *on_message_delta*."""

    async def remove_from_server(self) -> None:
        """Ask the server to delete the current conversation."""
        raise NotImplementedError(f"{type(self).__name__} cannot remove conversations")

    async def remove_messages_after(self, index: int) -> None:
        """Forget the message at *index* and everything after it."""
        raise NotImplementedError(f"{type(self).__name__} cannot remove messages")

    def clone(self) -> ChatConversationAPI:
        api = super().clone()
        assert isinstance(api, ChatConversationAPI)
        api.session = None
        return api


__all__ = [
    "OnMessageDelta",
    "WebAPI",
    "ChatCompletionAPI",
    "ChatConversationAPI",
]
