"""Chat engine: messages, single and multi conversation services, titles.

Services live in submodules (``chatdesk.chat.service``,
``chatdesk.chat.multi``) so that adapters can import the message models
without pulling in the services.
"""

from chatdesk.chat.models import (
    ChatLink,
    ChatMessage,
    ChatResponse,
    ChatRole,
    ExchangeState,
    MessageDelta,
    PendingMessage,
)

__all__ = [
    "ChatLink",
    "ChatMessage",
    "ChatResponse",
    "ChatRole",
    "ExchangeState",
    "MessageDelta",
    "PendingMessage",
]
