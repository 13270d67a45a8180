# In-process fake adapters shared by the tests.
# Created: 2026-03-06

import asyncio

from chatdesk.api.base import ChatCompletionAPI, ChatConversationAPI
from chatdesk.api.endpoint import APIEndpoint
from chatdesk.chat.models import ChatResponse, ChatRole, MessageDelta

# Script step that blocks until the adapter task is cancelled.
HANG = "hang"


def reply(text: str, response_id: str = "r1") -> list:
    """A well-formed two-step reply: one content delta, then the terminal delta."""
    return [
        (MessageDelta(role=ChatRole.ASSISTANT, content=text), ChatResponse(pending=True, id=response_id)),
        (MessageDelta(), ChatResponse(pending=False, id=response_id)),
    ]


async def play(script: list, on_message_delta) -> None:
    for step in script:
        if isinstance(step, BaseException):
            raise step
        if step == HANG:
            await asyncio.Event().wait()
        await asyncio.sleep(0)
        on_message_delta(*step)


class FakeCompletionAPI(ChatCompletionAPI):
    """Completion adapter that plays queued scripts; default reply is "Hi"."""

    type_name = "Fake Completion"

    def __init__(self, endpoint: APIEndpoint | None = None, *, timeout: float | None = None):
        super().__init__(endpoint or APIEndpoint(type=self.type_name, name="Fake"), timeout=timeout)
        self.scripts: list[list] = []
        self.calls: list[list] = []

    async def send_conversation(self, history, *, signal=None, on_message_delta):
        self.calls.append(list(history))
        script = self.scripts.pop(0) if self.scripts else reply("Hi")
        await play(script, on_message_delta)


class FakeConversationAPI(ChatConversationAPI):
    """Conversation adapter that counts turns in its session."""

    type_name = "Fake Conversation"
    can_remove_from_server = True
    can_remove_messages_after = True

    def __init__(self, endpoint: APIEndpoint | None = None, *, timeout: float | None = None):
        super().__init__(endpoint or APIEndpoint(type=self.type_name, name="Fake"), timeout=timeout)
        self.scripts: list[list] = []
        self.calls: list[str] = []
        self.removed_from_server = 0
        self.removed_after: list[int] = []

    async def send_message(self, text, *, signal=None, on_message_delta):
        self.calls.append(text)
        session = self.session or {"turns": []}
        session["turns"] = [*session["turns"], text]
        self.session = session
        script = self.scripts.pop(0) if self.scripts else reply("Hi")
        await play(script, on_message_delta)

    async def remove_from_server(self):
        self.removed_from_server += 1

    async def remove_messages_after(self, index):
        self.removed_after.append(index)


class RateLimitedConversationAPI(FakeConversationAPI):
    type_name = "Rate Limited"
    is_highly_rate_limited = True
    can_remove_messages_after = False


