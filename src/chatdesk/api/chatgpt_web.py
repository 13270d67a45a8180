"""ChatGPT web backend adapter (conversation API over HTTP + SSE).

The server keeps the conversation. The session records the server's
conversation id and the chain of message ids; ``message_ids[0]`` is a
client generated root and ``message_ids[i]`` is the id of history entry
``i - 1``.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from chatdesk.aborter import AbortSignal
from chatdesk.api.base import ChatConversationAPI, OnMessageDelta
from chatdesk.api.endpoint import APIEndpoint
from chatdesk.api.http import HTTPClientMixin, error_detail, translate_http_errors
from chatdesk.api.sse import SSEEvent, iter_sse_events
from chatdesk.chat.models import ChatResponse, ChatRole, MessageDelta
from chatdesk.errors import APIError

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://chat.openai.com/backend-api/conversation"


class ChatGPTWebAPI(HTTPClientMixin, ChatConversationAPI):
    type_name = "ChatGPT Web"

    can_remove_from_server = True
    can_remove_messages_after = True

    def __init__(self, endpoint: APIEndpoint, *, timeout: float | None = None):
        if endpoint.type != self.type_name:
            raise ValueError(f"Expect {self.type_name} endpoint in ChatGPTWebAPI.")
        super().__init__(endpoint, timeout=timeout)

    @property
    def url(self) -> str:
        return (self.endpoint.url or DEFAULT_URL).rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.get_param('token', '')}",
        }
        user_agent = self.get_param("userAgent")
        if user_agent:
            headers["User-Agent"] = user_agent
        if self.endpoint.cookie:
            headers["Cookie"] = self.endpoint.cookie
        return headers

    async def send_message(
        self,
        text: str,
        *,
        signal: AbortSignal | None = None,
        on_message_delta: OnMessageDelta,
    ) -> None:
        if not self.session:
            self.session = {"message_ids": [str(uuid.uuid4())]}
        message_ids: list[str] = self.session["message_ids"]

        message_id = str(uuid.uuid4())
        body: dict[str, Any] = {
            "action": "next",
            "model": self.get_param("model"),
            "parent_message_id": message_ids[-1],
            "messages": [
                {
                    "id": message_id,
                    "author": {"role": "user"},
                    "content": {"content_type": "text", "parts": [text]},
                }
            ],
        }
        if self.session.get("conversation_id"):
            body["conversation_id"] = self.session["conversation_id"]

        state = {"first_delta": True, "last_content": "", "last_id": None}
        async with translate_http_errors(), self.create_http_client() as client:
            async with client.stream("POST", self.url, json=body, headers=self._headers()) as response:
                if response.status_code == 403:
                    raise APIError("Access token expired.", code="refresh")
                if response.status_code == 401:
                    raise APIError("Authentication token expired.", code="relogin")
                if response.status_code != 200:
                    raise APIError(await error_detail(response))

                message_ids.append(message_id)
                async for event in iter_sse_events(response.aiter_lines()):
                    if signal is not None:
                        signal.raise_if_aborted()
                    if self._handle_event(event, state, on_message_delta):
                        break

        if not state["first_delta"]:
            on_message_delta(MessageDelta(), ChatResponse(pending=False, id=state["last_id"]))

    def _handle_event(self, event: SSEEvent, state: dict[str, Any], on_message_delta: OnMessageDelta) -> bool:
        """Process one SSE event; return True when the stream is finished."""
        if event.event == "ping":
            return False
        if not event.data:
            raise APIError(f"Unexpected message from ChatGPT: {event}")
        if event.data == "[DONE]":
            return True
        try:
            data = json.loads(event.data)
        except ValueError as e:
            raise APIError(f"Unexpected data from ChatGPT: {event.data}") from e

        assert self.session is not None
        if data.get("conversation_id"):
            self.session["conversation_id"] = data["conversation_id"]
        message = data.get("message")
        if not message or (message.get("author") or {}).get("role") != "assistant":
            return False

        if state["first_delta"]:
            self.session["message_ids"].append(message["id"])
            state["first_delta"] = False
        state["last_id"] = message["id"]

        delta = MessageDelta(role=ChatRole.ASSISTANT)
        parts = (message.get("content") or {}).get("parts") or []
        content = parts[0] if parts and isinstance(parts[0], str) else ""
        if content:
            # The server sends the full text so far; forward only the new tail.
            delta.content = content[len(state["last_content"]):]
            state["last_content"] = content
        on_message_delta(delta, ChatResponse(pending=True, id=message["id"]))
        return False

    async def remove_from_server(self) -> None:
        if not self.session or not self.session.get("conversation_id"):
            return
        async with translate_http_errors(), self.create_http_client() as client:
            response = await client.patch(
                f"{self.url}/{self.session['conversation_id']}",
                json={"is_visible": False},
                headers=self._headers(),
            )
            if response.status_code != 200:
                raise APIError(await error_detail(response))
        logger.debug("Removed conversation %s from server", self.session["conversation_id"])

    async def remove_messages_after(self, index: int) -> None:
        if not self.session:
            return
        # message_ids[0] is the root, so history index i lives at i + 1.
        del self.session["message_ids"][index + 1:]


__all__ = ["ChatGPTWebAPI"]
