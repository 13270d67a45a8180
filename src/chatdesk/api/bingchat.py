"""BingChat adapter (conversation API over a raw WebSocket).

Requires a logged-in ``_U`` cookie on the endpoint.

Protocol summary:
  - GET the create url to obtain a conversation id, client id and signature.
  - Open the ChatHub WebSocket and send the JSON handshake.
  - Send one invocation (type 4) per user message.
  - Records are JSON objects separated by ``\\x1e``: type 1 carries
    cumulative updates, type 2 the final result (or a refusal), type 3 marks
    the end of the invocation.
"""

from __future__ import annotations

import json
import logging
import secrets
from typing import Any

import aiohttp

from chatdesk.aborter import AbortSignal
from chatdesk.api.base import ChatConversationAPI, OnMessageDelta
from chatdesk.api.endpoint import APIEndpoint
from chatdesk.chat.models import ChatLink, ChatResponse, ChatRole, MessageDelta
from chatdesk.errors import AbortError, APIError, NetworkError

logger = logging.getLogger(__name__)

CREATE_URL = "https://www.bing.com/turing/conversation/create"
CHATHUB_URL = "wss://sydney.bing.com/sydney/ChatHub"
RECORD_SEPARATOR = "\x1e"

DEFAULT_TONE = "harmonyv3"

_OPTIONS_SETS = [
    "nlu_direct_response_filter",
    "deepleo",
    "disable_emoji_spoken_text",
    "responsible_ai_policy_235",
    "enablemm",
    "dtappid",
    "dv3sugg",
]

_ALLOWED_MESSAGE_TYPES = [
    "Chat",
    "InternalSearchQuery",
    "InternalSearchResult",
    "Disengaged",
    "InternalLoaderMessage",
    "SearchQuery",
]

_BROWSER_HEADERS = {
    "accept": "application/json",
    "accept-language": "en-US,en;q=0.9",
    "content-type": "application/json",
    "x-ms-useragent": "azsdk-js-api-client-factory/1.0.0-beta.1 core-rest-pipeline/1.10.0 OS/Win32",
    "Referer": "https://www.bing.com/search?q=Bing+AI&showconv=1",
}


class ReplyParser:
    """Turns ChatHub records into deltas for one invocation.

    Bing always sends the full text and the full list of sources, so the
    parser remembers what it already forwarded.
    """

    def __init__(self, on_message_delta: OnMessageDelta):
        self._on_message_delta = on_message_delta
        self._last_content = ""
        self._last_link_count = 0
        self.started = False
        self.last_id: str | None = None

    def handle_record(self, record: dict[str, Any]) -> bool:
        """Process one record; return True when the invocation finished."""
        record_type = record.get("type")
        if record_type == 1:
            messages = (record.get("arguments") or [{}])[0].get("messages")
            if messages:
                self.handle_payload(messages[0])
        elif record_type == 2:
            self._check_result(record.get("item") or {})
        elif record_type == 3:
            return True
        return False

    def _check_result(self, item: dict[str, Any]) -> None:
        result = item.get("result") or {}
        if result.get("value") != "Success":
            code = "invalid-session" if result.get("value") == "InvalidSession" else None
            raise APIError(result.get("message") or "Unknown error from BingChat.", code=code)
        messages = item.get("messages") or []
        if messages and "Conversation disengaged." in (messages[-1].get("hiddenText") or ""):
            raise APIError("Conversation disengaged.")
        if any(m.get("contentOrigin") == "TurnLimiter" for m in messages):
            raise APIError("Chat turn limit has been reached.")

    def handle_payload(self, payload: dict[str, Any]) -> None:
        if payload.get("author") != "bot":
            raise APIError(f"Unrecognized author in chat: {payload.get('author')}")
        delta = MessageDelta(role=ChatRole.ASSISTANT)

        message_type = payload.get("messageType")
        if message_type:
            if message_type != "InternalSearchQuery":
                return
            delta.steps = [payload.get("text", "")]
        else:
            text = payload.get("text")
            if text:
                delta.content = text[len(self._last_content):]
                self._last_content = text
            sources = payload.get("sourceAttributions")
            if isinstance(sources, list) and len(sources) > self._last_link_count:
                delta.links = [
                    ChatLink(name=s.get("providerDisplayName", ""), url=s.get("seeMoreUrl", ""))
                    for s in sources[self._last_link_count:]
                ]
                self._last_link_count = len(sources)

        suggested = payload.get("suggestedResponses") or []
        if not delta.steps and not delta.content and not delta.links and not suggested:
            return

        response = ChatResponse(
            pending=True,
            id=payload.get("messageId"),
            filtered=payload.get("offense") == "OffenseTrigger",
        )
        # Suggestions belong to the response, not to the stored message.
        replies = [s.get("text", "").strip() for s in suggested]
        replies = [r for r in replies if r]
        if replies:
            response.suggested_replies = replies

        self.started = True
        self.last_id = response.id or self.last_id
        self._on_message_delta(delta, response)


class BingChatAPI(ChatConversationAPI):
    type_name = "BingChat"

    is_highly_rate_limited = True

    def __init__(self, endpoint: APIEndpoint, *, timeout: float | None = None):
        if endpoint.type != self.type_name:
            raise ValueError(f"Expect {self.type_name} endpoint in BingChatAPI.")
        super().__init__(endpoint, timeout=timeout)

    def create_http_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def send_message(
        self,
        text: str,
        *,
        signal: AbortSignal | None = None,
        on_message_delta: OnMessageDelta,
    ) -> None:
        parser = ReplyParser(on_message_delta)
        try:
            async with self.create_http_session() as http:
                if not self.session:
                    await self._create_conversation(http)
                async with http.ws_connect(self.endpoint.url or CHATHUB_URL) as ws:
                    await ws.send_str(json.dumps({"protocol": "json", "version": 1}) + RECORD_SEPARATOR)
                    await ws.send_str(json.dumps(self.build_invocation(text)) + RECORD_SEPARATOR)
                    await self._receive(ws, parser, signal)
        except aiohttp.ClientError as e:
            raise NetworkError(f"Connection error: {e}") from e

        if parser.started:
            on_message_delta(MessageDelta(), ChatResponse(pending=False, id=parser.last_id))

    async def _create_conversation(self, http: aiohttp.ClientSession) -> None:
        headers = dict(_BROWSER_HEADERS)
        if self.endpoint.cookie:
            headers["cookie"] = self.endpoint.cookie
        async with http.get(CREATE_URL, headers=headers) as response:
            body = await response.json(content_type=None)
        result = body.get("result") if isinstance(body, dict) else None
        if not result:
            raise APIError(f"Invalid response when creating conversation: {body}")
        if result.get("value") != "Success":
            raise APIError(f"Unable to create conversation: {result.get('value')} - {result.get('message')}")
        self.session = {
            "conversation_id": body["conversationId"],
            "client_id": body["clientId"],
            "conversation_signature": body["conversationSignature"],
            "invocation_id": 0,
        }

    def build_invocation(self, text: str) -> dict[str, Any]:
        """Build the type-4 record for *text* and advance the invocation counter."""
        assert self.session is not None
        invocation_id = self.session["invocation_id"]
        self.session["invocation_id"] = invocation_id + 1
        return {
            "type": 4,
            "target": "chat",
            "invocationId": str(invocation_id),
            "arguments": [
                {
                    "source": "cib",
                    "optionsSets": [self.get_param("tone", DEFAULT_TONE), *_OPTIONS_SETS],
                    "allowedMessageTypes": _ALLOWED_MESSAGE_TYPES,
                    "sliceIds": [],
                    "traceId": secrets.token_hex(16),
                    "isStartOfSession": invocation_id == 0,
                    "message": {"messageType": "Chat", "author": "user", "text": text},
                    "conversationSignature": self.session["conversation_signature"],
                    "participant": {"id": self.session["client_id"]},
                    "conversationId": self.session["conversation_id"],
                }
            ],
        }

    async def _receive(self, ws: aiohttp.ClientWebSocketResponse, parser: ReplyParser, signal: AbortSignal | None) -> None:
        async for msg in ws:
            if signal is not None:
                signal.raise_if_aborted()
            if msg.type == aiohttp.WSMsgType.TEXT:
                for chunk in msg.data.split(RECORD_SEPARATOR):
                    if not chunk:
                        continue
                    if parser.handle_record(json.loads(chunk)):
                        return
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise NetworkError(f"Connection error: {ws.exception()}")

        if signal is not None and signal.aborted:
            raise AbortError()
        raise NetworkError("WebSocket closed without noticing")


__all__ = ["BingChatAPI", "ReplyParser"]
