"""Ollama chat adapter (``/api/chat`` with NDJSON streaming)."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from chatdesk.aborter import AbortSignal
from chatdesk.api.base import ChatCompletionAPI, OnMessageDelta
from chatdesk.api.endpoint import APIEndpoint
from chatdesk.api.http import HTTPClientMixin, raise_for_api_status, translate_http_errors
from chatdesk.chat.models import ChatMessage, ChatResponse, ChatRole, MessageDelta
from chatdesk.errors import APIError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "http://localhost:11434"
DEFAULT_MODEL = "llama3.2"


class OllamaChatAPI(HTTPClientMixin, ChatCompletionAPI):
    type_name = "Ollama"

    def __init__(self, endpoint: APIEndpoint, *, timeout: float | None = None):
        if endpoint.type != self.type_name:
            raise ValueError(f"Expect {self.type_name} endpoint in OllamaChatAPI.")
        super().__init__(endpoint, timeout=timeout)

    def build_request(self, history: Sequence[ChatMessage]) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self.get_param("model", DEFAULT_MODEL),
            "messages": [{"role": m.role.value, "content": m.content} for m in history],
            "stream": True,
        }
        temperature = self.get_param("temperature")
        if temperature is not None and temperature != "":
            request["options"] = {"temperature": float(temperature)}
        return request

    async def send_conversation(
        self,
        history: Sequence[ChatMessage],
        *,
        signal: AbortSignal | None = None,
        on_message_delta: OnMessageDelta,
    ) -> None:
        host = (self.endpoint.url or DEFAULT_HOST).rstrip("/")
        async with translate_http_errors(), self.create_http_client() as client:
            async with client.stream(
                "POST", f"{host}/api/chat", json=self.build_request(history)
            ) as response:
                await raise_for_api_status(response)
                async for line in response.aiter_lines():
                    if signal is not None:
                        signal.raise_if_aborted()
                    if not line.strip():
                        continue
                    on_message_delta(*_parse_line(line))


def _parse_line(line: str) -> tuple[MessageDelta, ChatResponse]:
    try:
        data = json.loads(line)
    except ValueError as e:
        raise APIError(f"Unexpected data from Ollama: {line}") from e
    if data.get("error"):
        raise APIError(str(data["error"]))

    message = data.get("message") or {}
    delta = MessageDelta(content=message.get("content") or None)
    if message.get("role"):
        delta.role = ChatRole.parse(message["role"])
    return delta, ChatResponse(pending=not data.get("done", False))


__all__ = ["OllamaChatAPI"]
