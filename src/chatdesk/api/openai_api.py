"""OpenAI-compatible chat completion adapter.

Uses the official ``openai`` SDK in streaming mode, so any server that
speaks the ``/chat/completions`` protocol (OpenAI, Azure proxies, vLLM,
LM Studio) works by pointing the endpoint url at it.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from chatdesk.aborter import AbortSignal
from chatdesk.api.base import ChatCompletionAPI, OnMessageDelta
from chatdesk.api.endpoint import APIEndpoint
from chatdesk.chat.models import ChatMessage, ChatResponse, ChatRole, MessageDelta
from chatdesk.errors import APIError, NetworkError

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"

# Optional request fields read from params, with their converters.
_NUMERIC_PARAMS = {
    "temperature": float,
    "max_tokens": int,
    "presence_penalty": float,
}


class OpenAIChatAPI(ChatCompletionAPI):
    """Streams replies from an OpenAI-compatible endpoint."""

    type_name = "OpenAI API"

    def __init__(self, endpoint: APIEndpoint, *, timeout: float | None = None):
        if endpoint.type != self.type_name:
            raise ValueError(f"Expect {self.type_name} endpoint in OpenAIChatAPI.")
        super().__init__(endpoint, timeout=timeout)

    def create_client(self):
        """Create an ``AsyncOpenAI`` client; retries are left to the caller."""
        from openai import AsyncOpenAI

        return AsyncOpenAI(
            api_key=self.endpoint.key or "none",
            base_url=_base_url(self.endpoint.url),
            timeout=self.timeout,
            max_retries=0,
        )

    def build_request(self, history: Sequence[ChatMessage]) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self.get_param("model", DEFAULT_MODEL),
            "stream": True,
            "messages": [{"role": m.role.value, "content": m.content} for m in history],
        }
        for name, convert in _NUMERIC_PARAMS.items():
            value = self.get_param(name)
            if value is not None and value != "":
                request[name] = convert(value)
        return request

    async def send_conversation(
        self,
        history: Sequence[ChatMessage],
        *,
        signal: AbortSignal | None = None,
        on_message_delta: OnMessageDelta,
    ) -> None:
        import openai

        client = self.create_client()
        try:
            stream = await client.chat.completions.create(**self.build_request(history))
            first_content = True
            try:
                async for chunk in stream:
                    if signal is not None:
                        signal.raise_if_aborted()
                    if not chunk.choices:
                        continue
                    delta, response = _parse_chunk(chunk, first_content)
                    if delta.content:
                        first_content = False
                    on_message_delta(delta, response)
            finally:
                await stream.close()
        except openai.APIConnectionError as e:
            raise NetworkError(f"Connection error: {e}") from e
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise APIError(e.message, code="refresh") from e
        except openai.APIStatusError as e:
            raise APIError(e.message) from e
        except openai.APIError as e:
            raise APIError(str(e)) from e
        finally:
            await client.close()


def _base_url(url: str | None) -> str:
    if not url:
        return DEFAULT_URL
    url = url.rstrip("/")
    suffix = "/chat/completions"
    if url.endswith(suffix):
        url = url[: -len(suffix)]
    return url


def _parse_chunk(chunk: Any, first_content: bool) -> tuple[MessageDelta, ChatResponse]:
    choice = chunk.choices[0]
    response = ChatResponse(pending=False, id=chunk.id)
    finish_reason = choice.finish_reason
    if finish_reason is None:
        response.pending = True
    elif finish_reason == "content_filter":
        response.filtered = True
    elif finish_reason not in ("stop", "length"):
        raise APIError(f"Unknown finish_reason: {finish_reason}")

    delta = MessageDelta()
    if choice.delta is not None:
        if choice.delta.role:
            delta.role = ChatRole.parse(choice.delta.role)
        content = choice.delta.content
        if content:
            # The first token often starts with whitespace.
            delta.content = content.lstrip() if first_content else content
    return delta, response


__all__ = ["OpenAIChatAPI"]
