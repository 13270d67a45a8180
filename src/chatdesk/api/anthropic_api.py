"""Anthropic Messages API adapter (streaming)."""

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

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_MAX_TOKENS = 4096


class AnthropicChatAPI(ChatCompletionAPI):
    type_name = "Anthropic API"

    def __init__(self, endpoint: APIEndpoint, *, timeout: float | None = None):
        if endpoint.type != self.type_name:
            raise ValueError(f"Expect {self.type_name} endpoint in AnthropicChatAPI.")
        super().__init__(endpoint, timeout=timeout)

    def create_client(self):
        """Create an ``AsyncAnthropic`` client for this endpoint."""
        from anthropic import AsyncAnthropic

        kwargs: dict[str, Any] = {
            "api_key": self.endpoint.key,
            "timeout": self.timeout,
            "max_retries": 0,
        }
        if self.endpoint.url:
            kwargs["base_url"] = self.endpoint.url
        return AsyncAnthropic(**kwargs)

    def build_request(self, history: Sequence[ChatMessage]) -> dict[str, Any]:
        system = "\n\n".join(m.content for m in history if m.role == ChatRole.SYSTEM)
        request: dict[str, Any] = {
            "model": self.get_param("model", DEFAULT_MODEL),
            "max_tokens": int(self.get_param("max_tokens", DEFAULT_MAX_TOKENS)),
            "messages": [
                {"role": m.role.value, "content": m.content}
                for m in history
                if m.role != ChatRole.SYSTEM
            ],
        }
        if system:
            request["system"] = system
        temperature = self.get_param("temperature")
        if temperature is not None and temperature != "":
            request["temperature"] = float(temperature)
        return request

    async def send_conversation(
        self,
        history: Sequence[ChatMessage],
        *,
        signal: AbortSignal | None = None,
        on_message_delta: OnMessageDelta,
    ) -> None:
        import anthropic

        client = self.create_client()
        message_id: str | None = None
        filtered = False
        first = True
        try:
            async with client.messages.stream(**self.build_request(history)) as stream:
                async for event in stream:
                    if signal is not None:
                        signal.raise_if_aborted()
                    if event.type == "message_start":
                        message_id = event.message.id
                    elif event.type == "content_block_delta" and event.delta.type == "text_delta":
                        delta = MessageDelta(content=event.delta.text)
                        if first:
                            delta.role = ChatRole.ASSISTANT
                            first = False
                        on_message_delta(delta, ChatResponse(pending=True, id=message_id))
                    elif event.type == "message_delta":
                        filtered = event.delta.stop_reason == "refusal"
        except anthropic.APIConnectionError as e:
            raise NetworkError(f"Connection error: {e}") from e
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
            raise APIError(e.message, code="refresh") from e
        except anthropic.APIStatusError as e:
            raise APIError(e.message) from e
        except anthropic.APIError as e:
            raise APIError(str(e)) from e
        finally:
            await client.close()

        if first:
            raise APIError("Refused to answer." if filtered else "Empty response from API.")
        on_message_delta(MessageDelta(), ChatResponse(pending=False, id=message_id, filtered=filtered))


__all__ = ["AnthropicChatAPI"]
