"""Best-effort conversation naming.

The title exchange never touches the primary conversation: completion APIs
get a one-shot prompt, conversation APIs get a clone with a fresh session,
and rate-limited backends get a title made from the first words of the last
message without any network traffic.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from chatdesk.aborter import AbortSignal, run_abortable
from chatdesk.api.base import ChatCompletionAPI, ChatConversationAPI, WebAPI
from chatdesk.chat.models import ChatMessage, ChatResponse, ChatRole, MessageDelta

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """\
Name the conversation based on following chat records:

---
{records}
---

Provide a concise name, within 15 characters and without quotation marks.
The name should be in the same language used by the conversation.

The conversation is named:
"""

_QUOTES = "\"'“”‘’「」『』"


def clean_title(text: str) -> str:
    """Strip wrapping quotes, one trailing period and surrounding whitespace."""
    title = text.strip()
    if len(title) >= 2 and title[0] in _QUOTES and title[-1] in _QUOTES:
        title = title[1:-1].strip()
    if title.endswith("."):
        title = title[:-1]
    return title.strip()


def first_sentence(content: str) -> str:
    """The first few words of *content*, kept under roughly 15 characters."""
    words = content[:30].split(" ")[:5]
    # Likely a language that does not separate words with spaces.
    if len(words) < 3:
        return words[0][:10]
    sentence = ""
    for word in words:
        sentence += word + " "
        if len(sentence) > 15:
            break
    return sentence


class TitleGenerator:
    def __init__(self, *, content_limit: int = 100):
        self.content_limit = content_limit

    def build_prompt(self, conversation: Sequence[ChatMessage]) -> str:
        records = "\n\n".join(
            f"{m.role.value.capitalize()}: {self._strip_content(m.content)}"
            for m in conversation
        )
        return PROMPT_TEMPLATE.format(records=records)

    async def generate_for_conversation(
        self,
        conversation: Sequence[ChatMessage],
        api: WebAPI,
        *,
        signal: AbortSignal | None = None,
    ) -> str:
        """Return a cleaned title for *conversation*, possibly empty.

        Errors from the backend propagate; the caller decides to ignore them.
        """
        if not conversation:
            return ""
        pieces: list[str] = []

        def on_delta(delta: MessageDelta, response: ChatResponse) -> None:
            if delta.content:
                pieces.append(delta.content)

        if isinstance(api, ChatCompletionAPI):
            prompt = self.build_prompt(conversation)
            await self._run(
                api.send_conversation(
                    [ChatMessage(role=ChatRole.USER, content=prompt)],
                    signal=signal,
                    on_message_delta=on_delta,
                ),
                signal,
            )
        elif isinstance(api, ChatConversationAPI) and not api.is_highly_rate_limited:
            prompt = self.build_prompt(conversation)
            scratch = api.clone()
            await self._run(
                scratch.send_message(prompt, signal=signal, on_message_delta=on_delta),
                signal,
            )
            if scratch.can_remove_from_server:
                try:
                    await scratch.remove_from_server()
                except Exception as e:
                    logger.debug("Could not delete title conversation: %s", e)
        else:
            pieces.append(first_sentence(conversation[-1].content))
            # Keep the call asynchronous even without network traffic.
            await asyncio.sleep(0)

        return clean_title("".join(pieces))

    async def _run(self, coro, signal: AbortSignal | None) -> None:
        if signal is None:
            await coro
        else:
            await run_abortable(coro, signal)

    def _strip_content(self, content: str) -> str:
        if len(content) > self.content_limit:
            return content[: self.content_limit] + "..."
        return content


__all__ = ["TitleGenerator", "clean_title", "first_sentence", "PROMPT_TEMPLATE"]
