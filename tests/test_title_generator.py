# Tests for TitleGenerator
# Created: 2026-03-06

from unittest.mock import AsyncMock, patch

import pytest

from chatdesk.aborter import AbortController
from chatdesk.chat.models import ChatMessage, ChatRole
from chatdesk.chat.title import TitleGenerator, clean_title, first_sentence
from chatdesk.errors import AbortError, APIError

from fakes import FakeCompletionAPI, FakeConversationAPI, RateLimitedConversationAPI, reply


def conversation(*texts):
    roles = [ChatRole.USER, ChatRole.ASSISTANT]
    return [ChatMessage(role=roles[i % 2], content=t) for i, t in enumerate(texts)]


class TestCleanTitle:
    def test_strips_quotes_and_period(self):
        assert clean_title('"Trip plan."') == "Trip plan"

    def test_strips_typographic_quotes(self):
        assert clean_title("“Weekend recipes”") == "Weekend recipes"

    def test_strips_only_one_period(self):
        assert clean_title("Wait..") == "Wait."

    def test_trims_whitespace(self):
        assert clean_title("  Name  \n") == "Name"

    def test_empty(self):
        assert clean_title("") == ""


class TestFirstSentence:
    def test_joins_words_up_to_fifteen_chars(self):
        assert first_sentence("Hello there my good friend how are you") == "Hello there my good "

    def test_language_without_spaces(self):
        assert first_sentence("你好世界这是一个很长的句子") == "你好世界这是一个很长"

    def test_two_words(self):
        assert first_sentence("Hello world") == "Hello"


class TestPrompt:
    def test_long_content_is_capped(self):
        generator = TitleGenerator(content_limit=10)
        prompt = generator.build_prompt(conversation("a" * 50))
        assert "User: " + "a" * 10 + "..." in prompt
        assert "a" * 11 not in prompt

    def test_short_content_is_kept(self):
        prompt = TitleGenerator().build_prompt(conversation("Hi", "Hello!"))
        assert "User: Hi\n\nAssistant: Hello!" in prompt
        assert prompt.rstrip().endswith("The conversation is named:")


class TestGenerate:
    async def test_completion_api_one_shot(self):
        api = FakeCompletionAPI()
        api.scripts = [reply('"Trip plan."')]
        history = conversation("Plan a trip", "Sure")

        title = await TitleGenerator().generate_for_conversation(history, api)

        assert title == "Trip plan"
        assert len(api.calls) == 1
        sent = api.calls[0]
        assert len(sent) == 1
        assert sent[0].role is ChatRole.USER
        assert "Plan a trip" in sent[0].content

    async def test_conversation_api_uses_clone(self):
        api = FakeConversationAPI()
        api.session = {"turns": ["Plan a trip"]}
        history = conversation("Plan a trip", "Sure")

        with patch.object(FakeConversationAPI, "remove_from_server", new=AsyncMock()) as remove:
            title = await TitleGenerator().generate_for_conversation(history, api)

        assert title == "Hi"
        assert api.calls == []
        assert api.session == {"turns": ["Plan a trip"]}
        remove.assert_awaited_once()

    async def test_rate_limited_api_skips_network(self):
        api = RateLimitedConversationAPI()
        history = conversation("Plan a trip", "Here is a long answer about trips")

        title = await TitleGenerator().generate_for_conversation(history, api)

        assert title == "Here is a long answer"
        assert api.calls == []

    async def test_errors_propagate(self):
        api = FakeCompletionAPI()
        api.scripts = [[APIError("rate limited")]]
        with pytest.raises(APIError):
            await TitleGenerator().generate_for_conversation(conversation("Hi"), api)

    async def test_aborted_signal(self):
        controller = AbortController()
        controller.abort()
        with pytest.raises(AbortError):
            await TitleGenerator().generate_for_conversation(
                conversation("Hi"), FakeCompletionAPI(), signal=controller.signal
            )

    async def test_empty_conversation(self):
        assert await TitleGenerator().generate_for_conversation([], FakeCompletionAPI()) == ""
