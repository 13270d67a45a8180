# Tests for the BingChat ChatHub record parser and receive loop
# Created: 2026-03-07

import json
from types import SimpleNamespace

import aiohttp
import pytest

from chatdesk.aborter import AbortController
from chatdesk.api.bingchat import RECORD_SEPARATOR, BingChatAPI, ReplyParser
from chatdesk.api.endpoint import APIEndpoint
from chatdesk.chat.models import ChatLink, ChatRole
from chatdesk.errors import AbortError, APIError, NetworkError


def update(**payload):
    payload.setdefault("author", "bot")
    return {"type": 1, "arguments": [{"messages": [payload]}]}


def result(value="Success", message=None, messages=None):
    return {"type": 2, "item": {"result": {"value": value, "message": message}, "messages": messages or []}}


@pytest.fixture
def received():
    return []


@pytest.fixture
def parser(received):
    return ReplyParser(lambda d, r: received.append((d, r)))


class TestReplyParser:
    def test_cumulative_text_becomes_tail(self, parser, received):
        parser.handle_record(update(text="Hel", messageId="m1"))
        parser.handle_record(update(text="Hello", messageId="m1"))

        assert [d.content for d, _ in received] == ["Hel", "lo"]
        assert all(d.role is ChatRole.ASSISTANT for d, _ in received)
        assert parser.started is True
        assert parser.last_id == "m1"

    def test_search_query_becomes_step(self, parser, received):
        parser.handle_record(update(messageType="InternalSearchQuery", text="Searching for: cats"))
        parser.handle_record(update(messageType="InternalLoaderMessage", text="Loading"))

        assert len(received) == 1
        assert received[0][0].steps == ["Searching for: cats"]
        assert received[0][0].content is None

    def test_links_are_diffed(self, parser, received):
        first = {"providerDisplayName": "A", "seeMoreUrl": "https://a.example"}
        second = {"providerDisplayName": "B", "seeMoreUrl": "https://b.example"}
        parser.handle_record(update(text="x", sourceAttributions=[first]))
        parser.handle_record(update(text="x", sourceAttributions=[first, second]))

        assert received[0][0].links == [ChatLink(name="A", url="https://a.example")]
        assert received[1][0].links == [ChatLink(name="B", url="https://b.example")]
        assert received[1][0].content == ""

    def test_suggestions_ride_on_response(self, parser, received):
        parser.handle_record(update(text="Hi", suggestedResponses=[{"text": " More? "}, {"text": ""}]))
        delta, response = received[0]
        assert response.suggested_replies == ["More?"]
        assert not hasattr(delta, "suggested_replies")

    def test_offense_marks_filtered(self, parser, received):
        parser.handle_record(update(text="Hmm", offense="OffenseTrigger"))
        assert received[0][1].filtered is True

    def test_nothing_new_is_skipped(self, parser, received):
        parser.handle_record(update(text="Hi"))
        parser.handle_record(update(text="Hi"))
        assert len(received) == 1

    def test_unknown_author(self, parser):
        with pytest.raises(APIError):
            parser.handle_record(update(author="user", text="Hi"))

    def test_end_of_invocation(self, parser):
        assert parser.handle_record(result()) is False
        assert parser.handle_record({"type": 3}) is True
        assert parser.handle_record({"type": 6}) is False

    def test_invalid_session(self, parser):
        with pytest.raises(APIError) as exc_info:
            parser.handle_record(result("InvalidSession", "Session expired"))
        assert exc_info.value.code == "invalid-session"
        assert "Session expired" in str(exc_info.value)

    def test_turn_limit(self, parser):
        with pytest.raises(APIError, match="turn limit"):
            parser.handle_record(result(messages=[{"contentOrigin": "TurnLimiter"}]))

    def test_disengaged(self, parser):
        with pytest.raises(APIError, match="disengaged"):
            parser.handle_record(result(messages=[{"hiddenText": "Conversation disengaged."}]))


class FakeWebSocket:
    def __init__(self, texts):
        self.texts = texts

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for text in self.texts:
            yield SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=text)

    def exception(self):
        return None


def frame(*records):
    return "".join(json.dumps(r) + RECORD_SEPARATOR for r in records)


@pytest.fixture
def api():
    api = BingChatAPI(APIEndpoint(type="BingChat", name="Bing", cookie="_U=abc"))
    api.session = {
        "conversation_id": "conv",
        "client_id": "client",
        "conversation_signature": "sig",
        "invocation_id": 0,
    }
    return api


class TestBingChatAPI:
    def test_highly_rate_limited(self, api):
        assert api.is_highly_rate_limited is True

    def test_build_invocation_advances_counter(self, api):
        first = api.build_invocation("Hi")
        second = api.build_invocation("Again")

        assert first["type"] == 4
        assert first["invocationId"] == "0"
        assert first["arguments"][0]["isStartOfSession"] is True
        assert first["arguments"][0]["message"]["text"] == "Hi"
        assert first["arguments"][0]["optionsSets"][0] == "harmonyv3"
        assert second["invocationId"] == "1"
        assert second["arguments"][0]["isStartOfSession"] is False
        assert api.session["invocation_id"] == 2

    def test_tone_param(self, api):
        api.set_param("tone", "h3precise")
        assert api.build_invocation("Hi")["arguments"][0]["optionsSets"][0] == "h3precise"

    async def test_receive_until_end_record(self, api, parser, received):
        ws = FakeWebSocket([frame({}, update(text="Hel")), frame(update(text="Hello"), result(), {"type": 3})])
        await api._receive(ws, parser, None)
        assert [d.content for d, _ in received] == ["Hel", "lo"]

    async def test_closed_without_end_record(self, api, parser):
        ws = FakeWebSocket([frame(update(text="Hel"))])
        with pytest.raises(NetworkError):
            await api._receive(ws, parser, None)

    async def test_aborted_while_receiving(self, api, parser):
        controller = AbortController()
        controller.abort()
        ws = FakeWebSocket([frame(update(text="Hel"))])
        with pytest.raises(AbortError):
            await api._receive(ws, parser, controller.signal)

    def test_clone_starts_new_conversation(self, api):
        assert api.clone().session is None
