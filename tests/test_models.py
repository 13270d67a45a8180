# Tests for chat data models
# Created: 2026-03-06

import pytest

from chatdesk.chat.models import (
    ChatLink,
    ChatMessage,
    ChatResponse,
    ChatRole,
    MessageDelta,
    PendingMessage,
)
from chatdesk.errors import ProtocolError


class TestChatRole:
    def test_parse_any_case(self):
        assert ChatRole.parse("User") is ChatRole.USER
        assert ChatRole.parse("ASSISTANT") is ChatRole.ASSISTANT
        assert ChatRole.parse(ChatRole.SYSTEM) is ChatRole.SYSTEM

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            ChatRole.parse("robot")


class TestChatMessage:
    def test_to_dict_omits_empty_fields(self):
        message = ChatMessage(role=ChatRole.USER, content="Hi")
        assert message.to_dict() == {"role": "user", "content": "Hi"}

    def test_from_dict_with_links_and_steps(self):
        message = ChatMessage.from_dict(
            {
                "role": "Assistant",
                "content": "See docs",
                "steps": ["Searching for docs"],
                "links": [{"name": "Docs", "url": "https://example.com"}],
            }
        )
        assert message.role is ChatRole.ASSISTANT
        assert message.steps == ("Searching for docs",)
        assert message.links == (ChatLink(name="Docs", url="https://example.com"),)
        assert ChatMessage.from_dict(message.to_dict()) == message

    def test_updated_replaces_present_fields_only(self):
        message = ChatMessage(role=ChatRole.ASSISTANT, content="old", steps=("a",))
        edited = message.updated(MessageDelta(content="new"))
        assert edited == ChatMessage(role=ChatRole.ASSISTANT, content="new", steps=("a",))
        assert message.content == "old"

    def test_messages_are_immutable(self):
        message = ChatMessage(role=ChatRole.USER, content="Hi")
        with pytest.raises(AttributeError):
            message.content = "changed"


class TestPendingMessage:
    def test_concatenates_content(self):
        pending = PendingMessage()
        pending.apply(MessageDelta(role=ChatRole.ASSISTANT, content="Hel"))
        pending.apply(MessageDelta(content="lo"))
        assert pending.to_message() == ChatMessage(role=ChatRole.ASSISTANT, content="Hello")

    def test_later_role_is_ignored(self):
        pending = PendingMessage()
        pending.apply(MessageDelta(role=ChatRole.ASSISTANT, content="a"))
        pending.apply(MessageDelta(role=ChatRole.USER, content="b"))
        assert pending.role is ChatRole.ASSISTANT

    def test_first_delta_needs_role(self):
        with pytest.raises(ProtocolError):
            PendingMessage().apply(MessageDelta(content="x"))

    def test_blank_content_is_incomplete(self):
        pending = PendingMessage()
        pending.apply(MessageDelta(role=ChatRole.ASSISTANT, content="  "))
        assert pending.has_content() is False
        with pytest.raises(ProtocolError):
            pending.to_message()

    def test_steps_and_links_extend(self):
        link = ChatLink(name="a", url="https://a.example")
        pending = PendingMessage()
        pending.apply(MessageDelta(role=ChatRole.ASSISTANT, steps=["one"]))
        pending.apply(MessageDelta(content="x", steps=["two"], links=[link]))
        message = pending.to_message()
        assert message.steps == ("one", "two")
        assert message.links == (link,)


class TestMessageDelta:
    def test_is_empty(self):
        assert MessageDelta().is_empty() is True
        assert MessageDelta(content="x").is_empty() is False

    def test_response_defaults(self):
        response = ChatResponse(pending=True)
        assert response.filtered is False
        assert response.aborted is False
        assert response.suggested_replies is None
