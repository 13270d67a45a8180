"""Chat data models.

Created: 2026-03-02

Design notes:
- Committed messages are frozen dataclasses; edits replace the entry.
- A message under construction lives in ``PendingMessage`` and is never
  aliased with a history entry.
- ``to_dict``/``from_dict`` produce the JSON shape stored by the history
  keeper; empty optional fields are omitted.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chatdesk.errors import ProtocolError


class ChatRole(str, Enum):
    """Author of a chat turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: str | ChatRole) -> ChatRole:
        """Parse a role, accepting any capitalisation ("User", "ASSISTANT")."""
        if isinstance(value, ChatRole):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown chat role: {value!r}") from None


class ExchangeState(str, Enum):
    """Where a ChatService is in its send/receive cycle."""

    IDLE = "idle"
    STREAMING = "streaming"  # adapter call in flight
    FINALIZING = "finalizing"  # adapter returned, committing the reply


@dataclass(frozen=True)
class ChatLink:
    name: str
    url: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "url": self.url}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatLink:
        return cls(name=str(data.get("name", "")), url=str(data.get("url", "")))


@dataclass(frozen=True)
class ChatMessage:
    """A committed chat turn."""

    role: ChatRole
    content: str = ""
    steps: tuple[str, ...] = ()
    links: tuple[ChatLink, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.steps:
            data["steps"] = list(self.steps)
        if self.links:
            data["links"] = [link.to_dict() for link in self.links]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatMessage:
        return cls(
            role=ChatRole.parse(data["role"]),
            content=data.get("content") or "",
            steps=tuple(str(s) for s in data.get("steps") or ()),
            links=tuple(ChatLink.from_dict(link) for link in data.get("links") or ()),
        )

    def updated(self, delta: MessageDelta) -> ChatMessage:
        """Return a copy with the fields present in *delta* replaced."""
        changes: dict[str, Any] = {}
        if delta.role is not None:
            changes["role"] = delta.role
        if delta.content is not None:
            changes["content"] = delta.content
        if delta.steps is not None:
            changes["steps"] = tuple(delta.steps)
        if delta.links is not None:
            changes["links"] = tuple(delta.links)
        return dataclasses.replace(self, **changes)


@dataclass
class MessageDelta:
    """An incremental fragment of a message, as produced by adapters."""

    role: ChatRole | None = None
    content: str | None = None
    steps: list[str] | None = None
    links: list[ChatLink] | None = None

    def is_empty(self) -> bool:
        return (
            self.role is None
            and not self.content
            and not self.steps
            and not self.links
        )


@dataclass
class ChatResponse:
    """Per-delta metadata. ``pending=False`` marks the message as complete."""

    pending: bool
    id: str | None = None
    filtered: bool = False
    suggested_replies: list[str] | None = None
    # Set on the terminal envelope the service synthesises after abort().
    aborted: bool = False


@dataclass
class PendingMessage:
    """Accumulates deltas into a message that is not yet in history."""

    role: ChatRole | None = None
    content: str = ""
    steps: list[str] = field(default_factory=list)
    links: list[ChatLink] = field(default_factory=list)

    def apply(self, delta: MessageDelta) -> None:
        if self.role is None:
            if delta.role is None:
                raise ProtocolError("First delta of a message must carry a role.")
            self.role = delta.role
        if delta.content:
            self.content += delta.content
        if delta.steps:
            self.steps.extend(delta.steps)
        if delta.links:
            self.links.extend(delta.links)

    def has_content(self) -> bool:
        return bool(self.content.strip())

    def to_message(self) -> ChatMessage:
        """Promote to a committed message; role and content are mandatory."""
        if self.role is None or not self.has_content():
            raise ProtocolError("Incomplete message received from API.")
        return ChatMessage(
            role=self.role,
            content=self.content.strip(),
            steps=tuple(self.steps),
            links=tuple(self.links),
        )


__all__ = [
    "ChatRole",
    "ExchangeState",
    "ChatLink",
    "ChatMessage",
    "MessageDelta",
    "ChatResponse",
    "PendingMessage",
]
