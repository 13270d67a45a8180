"""Pydantic schemas for persisted chat data.

Field names are snake_case in Python and camelCase on disk.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class HistoryBlob(_Record):
    """One conversation's blob in the history keeper."""

    title: str | None = None
    custom_title: str | None = None
    history: list[dict[str, Any]] = Field(default_factory=list)
    # Server-side session of a conversation API.
    session: dict[str, Any] | None = None


class ChildRecord(_Record):
    """A child conversation inside a multi-chat record."""

    moment: str
    title: str | None = None
    api_params: dict[str, Any] | None = None
    params: dict[str, Any] | None = None


class ServiceRecord(_Record):
    """A top-level service in services.json."""

    name: str
    api: str
    icon: str | None = None
    api_params: dict[str, Any] | None = None
    params: dict[str, Any] | None = None
    moment: str | None = None
    title: str | None = None
    # Present only for multi-chat services.
    chats: list[ChildRecord] | None = None


__all__ = ["HistoryBlob", "ChildRecord", "ServiceRecord"]
