"""A container of independent conversations that share one configuration.

Created: 2026-03-05

Every child gets its own clone of the parent's adapter, so children never
share a conversation session. The collection is never empty once a public
call returns.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from chatdesk.api.base import WebAPI
from chatdesk.chat.schemas import ChildRecord, ServiceRecord
from chatdesk.chat.service import ChatService
from chatdesk.chat.web_service import WebService
from chatdesk.signals import Signal

if TYPE_CHECKING:
    from chatdesk.api.manager import APIManager

logger = logging.getLogger(__name__)


class MultiChatsService(WebService):
    """Ordered list of ``ChatService`` children, newest first."""

    def __init__(
        self,
        name: str,
        api: WebAPI,
        *,
        icon: str | None = None,
        params: dict[str, Any] | None = None,
        api_params: dict[str, Any] | None = None,
        chats: list[ChildRecord | dict[str, Any]] | None = None,
        **chat_options: Any,
    ):
        super().__init__(name, api, icon=icon, params=params, api_params=api_params)
        # history_keeper, title_generator and settings for the children.
        self._chat_options = chat_options
        self.chats: list[ChatService] = []

        self.on_new_chat = Signal("on_new_chat")
        self.on_remove_chat = Signal("on_remove_chat")
        self.on_clear_chats = Signal("on_clear_chats")

        for data in chats or []:
            child = data if isinstance(data, ChildRecord) else ChildRecord.model_validate(data)
            self.chats.append(
                self._new_chat(
                    moment=child.moment,
                    title=child.title,
                    api_params=child.api_params if child.api_params is not None else api_params,
                    params=child.params if child.params is not None else params,
                )
            )
        if not self.chats:
            self.create_chat()

    @classmethod
    def deserialize(
        cls, data: dict[str, Any], api_manager: APIManager, **chat_options: Any
    ) -> MultiChatsService:
        record = ServiceRecord.model_validate(data)
        endpoint = api_manager.get_endpoint_by_id(record.api)
        api = api_manager.create_api_for_endpoint(endpoint)
        return cls(
            record.name,
            api,
            icon=record.icon,
            params=record.params,
            api_params=record.api_params,
            chats=record.chats,
            **chat_options,
        )

    def _new_chat(self, **kwargs: Any) -> ChatService:
        chat = ChatService(
            self.name,
            self.api.clone(),
            icon=self.icon,
            **kwargs,
            **self._chat_options,
        )
        chat.on_config_change.connect(self.on_config_change.emit)
        return chat

    def to_record(self) -> ServiceRecord:
        record = super().to_record()
        parent_api_params = self.api.params
        children = []
        for chat in self.chats:
            if not chat.moment:
                continue
            child = ChildRecord(moment=chat.moment, title=chat.get_title())
            api_params = chat.api.params
            if api_params and api_params != parent_api_params:
                child.api_params = api_params
            if self._params and chat.params != self._params:
                child.params = chat.params
            children.append(child)
        record.chats = children
        return record

    def create_chat(self) -> ChatService:
        """Insert a fresh conversation at the front and return it."""
        chat = self._new_chat(api_params=self.api.params, params=self.params)
        self.chats.insert(0, chat)
        self.on_new_chat.emit(chat)
        self.on_config_change.emit()
        return chat

    async def remove_chat_at(self, index: int) -> None:
        if not 0 <= index < len(self.chats):
            raise IndexError(f"Invalid index for chat: {index}.")
        chat = self.chats.pop(index)
        chat.on_config_change.disconnect(self.on_config_change.emit)
        # Listeners never observe an empty list.
        replacement = None
        if not self.chats:
            replacement = self._new_chat(api_params=self.api.params, params=self.params)
            self.chats.append(replacement)
        self.on_remove_chat.emit(index)
        if replacement is not None:
            self.on_new_chat.emit(replacement)
        self.on_config_change.emit()
        await chat.destroy()

    async def clear_chats(self) -> None:
        old, self.chats = self.chats, []
        for chat in old:
            chat.on_config_change.disconnect(self.on_config_change.emit)
        self.chats.append(self._new_chat(api_params=self.api.params, params=self.params))
        self.on_clear_chats.emit()
        self.on_new_chat.emit(self.chats[0])
        self.on_config_change.emit()
        for chat in old:
            await chat.destroy()

    async def destroy(self) -> None:
        chats, self.chats = self.chats, []
        for chat in chats:
            await chat.destroy()

    # Configuration changes fan out to every child, but only when they changed.

    def set_name(self, name: str) -> bool:
        if not super().set_name(name):
            return False
        for chat in self.chats:
            chat.set_name(name)
        return True

    def set_icon(self, icon: str) -> bool:
        if not super().set_icon(icon):
            return False
        for chat in self.chats:
            chat.set_icon(icon)
        return True

    def set_api_param(self, name: str, value: Any) -> bool:
        if not super().set_api_param(name, value):
            return False
        for chat in self.chats:
            chat.set_api_param(name, value)
        return True

    def set_api_params(self, params: dict[str, Any]) -> bool:
        if not super().set_api_params(params):
            return False
        for chat in self.chats:
            chat.set_api_params(params)
        return True

    def set_param(self, name: str, value: Any) -> bool:
        if not super().set_param(name, value):
            return False
        for chat in self.chats:
            chat.set_param(name, value)
        return True

    def set_params(self, params: dict[str, Any]) -> bool:
        if not super().set_params(params):
            return False
        for chat in self.chats:
            chat.set_params(params)
        return True


__all__ = ["MultiChatsService"]
