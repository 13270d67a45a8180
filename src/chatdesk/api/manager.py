"""Registry of adapter classes and configured endpoints.

Created: 2026-03-03
"""

from __future__ import annotations

import logging
from typing import Any

from chatdesk.api.base import ChatCompletionAPI, ChatConversationAPI, WebAPI
from chatdesk.api.endpoint import APIEndpoint, next_endpoint_id
from chatdesk.config import Settings

logger = logging.getLogger(__name__)


class APIManager:
    """Maps endpoint types to adapter classes and owns the endpoint list.

    Usage:
        manager = APIManager()
        manager.register_api("OpenAI API", OpenAIChatAPI)
        endpoint = manager.add_endpoint(APIEndpoint(type="OpenAI API", name="GPT", key="sk-..."))
        api = manager.create_api_for_endpoint(endpoint)
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout
        self._api_types: dict[str, type[WebAPI]] = {}
        self._endpoints: list[APIEndpoint] = []

    # -- adapter classes --

    def register_api(self, type_name: str, api_class: type[WebAPI]) -> None:
        if type_name in self._api_types:
            raise ValueError(f"API type {type_name!r} is already registered")
        self._api_types[type_name] = api_class
        logger.debug("Registered API type: %s", type_name)

    def unregister_api(self, type_name: str) -> None:
        self._api_types.pop(type_name, None)

    def get_api_class(self, type_name: str) -> type[WebAPI]:
        try:
            return self._api_types[type_name]
        except KeyError:
            raise ValueError(f"API type {type_name!r} does not exist") from None

    def get_api_types(self) -> list[str]:
        return list(self._api_types)

    # -- endpoints --

    def add_endpoint(self, endpoint: APIEndpoint) -> APIEndpoint:
        self.get_api_class(endpoint.type)
        existing = [e.id for e in self._endpoints if e.id]
        if not endpoint.id or endpoint.id in existing:
            endpoint.id = next_endpoint_id(endpoint.name, existing)
        self._endpoints.append(endpoint)
        logger.debug("Added endpoint %s (%s)", endpoint.id, endpoint.type)
        return endpoint

    def remove_endpoint(self, endpoint_id: str) -> None:
        endpoint = self.get_endpoint_by_id(endpoint_id)
        self._endpoints.remove(endpoint)

    def get_endpoint_by_id(self, endpoint_id: str) -> APIEndpoint:
        for endpoint in self._endpoints:
            if endpoint.id == endpoint_id:
                return endpoint
        raise ValueError(f"Endpoint {endpoint_id!r} does not exist")

    def get_endpoint_by_name(self, name: str) -> APIEndpoint | None:
        return next((e for e in self._endpoints if e.name == name), None)

    def get_endpoints(self) -> list[APIEndpoint]:
        return list(self._endpoints)

    def is_chat_endpoint(self, endpoint: APIEndpoint) -> bool:
        api_class = self._api_types.get(endpoint.type)
        return api_class is not None and issubclass(
            api_class, (ChatCompletionAPI, ChatConversationAPI)
        )

    def get_chat_endpoints(self) -> list[APIEndpoint]:
        return [e for e in self._endpoints if self.is_chat_endpoint(e)]

    def create_api_for_endpoint(self, endpoint: APIEndpoint) -> WebAPI:
        return self.get_api_class(endpoint.type)(endpoint, timeout=self.timeout)

    # -- persistence --

    def deserialize(self, data: list[dict[str, Any]]) -> None:
        endpoints = []
        for item in data:
            try:
                endpoints.append(APIEndpoint.deserialize(item))
            except ValueError as e:
                logger.warning("Skipping endpoint: %s", e)
        self._endpoints = []
        for endpoint in endpoints:
            if endpoint.type not in self._api_types:
                logger.warning("Skipping endpoint %r with unknown type %r", endpoint.name, endpoint.type)
                continue
            self.add_endpoint(endpoint)

    def serialize(self) -> list[dict[str, Any]]:
        return [endpoint.serialize() for endpoint in self._endpoints]

    def save_to_settings(self, settings: Settings) -> None:
        settings.apis = self.serialize()
        if not settings.in_memory:
            settings.save()


def register_builtin_apis(manager: APIManager) -> None:
    """Register the adapters shipped with chatdesk."""
    from chatdesk.api.anthropic_api import AnthropicChatAPI
    from chatdesk.api.bingchat import BingChatAPI
    from chatdesk.api.chatgpt_web import ChatGPTWebAPI
    from chatdesk.api.ollama_api import OllamaChatAPI
    from chatdesk.api.openai_api import OpenAIChatAPI

    for api_class in (OpenAIChatAPI, AnthropicChatAPI, OllamaChatAPI, ChatGPTWebAPI, BingChatAPI):
        manager.register_api(api_class.type_name, api_class)


_manager_instance: APIManager | None = None


def get_api_manager(settings: Settings | None = None) -> APIManager:
    """Get the process-wide manager with built-in adapters and configured endpoints."""
    global _manager_instance
    if _manager_instance is None:
        from chatdesk.config import get_settings

        settings = settings or get_settings()
        _manager_instance = APIManager(timeout=settings.request_timeout)
        register_builtin_apis(_manager_instance)
        _manager_instance.deserialize(settings.apis)

        from chatdesk.lifecycle import register

        def _reset():
            global _manager_instance
            _manager_instance = None

        register("api_manager", reset=_reset)
    return _manager_instance


__all__ = ["APIManager", "register_builtin_apis", "get_api_manager"]
