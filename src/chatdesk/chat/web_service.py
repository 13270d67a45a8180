"""Shared base for services bound to one API: name, icon and parameters."""

from __future__ import annotations

import logging
from typing import Any

from chatdesk.api.base import WebAPI
from chatdesk.chat.schemas import ServiceRecord
from chatdesk.signals import Signal

logger = logging.getLogger(__name__)

DEFAULT_ICON = "bot"


class WebService:
    """Holds the configuration shared by chat services.

    Setters return ``True`` only when the value changed, so containers can
    fan changes out to children without redundant saves.
    """

    def __init__(
        self,
        name: str,
        api: WebAPI,
        *,
        icon: str | None = None,
        params: dict[str, Any] | None = None,
        api_params: dict[str, Any] | None = None,
    ):
        if not name or api is None:
            raise ValueError("Must pass name and api to a service")
        self.name = name
        self.api = api
        self.icon = icon or DEFAULT_ICON
        self._params: dict[str, Any] = dict(params or {})
        if api_params:
            self.api.params = api_params
        # Emitted when something stored in services.json changed.
        self.on_config_change = Signal("on_config_change")

    @property
    def params(self) -> dict[str, Any]:
        return dict(self._params)

    def set_name(self, name: str) -> bool:
        if name == self.name:
            return False
        self.name = name
        self.on_config_change.emit()
        return True

    def set_icon(self, icon: str) -> bool:
        if icon == self.icon:
            return False
        self.icon = icon
        self.on_config_change.emit()
        return True

    def set_api_param(self, name: str, value: Any) -> bool:
        params = self.api.params
        if name in params and params[name] == value:
            return False
        self.api.set_param(name, value)
        self.on_config_change.emit()
        return True

    def set_api_params(self, params: dict[str, Any]) -> bool:
        if self.api.params == params:
            return False
        self.api.params = params
        self.on_config_change.emit()
        return True

    def set_param(self, name: str, value: Any) -> bool:
        if name in self._params and self._params[name] == value:
            return False
        self._params[name] = value
        self.on_config_change.emit()
        return True

    def set_params(self, params: dict[str, Any]) -> bool:
        if self._params == params:
            return False
        self._params = dict(params)
        self.on_config_change.emit()
        return True

    def to_record(self) -> ServiceRecord:
        endpoint = self.api.endpoint
        return ServiceRecord(
            name=self.name,
            api=endpoint.id or endpoint.name,
            icon=self.icon if self.icon != DEFAULT_ICON else None,
            api_params=self.api.params or None,
            params=self.params or None,
        )

    def serialize(self) -> dict[str, Any]:
        return self.to_record().dump()

    async def destroy(self) -> None:
        """Release resources. Nothing to do by default."""


__all__ = ["WebService", "DEFAULT_ICON"]
