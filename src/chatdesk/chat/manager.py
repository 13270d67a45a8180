"""Top-level service list, persisted to ``services.json``.

Created: 2026-03-05

File format::

    {"version": 1, "services": [ServiceRecord, ...]}

A record with a ``chats`` list is a multi-chat container. Saves are
debounced: many config changes in one tick produce a single write.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from chatdesk.chat.multi import MultiChatsService
from chatdesk.chat.service import ChatService
from chatdesk.chat.web_service import WebService

if TYPE_CHECKING:
    from chatdesk.api.manager import APIManager
    from chatdesk.config import Settings
    from chatdesk.history import HistoryKeeper

logger = logging.getLogger(__name__)

CONFIG_VERSION = 1
SAVE_DELAY = 0.05


class ServiceManager:
    def __init__(
        self,
        settings: Settings,
        api_manager: APIManager,
        history_keeper: HistoryKeeper,
        path: Path | None = None,
    ):
        if path is None:
            from chatdesk.config import get_config_dir

            path = get_config_dir() / "services.json"
        self.path = path
        self.settings = settings
        self.api_manager = api_manager
        self.history_keeper = history_keeper
        self._services: list[WebService] = []
        self._save_task: asyncio.Task | None = None
        self._dirty = False
        self._lock = asyncio.Lock()

    def _chat_options(self) -> dict[str, Any]:
        return {"history_keeper": self.history_keeper, "settings": self.settings}

    def get_services(self) -> list[WebService]:
        return list(self._services)

    def create_chat_service(
        self, name: str, endpoint_id: str, *, multi: bool = False, **options: Any
    ) -> WebService:
        """Create a service on the endpoint and put it at the end of the list.

        Raises:
            ValueError: the endpoint does not exist.
        """
        endpoint = self.api_manager.get_endpoint_by_id(endpoint_id)
        api = self.api_manager.create_api_for_endpoint(endpoint)
        service_class = MultiChatsService if multi else ChatService
        service = service_class(name, api, **options, **self._chat_options())
        self._add(service)
        self.save_config()
        return service

    async def remove_service_at(self, index: int) -> None:
        if not 0 <= index < len(self._services):
            raise IndexError(f"Invalid index for service: {index}.")
        service = self._services.pop(index)
        service.on_config_change.disconnect(self.save_config)
        self.save_config()
        await service.destroy()

    def _add(self, service: WebService) -> None:
        service.on_config_change.connect(self.save_config)
        self._services.append(service)

    # -- persistence -----------------------------------------------------

    def load(self) -> None:
        """Read services.json. Records that fail to load are skipped.

        Raises:
            ValueError: the file was written by a newer version.
        """
        data = self._read()
        version = data.get("version", CONFIG_VERSION)
        if isinstance(version, int) and version > CONFIG_VERSION:
            raise ValueError("Can not read config created by later versions")
        for record in data.get("services") or []:
            try:
                service_class = MultiChatsService if "chats" in record else ChatService
                service = service_class.deserialize(
                    record, self.api_manager, **self._chat_options()
                )
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping service record {record!r}: {e}")
                continue
            self._add(service)
        logger.debug("Loaded %d services", len(self._services))

    def serialize(self) -> dict[str, Any]:
        return {
            "version": CONFIG_VERSION,
            "services": [s.serialize() for s in self._services],
        }

    def save_config(self) -> None:
        """Schedule a write of services.json; repeated calls coalesce."""
        if self.settings.in_memory:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            try:
                self._write(self.serialize())
            except OSError as e:
                logger.error(f"Error saving {self.path}: {e}")
            return
        self._dirty = True
        if self._save_task is None or self._save_task.done():
            self._save_task = asyncio.create_task(self._delayed_save())

    async def flush(self) -> None:
        if self._save_task is not None:
            await asyncio.gather(self._save_task, return_exceptions=True)

    async def _delayed_save(self) -> None:
        # Changes made while a write is running trigger one more write.
        while self._dirty:
            await asyncio.sleep(SAVE_DELAY)
            self._dirty = False
            async with self._lock:
                data = self.serialize()
                try:
                    await asyncio.to_thread(self._write, data)
                except OSError as e:
                    logger.error(f"Error saving {self.path}: {e}")

    def _read(self) -> dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Error loading {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        try:
            temp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            temp_path.replace(self.path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise


__all__ = ["ServiceManager", "CONFIG_VERSION"]
