"""File-based conversation history store.

Created: 2026-03-03

Storage layout:
~/.chatdesk/history/
    <moment>.json    # {title?, customTitle?, history?, session?}

Design notes:
- A "moment" is an opaque random key, one per conversation.
- ``save`` is fire-and-forget. Writes are serialised per file and coalesced:
  if several saves for one moment queue up, only the newest blob is written.
- The blob is encoded at ``save`` time so later in-memory edits can not leak
  into a write that is already queued.
- Atomic writes using temp file + rename.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class HistoryKeeper:
    """Key/value blob store for chat histories."""

    def __init__(self, directory: Path | None = None, *, in_memory: bool = False):
        """Initialize the keeper.

        Args:
            directory: Where blobs are stored. Defaults to ~/.chatdesk/history/
            in_memory: Turn ``save`` into a no-op (stateless clients, tests).
        """
        if directory is None:
            directory = Path.home() / ".chatdesk" / "history"
        self.directory = directory
        self.in_memory = in_memory
        self._queued: dict[str, str] = {}
        self._writers: dict[str, asyncio.Task] = {}

    def new_moment(self) -> str:
        return str(uuid.uuid4())

    def path_for(self, moment: str) -> Path:
        return self.directory / f"{moment}.json"

    async def remember(self, moment: str) -> dict[str, Any]:
        """Load a saved blob; a missing or unreadable file yields ``{}``."""
        # A queued write is newer than whatever is on disk.
        if moment in self._queued:
            return json.loads(self._queued[moment])
        return await asyncio.to_thread(self._read, moment)

    def save(self, moment: str, blob: dict[str, Any]) -> None:
        """Persist *blob* in the background."""
        if self.in_memory:
            return
        text = json.dumps(blob, ensure_ascii=False, indent=2)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            try:
                self._write(moment, text)
            except OSError as e:
                logger.error(f"Error saving history {moment}: {e}")
            return

        self._queued[moment] = text
        writer = self._writers.get(moment)
        if writer is None or writer.done():
            self._writers[moment] = asyncio.create_task(self._drain(moment))

    async def forget(self, moment: str) -> None:
        """Delete a blob; a missing file is not an error."""
        self._queued.pop(moment, None)
        writer = self._writers.pop(moment, None)
        if writer is not None:
            await asyncio.gather(writer, return_exceptions=True)
        await asyncio.to_thread(self.path_for(moment).unlink, missing_ok=True)
        logger.debug("Forgot history %s", moment)

    async def flush(self) -> None:
        """Wait until every queued write has reached the disk."""
        while self._writers:
            writers = list(self._writers.values())
            await asyncio.gather(*writers, return_exceptions=True)
            for moment, writer in list(self._writers.items()):
                if writer.done():
                    del self._writers[moment]

    async def _drain(self, moment: str) -> None:
        while moment in self._queued:
            text = self._queued[moment]
            try:
                await asyncio.to_thread(self._write, moment, text)
            except OSError as e:
                logger.error(f"Error saving history {moment}: {e}")
            # Stays queued while writing so ``remember`` never reads a stale file.
            if self._queued.get(moment) is text:
                del self._queued[moment]

    def _read(self, moment: str) -> dict[str, Any]:
        path = self.path_for(moment)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Error loading {path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, moment: str, text: str) -> None:
        path = self.path_for(moment)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(".tmp")
        try:
            temp_path.write_text(text, encoding="utf-8")
            temp_path.replace(path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise


_keeper_instance: HistoryKeeper | None = None


def get_history_keeper() -> HistoryKeeper:
    """Get the process-wide history keeper configured from settings."""
    global _keeper_instance
    if _keeper_instance is None:
        from chatdesk.config import get_config_dir, get_settings

        settings = get_settings()
        _keeper_instance = HistoryKeeper(
            get_config_dir() / "history", in_memory=settings.in_memory
        )

        from chatdesk.lifecycle import register

        def _reset():
            global _keeper_instance
            _keeper_instance = None

        register("history_keeper", shutdown=_keeper_instance.flush, reset=_reset)
    return _keeper_instance


__all__ = ["HistoryKeeper", "get_history_keeper"]
