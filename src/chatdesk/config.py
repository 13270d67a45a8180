"""Settings for chatdesk.

Values come from ``~/.chatdesk/config.json`` and ``CHATDESK_*`` environment
variables (environment wins). The directory can be moved with
``CHATDESK_CONFIG_DIR``.

Created: 2026-03-02
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_ENV_PREFIX = "CHATDESK_"


def get_config_dir() -> Path:
    """Get/create the config directory."""
    override = os.environ.get(f"{_ENV_PREFIX}CONFIG_DIR")
    config_dir = Path(override) if override else Path.home() / ".chatdesk"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    return get_config_dir() / "config.json"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix=_ENV_PREFIX, extra="ignore")

    # History writes become no-ops and services.json is never written.
    in_memory: bool = False
    log_level: str = "INFO"

    # Title generation runs when min <= len(history) <= max.
    title_min_history: int = 2
    title_max_history: int = 10
    title_content_limit: int = 100

    request_timeout: float = 120.0

    # Configured API endpoints: {id, type, name, url, key, cookie, params}.
    apis: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def load(cls) -> Settings:
        """Load settings from config.json, letting environment variables override."""
        path = get_config_path()
        data: dict[str, Any] = {}
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.error(f"Error loading {path}: {e}")
                data = {}
            if not isinstance(data, dict):
                logger.error(f"Ignoring malformed config in {path}")
                data = {}
        overridden = {
            key
            for key in cls.model_fields
            if f"{_ENV_PREFIX}{key.upper()}" in os.environ
        }
        return cls(**{k: v for k, v in data.items() if k not in overridden})

    def save(self) -> None:
        """Write settings to config.json atomically."""
        path = get_config_path()
        temp_path = path.with_suffix(".tmp")
        try:
            temp_path.write_text(
                json.dumps(self.model_dump(), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            temp_path.replace(path)
        except OSError as e:
            logger.error(f"Error saving {path}: {e}")
            if temp_path.exists():
                temp_path.unlink()


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached process-wide settings."""
    global _settings
    if _settings is None:
        _settings = Settings.load()

        from chatdesk.lifecycle import register

        def _reset():
            global _settings
            _settings = None

        register("settings", reset=_reset)
    return _settings


__all__ = ["Settings", "get_config_dir", "get_config_path", "get_settings"]
