"""Teardown and reset hooks for chatdesk's lazily created singletons.

The history keeper, the API manager and the settings cache register here
from their ``get_*()`` accessors. The terminal client runs
``shutdown_all()`` on exit so queued history writes reach the disk, and the
test suite runs ``reset_all()`` between cases.

Created: 2026-03-02

Design notes:
- Shutdown runs newest first; a singleton built on top of another one is
  torn down before the one it depends on.
- Re-registering a name replaces its hooks and keeps its original position.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class _Hooks:
    shutdown: Callable[[], Awaitable[None] | None] | None = None
    reset: Callable[[], None] | None = None


_hooks: dict[str, _Hooks] = {}


def register(
    name: str,
    *,
    shutdown: Callable[[], Awaitable[None] | None] | None = None,
    reset: Callable[[], None] | None = None,
) -> None:
    """Attach hooks to the singleton called *name*.

    ``shutdown`` may be sync or async; ``reset`` drops the cached instance.
    """
    _hooks[name] = _Hooks(shutdown=shutdown, reset=reset)


async def shutdown_all() -> None:
    """Run every shutdown hook, newest first. A failing hook is logged and skipped."""
    for name, hooks in reversed(list(_hooks.items())):
        if hooks.shutdown is None:
            continue
        try:
            result = hooks.shutdown()
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.warning("Error shutting down %s", name, exc_info=True)
        else:
            logger.debug("Shut down %s", name)


def reset_all() -> None:
    """Drop every cached singleton and forget the hooks."""
    hooks = list(_hooks.items())
    _hooks.clear()
    for name, entry in hooks:
        if entry.reset is None:
            continue
        try:
            entry.reset()
        except Exception:
            logger.warning("Error resetting %s", name, exc_info=True)


__all__ = ["register", "shutdown_all", "reset_all"]
