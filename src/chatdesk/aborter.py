"""Cancellation handles for in-flight exchanges.

Created: 2026-03-02

An ``AbortController`` is created per exchange. Adapters receive its
``AbortSignal`` and may poll it or register listeners; the chat engine also
wraps every adapter call in ``run_abortable`` so that adapters which never
look at the signal still stop when ``abort()`` is called.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from chatdesk.errors import AbortError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AbortSignal:
    """Read side of an ``AbortController``."""

    def __init__(self) -> None:
        self._aborted = False
        self._event: asyncio.Event | None = None
        self._listeners: list[Callable[[], Any]] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    def add_listener(self, listener: Callable[[], Any]) -> None:
        """Call *listener* once when the signal fires (immediately if it already has)."""
        if self._aborted:
            listener()
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[], Any]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def raise_if_aborted(self) -> None:
        if self._aborted:
            raise AbortError()

    async def wait(self) -> None:
        """Block until the signal fires."""
        if self._aborted:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def _fire(self) -> None:
        if self._aborted:
            return
        self._aborted = True
        if self._event is not None:
            self._event.set()
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Abort listener failed")


class AbortController:
    """Owns one ``AbortSignal``. ``abort()`` is idempotent."""

    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self) -> None:
        self.signal._fire()

    @property
    def aborted(self) -> bool:
        return self.signal.aborted


async def run_abortable(coro: Coroutine[Any, Any, T], signal: AbortSignal) -> T:
    """Run *coro* until it finishes or *signal* fires.

    If the signal wins, the task running *coro* is cancelled and awaited, and
    ``AbortError`` is raised. Errors raised by *coro* itself propagate
    unchanged.
    """
    if signal.aborted:
        coro.close()
        raise AbortError()

    task = asyncio.ensure_future(coro)
    waiter = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task.done():
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except AbortError:
        pass
    except Exception as e:
        logger.debug("Adapter raised while being aborted: %s", e)
    raise AbortError()


__all__ = ["AbortController", "AbortSignal", "run_abortable"]
