"""Minimal synchronous signal/slot helper used for service notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class Signal:
    """A list of subscribers notified in connection order.

    Slot exceptions are logged and swallowed so that a misbehaving listener
    can never leave a chat service half way through a state transition.

    Usage:
        on_message = Signal("on_message")
        on_message.connect(lambda message, response: print(message.content))
        on_message.emit(message, response)
    """

    def __init__(self, name: str = "signal"):
        self.name = name
        self._slots: list[Callable[..., Any]] = []

    def connect(self, slot: Callable[..., Any]) -> Callable[..., Any]:
        """Subscribe *slot*. Returns it so the method can be used as a decorator."""
        self._slots.append(slot)
        return slot

    def disconnect(self, slot: Callable[..., Any]) -> None:
        if slot in self._slots:
            self._slots.remove(slot)

    def disconnect_all(self) -> None:
        self._slots.clear()

    def emit(self, *args: Any) -> None:
        for slot in list(self._slots):
            try:
                slot(*args)
            except Exception:
                logger.exception("Slot for %s raised", self.name)

    def __len__(self) -> int:
        return len(self._slots)


__all__ = ["Signal"]
