from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, List

logger = logging.getLogger(__name__)

Slot = Callable[..., Any]


class Signal:
    """Synchronous notification hub: slots are called in connection order."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._slots: List[Slot] = []

    def connect(self, slot: Slot) -> None:
        if slot not in self._slots:
            self._slots.append(slot)

    def disconnect(self, slot: Slot) -> None:
        if slot in self._slots:
            self._slots.remove(slot)

    def emit(self, *args: Any) -> None:
        for slot in list(self._slots):
            try:
                slot(*args)
            except Exception as exc:
                logger.exception("Slot for %s failed: %s", self.name, exc)

    def __len__(self) -> int:
        return len(self._slots)


__all__ = ["Signal", "Slot"]
