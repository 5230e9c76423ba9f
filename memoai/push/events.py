"""Payload-free "pushes changed" notifications for presentation layers."""

from __future__ import annotations

from typing import Callable

from loguru import logger

Listener = Callable[[], object]


class PushEvents:
    """Callback registry; every listener is called once per emit."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                # Observers must not be able to fail an engine operation
                logger.warning(f"Push listener {listener!r} failed: {e}")

    def __len__(self) -> int:
        return len(self._listeners)
