"""
Later Sync - Observable State
=============================

Minimal synchronous change notification for engine components.
"""

from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger()

Listener = Callable[[Any], None]


class StateNotifier:
    """
    Base class for components exposing observable state.

    Listeners are called synchronously with the notifier after every state
    change. A listener that raises is logged and the remaining listeners
    still run.
    """

    def __init__(self) -> None:
        self._listeners: tuple[Listener, ...] = ()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners = self._listeners + (listener,)

        def unsubscribe() -> None:
            self._listeners = tuple(l for l in self._listeners if l is not listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def notify(self) -> None:
        for listener in self._listeners:
            try:
                listener(self)
            except Exception:
                logger.exception(
                    "listener_failed",
                    notifier=type(self).__name__,
                    listener=getattr(listener, "__name__", repr(listener)),
                )
