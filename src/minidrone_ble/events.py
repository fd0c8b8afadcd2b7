"""Minimal listener registry for drone events."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

_LOGGER = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventEmitter:
    """Fan out named events to registered callbacks.

    Listeners run synchronously in registration order. A listener that
    raises is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._listeners: defaultdict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        self._listeners[event].append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        """Remove a listener; unknown listeners are ignored."""
        try:
            self._listeners[event].remove(listener)
        except ValueError:
            pass

    def emit(self, event: str, *args: Any) -> None:
        """Call every listener of an event with the given arguments."""
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(*args)
            except Exception:
                _LOGGER.exception("Listener for %s event failed", event)
