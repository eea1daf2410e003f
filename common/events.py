"""Notification hooks for comlink.

An EventHook is a multicast callback list: callers subscribe handlers and
the owner emits to all of them in subscription order.
"""

import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class EventHook:
    """Multicast notification with subscribe/unsubscribe."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: list[Handler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Handler) -> Handler:
        """Register handler. Returns it so the method works as a decorator."""
        with self._lock:
            self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: Handler) -> None:
        """Remove one registration of handler. Unknown handlers are ignored."""
        with self._lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                logger.debug(f"{self.name}: unsubscribe of unknown handler {handler!r}")

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def emit(self, *args: Any) -> None:
        """Call every handler with args.

        A handler that raises is logged and does not prevent the remaining
        handlers from running.
        """
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception(f"{self.name}: handler {handler!r} raised")
