"""Minimal in-process publish/subscribe for domain events."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

LOGGER = logging.getLogger(__name__)

CONTACTS_IMPORTED = "contacts_imported"

Handler = Callable[[Any], None]


class EventBus:
    """Broadcasts payloads to every handler subscribed to an event name."""

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` and return a callable that removes it again."""

        self._handlers[name].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[name]:
                self._handlers[name].remove(handler)

        return unsubscribe

    def publish(self, name: str, payload: Any) -> int:
        """Deliver ``payload`` to all handlers. Returns how many were called."""

        delivered = 0
        for handler in list(self._handlers.get(name, [])):
            try:
                handler(payload)
            except Exception:
                LOGGER.exception("Handler %r for event %s failed", handler, name)
            delivered += 1
        return delivered


__all__ = ["CONTACTS_IMPORTED", "EventBus", "Handler"]
