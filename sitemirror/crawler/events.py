"""Best-effort event publishing to crawl listeners."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from .types import CrawlEvent, EventType

LOGGER = logging.getLogger(__name__)

Listener = Callable[[CrawlEvent], None]


class EventBus:
    """Observer list with at-most-once, no-guarantee delivery.

    A listener that raises is logged and skipped; publishing never fails and
    having no listeners is not an error.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; returns a callable that unsubscribes it."""

        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event_type: EventType, **data: Any) -> CrawlEvent:
        event = CrawlEvent(type=event_type, data=data)
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                LOGGER.debug("Listener %r failed for %s event", listener, event_type.value, exc_info=True)
        return event

    def status(self, message: str) -> CrawlEvent:
        return self.publish(EventType.STATUS, message=message)


__all__ = ["EventBus", "Listener"]
