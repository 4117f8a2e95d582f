"""Synchronous observer registry for named events.

The bus is constructed explicitly and injected into the dispatcher and the
vendor service; there is no process-wide instance.

Example:
    ```python
    bus = EventBus()
    bus.add_observer("qr_generated", lambda data: print(data["vendor_id"]))
    bus.trigger_event("qr_generated", {"vendor_id": 42})
    ```
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from wabridge.logging import get_logger

logger = get_logger(__name__)

Observer = Callable[[Any], Any]

DEFAULT_PRIORITY = 10

STANDARD_EVENTS: tuple[str, ...] = (
    # Messages
    "before_message_send",
    "message_sent",
    "message_send_error",
    # QR codes
    "before_qr_generation",
    "qr_generated",
    "qr_generation_error",
    # Status checks
    "before_status_check",
    "status_check_complete",
    "status_check_error",
    # Sessions
    "before_session_connect",
    "session_connected",
    "before_session_disconnect",
    "session_disconnected",
    # Inbound webhooks
    "webhook_received",
    "webhook_processed",
    "webhook_error",
    # Cache
    "cache_hit",
    "cache_miss",
    "cache_set",
    "cache_cleared",
    # Dispatcher lifecycle
    "before_send",
    "request_success",
    "request_error",
    "http_error",
    "invalid_response",
)

_EVENT_NAME = re.compile(r"^[a-z0-9_]+$")


@dataclass
class _Registration:
    callback: Observer
    priority: int


class EventBus:
    """Priority-ordered observers per event name.

    Observers run inline in ascending priority; ties keep insertion order.
    An observer that raises is logged and skipped, the rest still run.
    Observers may trigger further events from inside their callback.
    """

    def __init__(self) -> None:
        self._observers: dict[str, list[_Registration]] = {}
        self._custom_events: set[str] = set()

    def is_valid_event(self, name: str) -> bool:
        return name in STANDARD_EVENTS or name in self._custom_events

    def register_custom_event(self, name: str) -> bool:
        """Register a new event name (lowercase letters, digits, underscores)."""
        if not _EVENT_NAME.match(name or ""):
            logger.warning("Invalid custom event name", event=name)
            return False
        if self.is_valid_event(name):
            logger.debug("Event already registered", event=name)
            return False
        self._custom_events.add(name)
        logger.debug("Registered custom event", event=name)
        return True

    def get_available_events(self) -> list[str]:
        return [*STANDARD_EVENTS, *sorted(self._custom_events)]

    def add_observer(
        self, event: str, callback: Observer, priority: int = DEFAULT_PRIORITY
    ) -> bool:
        """Attach a callback to an event.

        Returns:
            False if the event is unknown or callback is not callable.
        """
        if not self.is_valid_event(event):
            logger.warning("Cannot observe unknown event", event=event)
            return False
        if not callable(callback):
            logger.warning("Observer is not callable", event=event)
            return False

        registrations = self._observers.setdefault(event, [])
        registrations.append(_Registration(callback=callback, priority=priority))
        # list.sort is stable, so equal priorities keep insertion order
        registrations.sort(key=lambda r: r.priority)
        logger.debug("Observer added", event=event, priority=priority)
        return True

    def add_multiple_observers(
        self, observers: Mapping[str, Observer | Iterable[Observer]], priority: int = DEFAULT_PRIORITY
    ) -> int:
        """Attach many callbacks at once. Returns how many were attached."""
        added = 0
        for event, callbacks in observers.items():
            items = [callbacks] if callable(callbacks) else list(callbacks)
            for callback in items:
                if self.add_observer(event, callback, priority):
                    added += 1
        return added

    def remove_observer(self, event: str, callback: Observer) -> bool:
        """Remove the first registration of callback for event."""
        registrations = self._observers.get(event, [])
        for index, registration in enumerate(registrations):
            if registration.callback == callback:
                del registrations[index]
                logger.debug("Observer removed", event=event)
                return True
        return False

    def clear_observers(self, event: str | None = None) -> int:
        """Drop observers of one event, or of every event when None."""
        if event is None:
            count = sum(len(r) for r in self._observers.values())
            self._observers.clear()
        else:
            count = len(self._observers.pop(event, []))
        logger.debug("Observers cleared", event=event, count=count)
        return count

    def get_observer_count(self, event: str) -> int:
        return len(self._observers.get(event, []))

    def has_observers(self, event: str) -> bool:
        return self.get_observer_count(event) > 0

    def trigger_event(self, event: str, data: Any = None) -> int:
        """Notify every observer of event.

        Returns:
            Number of observers that completed without raising. 0 for
            unknown events.
        """
        if not self.is_valid_event(event):
            logger.warning("Triggered unknown event", event=event)
            return 0

        notified = 0
        # Snapshot: observers may add or remove registrations while running
        for registration in list(self._observers.get(event, [])):
            try:
                registration.callback(data)
            except Exception as e:
                logger.error(
                    "Observer raised",
                    event=event,
                    observer=getattr(registration.callback, "__qualname__", repr(registration.callback)),
                    error=str(e),
                )
                continue
            notified += 1
        return notified
