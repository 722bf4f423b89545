"""
Event Bus Infrastructure

Architectural Intent:
- In-memory event bus implementation for publishing domain events
- Supports async subscription handlers
- Handlers subscribed to a base class receive every subclass event, so
  subscribing to DomainEvent observes the whole rollout
"""

import logging

from nixmorph.domain.events.event_base import DomainEvent
from nixmorph.domain.ports.event_bus_port import EventHandler

logger = logging.getLogger(__name__)


class EventBus:
    def __init__(self) -> None:
        self._handlers: list[tuple[type, EventHandler]] = []

    async def publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            logger.debug("%s for %s", event.event_type, event.aggregate_id)
            for event_type, handler in list(self._handlers):
                if isinstance(event, event_type):
                    await handler(event)

    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        self._handlers.append((event_type, handler))

    def unsubscribe(self, event_type: type, handler: EventHandler) -> None:
        self._handlers = [
            (t, h) for t, h in self._handlers if not (t is event_type and h == handler)
        ]

    def handler_count(self, event_type: type) -> int:
        return sum(1 for t, _ in self._handlers if issubclass(event_type, t))
