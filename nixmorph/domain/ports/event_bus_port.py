"""
Event Bus Port

Pipelines publish host stage changes and failures here; the CLI progress
printer and the telemetry exporter subscribe. Subscribing to a base event
class receives every subclass.
"""

from typing import Awaitable, Callable, Protocol, runtime_checkable

from nixmorph.domain.events.event_base import DomainEvent

EventHandler = Callable[[DomainEvent], Awaitable[None]]


@runtime_checkable
class EventBusPort(Protocol):
    async def publish(self, events: list[DomainEvent]) -> None: ...

    def subscribe(self, event_type: type, handler: EventHandler) -> None: ...
