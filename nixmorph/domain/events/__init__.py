"""
Domain Events Package

Architectural Intent:
- Contains domain events published while host pipelines progress
- Events are the primary mechanism for progress reporting and telemetry
"""

from nixmorph.domain.events.event_base import DomainEvent
from nixmorph.domain.events.host_events import (
    HostStageChangedEvent,
    HostFailedEvent,
    DeploymentFinishedEvent,
)

__all__ = [
    "DomainEvent",
    "HostStageChangedEvent",
    "HostFailedEvent",
    "DeploymentFinishedEvent",
]
