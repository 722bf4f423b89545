"""
Domain Events Module

Architectural Intent:
- Immutable records of what happened to one host or to a whole rollout
- aggregate_id names the host for host events and the deployment for
  rollout events
- Aggregates accumulate events; pipelines hand them to the event bus

Design Decisions:
- to_dict walks the dataclass fields, so subclasses only declare fields
- occurred_at does not take part in equality
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, UTC
from typing import Any


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class DomainEvent:
    aggregate_id: str = ""
    occurred_at: str = field(default_factory=_now, init=False, repr=False, compare=False)

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"event_type": self.event_type}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = list(value) if isinstance(value, tuple) else value
        return data
