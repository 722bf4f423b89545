"""
Deployment Module

Architectural Intent:
- Deployment aggregate: the ordered hosts plus rollout metadata
- Parsed once from the evaluated configuration and immutable afterwards
- Validation (unique host names, max_unavailable >= 1) happens here, before
  any host pipeline is started

Design Decisions:
- Each Constraint owns a KeyedStore of semaphores, one per matched label value
- Semaphore stores are named by a RegistryNameFactory scoped to a single parse,
  so no process-wide counter is involved
"""

from __future__ import annotations
import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from nixmorph.domain.entities.host import Host
from nixmorph.domain.errors import DuplicateHostError, InvalidConstraintError
from nixmorph.domain.fields import lookup
from nixmorph.domain.services.keyed_store import KeyedStore
from nixmorph.domain.value_objects.label_selector import LabelSelector, WILDCARD


class RegistryNameFactory:
    """Hands out names for constraint semaphore registries, one sequence per parse."""

    def __init__(self, prefix: str = "constraint") -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)

    def next_name(self) -> str:
        return f"{self._prefix}-{next(self._counter)}"


@dataclass(eq=False)
class Constraint:
    selector: LabelSelector
    max_unavailable: int
    slots: KeyedStore[asyncio.Semaphore] = field(
        default_factory=lambda: KeyedStore("constraint"), repr=False
    )

    def validate(self) -> None:
        if self.max_unavailable < 1:
            raise InvalidConstraintError(
                f"constraint {self.selector}: maxUnavailable must be >= 1, "
                f"got {self.max_unavailable} (a value of 0 would block every "
                "matching host forever)"
            )

    def matching_keys(self, host: Host) -> list[tuple[str, str]]:
        return [
            (label, value)
            for label, value in host.label_items()
            if self.selector.match(label, value)
        ]

    def semaphore_for(self, label: str, value: str) -> asyncio.Semaphore:
        if not self.selector.match(label, value):
            raise ValueError(f"selector {self.selector} does not match {label}={value}")
        self.validate()
        return self.slots.get_or_set(
            f"{label}={value}", asyncio.Semaphore(self.max_unavailable)
        )

    @staticmethod
    def from_dict(
        data: Mapping[str, Any], names: Optional[RegistryNameFactory] = None
    ) -> "Constraint":
        selector = lookup(data, "selector", {}) or {}
        names = names or RegistryNameFactory()
        return Constraint(
            selector=LabelSelector(
                label=lookup(selector, "label", ""),
                value=str(lookup(selector, "value", WILDCARD)),
            ),
            max_unavailable=int(lookup(data, "maxUnavailable", 0) or 0),
            slots=KeyedStore(names.next_name()),
        )


@dataclass(frozen=True)
class HostOrdering:
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeploymentMetadata:
    description: str = ""
    ordering: HostOrdering = field(default_factory=HostOrdering)
    constraints: tuple[Constraint, ...] = ()


@dataclass(frozen=True, eq=False)
class Deployment:
    hosts: tuple[Host, ...]
    meta: DeploymentMetadata = field(default_factory=DeploymentMetadata)

    def validate(self) -> None:
        seen: set[str] = set()
        for host in self.hosts:
            if host.name in seen:
                raise DuplicateHostError(host.name)
            seen.add(host.name)
        for constraint in self.meta.constraints:
            constraint.validate()

    @property
    def host_names(self) -> list[str]:
        return [h.name for h in self.hosts]

    def get_host(self, name: str) -> Host:
        for host in self.hosts:
            if host.name == name:
                return host
        raise KeyError(name)

    @staticmethod
    def from_dict(
        data: Mapping[str, Any], names: Optional[RegistryNameFactory] = None
    ) -> "Deployment":
        names = names or RegistryNameFactory()
        meta = lookup(data, "meta", {}) or {}
        ordering = lookup(meta, "ordering", {}) or {}
        deployment = Deployment(
            hosts=tuple(Host.from_dict(h) for h in lookup(data, "hosts", []) or []),
            meta=DeploymentMetadata(
                description=lookup(meta, "description", "") or "",
                ordering=HostOrdering(tags=tuple(lookup(ordering, "tags", None) or ())),
                constraints=tuple(
                    Constraint.from_dict(c, names)
                    for c in lookup(meta, "constraints", None) or []
                ),
            ),
        )
        deployment.validate()
        return deployment
