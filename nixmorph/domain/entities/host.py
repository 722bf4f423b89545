"""
Host Entity

Architectural Intent:
- Identity and deployment target of a single machine in a deployment
- Immutable after parsing; the name is the unique key within a deployment
- Build-only hosts are built but never pushed or activated
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping

from nixmorph.domain.entities.health_check import HealthCheckSpecs
from nixmorph.domain.fields import lookup
from nixmorph.domain.value_objects.target import Target


@dataclass(frozen=True, eq=False)
class Host:
    name: str
    target_host: str = ""
    target_port: int = 0
    target_user: str = ""
    nixos_release: str = ""
    tags: tuple[str, ...] = ()
    labels: Mapping[str, str] = field(default_factory=dict)
    pre_deploy_checks: HealthCheckSpecs = field(default_factory=HealthCheckSpecs)
    health_checks: HealthCheckSpecs = field(default_factory=HealthCheckSpecs)
    build_only: bool = False
    substitute_on_destination: bool = False
    nix_config: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Host name cannot be empty")

    @property
    def target(self) -> Target:
        return Target(
            host=self.target_host or self.name,
            user=self.target_user,
            port=self.target_port,
        )

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def label_items(self) -> list[tuple[str, str]]:
        """Labels in a stable order (sorted by label name)."""
        return sorted(self.labels.items())

    def __repr__(self) -> str:
        return f"Host(name={self.name!r}, target={self.target_host or self.name!r})"

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "Host":
        labels = lookup(data, "labels", None) or {}
        nix_config = lookup(data, "nixConfig", None) or {}
        return Host(
            name=lookup(data, "name"),
            target_host=lookup(data, "targetHost", "") or "",
            target_port=int(lookup(data, "targetPort", 0) or 0),
            target_user=lookup(data, "targetUser", "") or "",
            nixos_release=lookup(data, "nixosRelease", "") or "",
            tags=tuple(lookup(data, "tags", None) or ()),
            labels={str(k): str(v) for k, v in labels.items()},
            pre_deploy_checks=HealthCheckSpecs.from_dict(lookup(data, "preDeployChecks", None)),
            health_checks=HealthCheckSpecs.from_dict(lookup(data, "healthChecks", None)),
            build_only=bool(lookup(data, "buildOnly", False)),
            substitute_on_destination=bool(lookup(data, "substituteOnDestination", False)),
            nix_config={str(k): str(v) for k, v in nix_config.items()},
        )

