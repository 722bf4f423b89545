"""
Deployment DTOs

Architectural Intent:
- Data Transfer Objects for use case boundaries
- Input validation at the application boundary
- Decouples the CLI's representation from the domain model
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional

from nixmorph.domain.value_objects.deploy_action import DeployAction


@dataclass(frozen=True)
class HostFilter:
    """Which hosts of a deployment a run touches."""
    names: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    skip: int = 0
    every: int = 1
    limit: int = 0

    def __post_init__(self) -> None:
        if self.skip < 0:
            raise ValueError("skip cannot be negative")
        if self.every < 1:
            raise ValueError("every must be >= 1")
        if self.limit < 0:
            raise ValueError("limit cannot be negative")


@dataclass(frozen=True)
class DeployRequest:
    deployment_path: str
    action: DeployAction
    hosts: HostFilter = field(default_factory=HostFilter)
    # None falls back to the configured value
    parallel: Optional[int] = None
    fail_fast: Optional[bool] = None
    reboot: bool = False
    skip_pre_deploy_checks: bool = False
    skip_health_checks: bool = False

    def __post_init__(self) -> None:
        if not self.deployment_path:
            raise ValueError("deployment_path cannot be empty")
        if self.parallel is not None and self.parallel < 0:
            raise ValueError("parallel cannot be negative")
        if self.reboot and self.action == DeployAction.DRY_ACTIVATE:
            raise ValueError("--reboot cannot be combined with dry-activate")


@dataclass(frozen=True)
class BuildRequest:
    deployment_path: str
    hosts: HostFilter = field(default_factory=HostFilter)
    push: bool = False
    parallel: int = 0

    def __post_init__(self) -> None:
        if not self.deployment_path:
            raise ValueError("deployment_path cannot be empty")
        if self.parallel < 0:
            raise ValueError("parallel cannot be negative")


@dataclass(frozen=True)
class CheckHealthRequest:
    deployment_path: str
    hosts: HostFilter = field(default_factory=HostFilter)

    def __post_init__(self) -> None:
        if not self.deployment_path:
            raise ValueError("deployment_path cannot be empty")


@dataclass(frozen=True)
class HostResult:
    host: str
    stage: str
    succeeded: bool
    failed_step: Optional[str] = None
    error: Optional[str] = None
    closure: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "stage": self.stage,
            "succeeded": self.succeeded,
            "failed_step": self.failed_step,
            "error": self.error,
            "closure": self.closure,
        }


@dataclass(frozen=True)
class DeploymentReport:
    hosts: tuple[HostResult, ...] = ()

    @property
    def success(self) -> bool:
        return all(h.succeeded for h in self.hosts)

    @property
    def succeeded(self) -> list[str]:
        return [h.host for h in self.hosts if h.succeeded]

    @property
    def failed(self) -> list[str]:
        return [h.host for h in self.hosts if not h.succeeded]

    def get(self, host: str) -> HostResult:
        for result in self.hosts:
            if result.host == host:
                return result
        raise KeyError(host)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "hosts": [h.to_dict() for h in self.hosts],
        }
