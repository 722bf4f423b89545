"""In-memory port implementations and builders for tests."""

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from nixmorph.domain.entities.deployment import (
    Constraint,
    Deployment,
    DeploymentMetadata,
    HostOrdering,
)
from nixmorph.domain.entities.health_check import CommandCheckSpec, HealthCheckSpecs
from nixmorph.domain.entities.host import Host
from nixmorph.domain.errors import ActivationError, ConnectivityError, TransferError
from nixmorph.domain.events.event_base import DomainEvent
from nixmorph.domain.ports.build_port import BuildPort
from nixmorph.domain.ports.remote_executor_port import RemoteExecutorPort
from nixmorph.domain.ports.transfer_port import TransferPort
from nixmorph.domain.services.keyed_store import KeyedStore
from nixmorph.domain.value_objects.deploy_action import DeployAction
from nixmorph.domain.value_objects.label_selector import LabelSelector
from nixmorph.domain.value_objects.remote_result import RemoteResult


def make_host(
    name: str,
    labels: Optional[dict[str, str]] = None,
    tags: Sequence[str] = (),
    checks: Sequence[str] = (),
    pre_checks: Sequence[str] = (),
    **kwargs,
) -> Host:
    """A host whose health checks are the remote commands named in checks."""
    return Host(
        name=name,
        labels=labels or {},
        tags=tuple(tags),
        health_checks=HealthCheckSpecs(
            cmd=tuple(CommandCheckSpec(c, (c,), period=0) for c in checks)
        ),
        pre_deploy_checks=HealthCheckSpecs(
            cmd=tuple(CommandCheckSpec(c, (c,), period=0) for c in pre_checks)
        ),
        **kwargs,
    )


def make_constraint(label: str, value: str = "*", max_unavailable: int = 1) -> Constraint:
    return Constraint(
        selector=LabelSelector(label, value),
        max_unavailable=max_unavailable,
        slots=KeyedStore(f"constraint-{label}"),
    )


def make_deployment(
    hosts: Iterable[Host],
    constraints: Iterable[Constraint] = (),
    ordering: Sequence[str] = (),
) -> Deployment:
    return Deployment(
        hosts=tuple(hosts),
        meta=DeploymentMetadata(
            description="test",
            ordering=HostOrdering(tags=tuple(ordering)),
            constraints=tuple(constraints),
        ),
    )


class FakeBuilder(BuildPort):
    """Builds by creating <root>/result-N/<host> links into a fake store."""

    def __init__(
        self,
        root: Path,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        missing: Sequence[str] = (),
    ) -> None:
        self.root = Path(root)
        self.error = error
        self.delay = delay
        self.missing = set(missing)
        self.calls: list[list[str]] = []
        self.closed = False

    def closure_path(self, name: str) -> str:
        return str((self.root / "store" / f"{name}-system").resolve())

    async def build(self, hosts: Sequence[Host]) -> str:
        self.calls.append([h.name for h in hosts])
        number = len(self.calls)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

        result = self.root / f"result-{number}"
        result.mkdir(parents=True)
        for host in hosts:
            if host.name in self.missing:
                continue
            target = self.root / "store" / f"{host.name}-system"
            target.mkdir(parents=True, exist_ok=True)
            (result / host.name).symlink_to(target)
        return str(result)

    async def close(self) -> None:
        self.closed = True


class FakeTransfer(TransferPort):
    def __init__(self, failures: Optional[dict[str, str]] = None) -> None:
        self.failures = failures or {}
        self.pushes: list[tuple[str, tuple[str, ...]]] = []

    async def push(self, host: Host, *paths: str) -> None:
        if host.name in self.failures:
            raise TransferError(self.failures[host.name])
        self.pushes.append((host.name, paths))

    @property
    def pushed_hosts(self) -> list[str]:
        return [name for name, _ in self.pushes]


BootIdResponse = Union[str, Exception]


class FakeRemote(RemoteExecutorPort):
    """Scriptable remote host fleet.

    Commands succeed unless scripted; the reboot command drops the connection
    (exit 255) like a real reboot does. Boot ids are served from per-host
    sequences, repeating the last entry once exhausted.
    """

    def __init__(self, activation_delay: float = 0.0) -> None:
        self.activation_delay = activation_delay
        self.activations: list[tuple[str, str, DeployAction]] = []
        self.failing_activations: dict[str, str] = {}
        self.commands: list[tuple[str, tuple[str, ...]]] = []
        self.scripted: dict[tuple[str, tuple[str, ...]], list[RemoteResult]] = {}
        self.boot_ids: dict[str, list[BootIdResponse]] = {}
        self.boot_id_calls: dict[str, int] = {}
        self.active: set[str] = set()
        self.snapshots: list[frozenset[str]] = []
        self.max_active = 0

    def script(self, host: str, argv: Sequence[str], *results: RemoteResult) -> None:
        self.scripted[(host, tuple(argv))] = list(results)

    async def run(self, host: Host, *argv: str) -> RemoteResult:
        self.commands.append((host.name, argv))
        queue = self.scripted.get((host.name, argv))
        if queue:
            result = queue.pop(0) if len(queue) > 1 else queue[0]
            return result
        if argv[-1:] == ("reboot",):
            return RemoteResult(stdout="", exit_status=255)
        return RemoteResult(stdout="", exit_status=0)

    async def activate(self, host: Host, closure: str, action: DeployAction) -> None:
        self.active.add(host.name)
        self.snapshots.append(frozenset(self.active))
        self.max_active = max(self.max_active, len(self.active))
        try:
            if self.activation_delay:
                await asyncio.sleep(self.activation_delay)
            if host.name in self.failing_activations:
                raise ActivationError(self.failing_activations[host.name])
            self.activations.append((host.name, closure, action))
        finally:
            self.active.discard(host.name)

    async def get_boot_id(self, host: Host) -> str:
        self.boot_id_calls[host.name] = self.boot_id_calls.get(host.name, 0) + 1
        sequence = self.boot_ids.get(host.name)
        if not sequence:
            raise ConnectivityError(f"{host.name} has no boot id")
        response = sequence.pop(0) if len(sequence) > 1 else sequence[0]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def activated_hosts(self) -> list[str]:
        return [name for name, _, _ in self.activations]


class RecordingEventBus:
    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    async def publish(self, events: list[DomainEvent]) -> None:
        self.events.extend(events)

    def subscribe(self, event_type, handler) -> None:
        raise NotImplementedError

    def of_type(self, event_type: type) -> list[DomainEvent]:
        return [e for e in self.events if isinstance(e, event_type)]
