"""
Host Pipeline

Architectural Intent:
- Drives a single host through build -> push -> pre-deploy checks ->
  activate -> [reboot] -> health checks
- The unavailability window (activation, reboot, health checks) is bracketed
  by constraint slot acquisition and release; nothing else counts against
  maxUnavailable
- Every stage error is tagged with host and step before it leaves the pipeline

Failure Semantics:
- Pre-deploy check failures abort before any slot is taken
- Slots are released exactly once on every path: success, failure, cancellation
- Stage errors never propagate to sibling pipelines; cancellation does propagate
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from nixmorph.application.orchestration.build_coordinator import BuildCoordinator
from nixmorph.application.orchestration.health_check_runner import run_checks
from nixmorph.application.orchestration.reboot import (
    BOOT_ID_POLL_INTERVAL,
    REBOOT_COMMAND,
    reboot_host,
)
from nixmorph.domain.entities.health_check import HealthCheckSpecs
from nixmorph.domain.entities.host import Host
from nixmorph.domain.entities.host_deployment import HostDeployment, HostStage
from nixmorph.domain.errors import HostStageError, MorphError
from nixmorph.domain.ports.event_bus_port import EventBusPort
from nixmorph.domain.ports.health_check_port import HealthCheckPort
from nixmorph.domain.ports.remote_executor_port import RemoteExecutorPort
from nixmorph.domain.ports.transfer_port import TransferPort
from nixmorph.domain.services.constraint_registry import ConstraintRegistry
from nixmorph.domain.value_objects.deploy_action import DeployAction

logger = logging.getLogger(__name__)

CheckFactory = Callable[[HealthCheckSpecs], Sequence[HealthCheckPort]]


@dataclass(frozen=True)
class PipelineOptions:
    """What a run does to each host.

    ``action=None`` stops after the push (or after the build when ``upload``
    is off); that is how ``build`` and ``push`` runs reuse the pipeline.
    """
    action: Optional[DeployAction] = DeployAction.SWITCH
    upload: bool = True
    reboot: bool = False
    skip_pre_deploy_checks: bool = False
    skip_health_checks: bool = False
    health_check_attempts: int = 1
    reboot_poll_interval: float = BOOT_ID_POLL_INTERVAL
    reboot_timeout: Optional[float] = None
    reboot_command: tuple[str, ...] = REBOOT_COMMAND

    def __post_init__(self) -> None:
        if self.action is not None and not self.upload:
            raise ValueError("activating requires uploading the closure first")
        if self.reboot and self.action in (None, DeployAction.DRY_ACTIVATE):
            raise ValueError(f"cannot reboot after {self.action or 'no activation'}")
        if self.health_check_attempts < 1:
            raise ValueError("health_check_attempts must be >= 1")
        if self.reboot_timeout is not None and self.reboot_timeout <= 0:
            raise ValueError("reboot_timeout must be positive")


class HostPipeline:
    def __init__(
        self,
        builds: BuildCoordinator,
        transfer: TransferPort,
        remote: RemoteExecutorPort,
        constraints: ConstraintRegistry,
        checks: CheckFactory,
        event_bus: Optional[EventBusPort] = None,
    ) -> None:
        self._builds = builds
        self._transfer = transfer
        self._remote = remote
        self._constraints = constraints
        self._checks = checks
        self._event_bus = event_bus
        self._states: dict[str, HostDeployment] = {}

    def state_of(self, host_name: str) -> HostDeployment:
        return self._states.get(host_name) or HostDeployment(host_name)

    async def run(self, host: Host, options: PipelineOptions) -> HostDeployment:
        self._states[host.name] = HostDeployment(host.name)
        step = "build"
        try:
            closure = await self._builds.closure_for(host)
            await self._advance(host, HostStage.BUILT)

            if host.build_only or not options.upload:
                if host.build_only:
                    logger.info("[%s] build-only host, not pushing or activating", host.name)
                return await self._advance(host, HostStage.DONE)

            step = "push"
            logger.info("[%s] Pushing %s to %s", host.name, closure, host.target)
            await self._transfer.push(host, closure)
            await self._advance(host, HostStage.PUSHED)

            if options.action is None:
                return await self._advance(host, HostStage.DONE)

            step = "pre-deploy-checks"
            if not options.skip_pre_deploy_checks:
                await run_checks(
                    self._checks(host.pre_deploy_checks), host, options.health_check_attempts
                )
            await self._advance(host, HostStage.PRE_CHECKED)

            step = "acquire-slots"
            release = await self._constraints.acquire_all(host)
            try:
                step = "activate"
                logger.info("[%s] Executing %s", host.name, options.action)
                await self._remote.activate(host, closure, options.action)
                await self._advance(host, HostStage.ACTIVATED)

                if options.reboot:
                    step = "reboot"
                    await self._advance(host, HostStage.REBOOTING)
                    outcome = await reboot_host(
                        self._remote,
                        host,
                        poll_interval=options.reboot_poll_interval,
                        timeout=options.reboot_timeout,
                        command=options.reboot_command,
                    )
                    logger.info("[%s] reboot %s", host.name, outcome.value)
                    await self._advance(host, HostStage.ONLINE)

                step = "health-checks"
                if not options.skip_health_checks:
                    await run_checks(
                        self._checks(host.health_checks), host, options.health_check_attempts
                    )
                await self._advance(host, HostStage.POST_CHECKED)
            finally:
                release()

            return await self._advance(host, HostStage.DONE)

        except asyncio.CancelledError as e:
            logger.warning("[%s] cancelled during %s", host.name, step)
            self._fail(host, step, e)
            raise
        except MorphError as e:
            error = e if isinstance(e, HostStageError) else HostStageError(host.name, step, e)
            logger.error("[%s] %s failed: %s", host.name, step, e)
            state = self._fail(host, step, error)
            await self._publish(state)
            return state

    async def _advance(self, host: Host, stage: HostStage) -> HostDeployment:
        state = self._states[host.name].advance(stage)
        self._states[host.name] = state
        logger.debug("[%s] -> %s", host.name, stage)
        await self._publish(state)
        return state

    def _fail(self, host: Host, step: str, error: BaseException) -> HostDeployment:
        state = self._states[host.name]
        if not state.stage.is_terminal:
            state = state.fail(step, error)
            self._states[host.name] = state
        return state

    async def _publish(self, state: HostDeployment) -> None:
        if self._event_bus is not None and state.domain_events:
            await self._event_bus.publish([state.domain_events[-1]])
