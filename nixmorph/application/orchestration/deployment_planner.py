"""
Deployment Planner

Architectural Intent:
- Selects and orders the hosts of a run, then fans the host pipeline out
  over them with bounded parallelism
- Everything that can be rejected up front (unknown hosts, invalid
  constraints) is rejected before the first build starts
- Aggregates one result per host; the run succeeds only if every host does

Parallelism:
- parallel=0 runs every selected host at once, parallel=1 is sequential,
  parallel=N bounds the number of hosts in flight
- Hosts enter the pipeline in execution order; constraint slots further
  bound how many hosts per label value are inside the activation window
- fail_fast cancels the pipelines still running after the first failure;
  cancelled pipelines release their slots on the way out
"""

from __future__ import annotations
import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Optional

from nixmorph.application.dtos.deployment_dtos import (
    DeploymentReport,
    HostFilter,
    HostResult,
)
from nixmorph.application.orchestration.build_coordinator import BuildCoordinator
from nixmorph.application.orchestration.host_pipeline import (
    CheckFactory,
    HostPipeline,
    PipelineOptions,
)
from nixmorph.domain.entities.deployment import Deployment
from nixmorph.domain.entities.host import Host
from nixmorph.domain.entities.host_deployment import HostDeployment
from nixmorph.domain.errors import HostStageError
from nixmorph.domain.events.host_events import DeploymentFinishedEvent
from nixmorph.domain.ports.build_port import BuildPort
from nixmorph.domain.ports.event_bus_port import EventBusPort
from nixmorph.domain.ports.remote_executor_port import RemoteExecutorPort
from nixmorph.domain.ports.transfer_port import TransferPort
from nixmorph.domain.services.constraint_registry import ConstraintRegistry
from nixmorph.domain.services.host_selection import order_hosts, select_hosts, window

logger = logging.getLogger(__name__)


class DeploymentPlanner:
    def __init__(
        self,
        transfer: TransferPort,
        remote: RemoteExecutorPort,
        checks: CheckFactory,
        event_bus: Optional[EventBusPort] = None,
    ) -> None:
        self._transfer = transfer
        self._remote = remote
        self._checks = checks
        self._event_bus = event_bus

    @staticmethod
    def select(deployment: Deployment, host_filter: HostFilter) -> list[Host]:
        """Hosts the run will touch, in execution order.

        Raises UnknownHostError before anything else happens.
        """
        selected = select_hosts(deployment.hosts, host_filter.names, host_filter.tags)
        ordered = order_hosts(selected, deployment.meta.ordering)
        return window(ordered, host_filter.skip, host_filter.every, host_filter.limit)

    async def plan(
        self,
        deployment: Deployment,
        host_filter: HostFilter,
        options: PipelineOptions,
        builder: BuildPort,
        parallel: int = 0,
        fail_fast: bool = False,
    ) -> DeploymentReport:
        deployment.validate()
        hosts = self.select(deployment, host_filter)
        registry = ConstraintRegistry(deployment.meta.constraints)
        registry.validate()

        if not hosts:
            logger.warning("No hosts selected")
            return DeploymentReport()

        logger.info(
            "Selected %d host(s): %s", len(hosts), ", ".join(h.name for h in hosts)
        )

        builds = BuildCoordinator(builder)
        builds.add_batch(hosts)
        pipeline = HostPipeline(
            builds, self._transfer, self._remote, registry, self._checks, self._event_bus
        )
        limiter = asyncio.Semaphore(parallel) if parallel > 0 else None

        async def run_one(host: Host) -> HostDeployment:
            async with AsyncExitStack() as stack:
                if limiter is not None:
                    await stack.enter_async_context(limiter)
                return await pipeline.run(host, options)

        tasks = {
            asyncio.create_task(run_one(host), name=f"deploy-{host.name}"): host
            for host in hosts
        }
        states: dict[str, HostDeployment] = {}
        try:
            pending = set(tasks)
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    state = await self._collect(task, tasks[task], pipeline)
                    states[state.host_name] = state
                    if fail_fast and not state.succeeded and pending:
                        logger.warning(
                            "%s failed; cancelling %d remaining host(s)",
                            state.host_name, len(pending),
                        )
                        for other in pending:
                            other.cancel()
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await builds.close()

        report = DeploymentReport(
            hosts=tuple(
                self._result(states.get(h.name) or pipeline.state_of(h.name), builds)
                for h in hosts
            )
        )
        if report.success:
            logger.info("All %d host(s) succeeded", len(report.hosts))
        else:
            logger.warning(
                "%d of %d host(s) failed: %s",
                len(report.failed), len(report.hosts), ", ".join(report.failed),
            )
        if self._event_bus is not None:
            await self._event_bus.publish([
                DeploymentFinishedEvent(
                    aggregate_id=deployment.meta.description,
                    succeeded=tuple(report.succeeded),
                    failed=tuple(report.failed),
                )
            ])
        return report

    async def _collect(
        self, task: asyncio.Task, host: Host, pipeline: HostPipeline
    ) -> HostDeployment:
        if task.cancelled():
            state = pipeline.state_of(host.name)
            if not state.stage.is_terminal:
                state = state.fail("cancelled", asyncio.CancelledError())
            return state

        error = task.exception()
        if error is None:
            return task.result()

        logger.error("[%s] unexpected error", host.name, exc_info=error)
        state = pipeline.state_of(host.name)
        if state.stage.is_terminal:
            return state
        state = state.fail("internal", HostStageError(host.name, "internal", error))
        if self._event_bus is not None:
            await self._event_bus.publish([state.domain_events[-1]])
        return state

    @staticmethod
    def _result(state: HostDeployment, builds: BuildCoordinator) -> HostResult:
        error = state.error
        if isinstance(error, HostStageError) and error.cause is not None:
            message = str(error.cause)
        elif isinstance(error, asyncio.CancelledError):
            message = "cancelled"
        else:
            message = str(error) if error is not None else None
        return HostResult(
            host=state.host_name,
            stage=state.last_stage.value,
            succeeded=state.succeeded,
            failed_step=state.failed_step,
            error=message,
            closure=builds.closure(state.host_name),
        )
