"""
Deploy Fleet Use Case

Architectural Intent:
- Evaluates a deployment file, then rolls the selected hosts out through the
  DeploymentPlanner (build -> push -> checks -> activate -> health checks)
- Builders are created per deployment file; the use case owns their lifetime
- Returns a per-host report instead of a bare success flag
"""

import dataclasses
import logging
from typing import Callable

from nixmorph.application.dtos.deployment_dtos import DeploymentReport, DeployRequest
from nixmorph.application.orchestration.deployment_planner import DeploymentPlanner
from nixmorph.application.orchestration.host_pipeline import PipelineOptions
from nixmorph.domain.ports.build_port import BuildPort
from nixmorph.domain.ports.deployment_source_port import DeploymentSourcePort

logger = logging.getLogger(__name__)

BuilderFactory = Callable[[str], BuildPort]


class DeployFleet:
    def __init__(
        self,
        source: DeploymentSourcePort,
        builder_factory: BuilderFactory,
        planner: DeploymentPlanner,
        defaults: PipelineOptions = PipelineOptions(),
        parallel: int = 0,
        fail_fast: bool = False,
    ):
        self.source = source
        self.builder_factory = builder_factory
        self.planner = planner
        self.defaults = defaults
        self.parallel = parallel
        self.fail_fast = fail_fast

    async def execute(self, request: DeployRequest) -> DeploymentReport:
        deployment = await self.source.load(request.deployment_path)
        options = dataclasses.replace(
            self.defaults,
            action=request.action,
            upload=True,
            reboot=request.reboot,
            skip_pre_deploy_checks=request.skip_pre_deploy_checks,
            skip_health_checks=request.skip_health_checks,
        )
        logger.info(
            "Deploying %s (%s)", request.deployment_path, request.action.value
        )

        builder = self.builder_factory(request.deployment_path)
        try:
            return await self.planner.plan(
                deployment,
                request.hosts,
                options,
                builder,
                parallel=self.parallel if request.parallel is None else request.parallel,
                fail_fast=self.fail_fast if request.fail_fast is None else request.fail_fast,
            )
        finally:
            await builder.close()
