"""
Build Hosts Use Case

Builds the selected hosts in one batch and, when asked, pushes the closures
without activating anything. Runs the same host pipeline as a deployment,
stopping after the build or the push.
"""

import dataclasses
import logging

from nixmorph.application.dtos.deployment_dtos import BuildRequest, DeploymentReport
from nixmorph.application.orchestration.deployment_planner import DeploymentPlanner
from nixmorph.application.orchestration.host_pipeline import PipelineOptions
from nixmorph.application.use_cases.deploy_fleet import BuilderFactory
from nixmorph.domain.ports.deployment_source_port import DeploymentSourcePort

logger = logging.getLogger(__name__)


class BuildHosts:
    def __init__(
        self,
        source: DeploymentSourcePort,
        builder_factory: BuilderFactory,
        planner: DeploymentPlanner,
        defaults: PipelineOptions = PipelineOptions(),
    ):
        self.source = source
        self.builder_factory = builder_factory
        self.planner = planner
        self.defaults = defaults

    async def execute(self, request: BuildRequest) -> DeploymentReport:
        deployment = await self.source.load(request.deployment_path)
        options = dataclasses.replace(
            self.defaults, action=None, upload=request.push, reboot=False
        )

        builder = self.builder_factory(request.deployment_path)
        try:
            return await self.planner.plan(
                deployment,
                request.hosts,
                options,
                builder,
                parallel=request.parallel,
            )
        finally:
            await builder.close()
