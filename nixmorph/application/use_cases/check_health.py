"""
Check Health Use Case

Architectural Intent:
- Runs the post-deploy health checks of the selected hosts without building,
  pushing or activating anything
- Hosts are checked concurrently; one failing host does not stop the others
"""

import asyncio
import logging
from typing import Optional

from nixmorph.application.dtos.deployment_dtos import (
    CheckHealthRequest,
    DeploymentReport,
    HostResult,
)
from nixmorph.application.orchestration.deployment_planner import DeploymentPlanner
from nixmorph.application.orchestration.health_check_runner import run_checks
from nixmorph.application.orchestration.host_pipeline import CheckFactory
from nixmorph.domain.entities.host import Host
from nixmorph.domain.entities.host_deployment import HostStage
from nixmorph.domain.errors import MorphError
from nixmorph.domain.ports.deployment_source_port import DeploymentSourcePort

logger = logging.getLogger(__name__)


class CheckHealth:
    def __init__(
        self,
        source: DeploymentSourcePort,
        checks: CheckFactory,
        attempts: int = 1,
    ):
        self.source = source
        self.checks = checks
        self.attempts = attempts

    async def execute(self, request: CheckHealthRequest) -> DeploymentReport:
        deployment = await self.source.load(request.deployment_path)
        hosts = [
            h for h in DeploymentPlanner.select(deployment, request.hosts)
            if not h.build_only
        ]
        results = await asyncio.gather(*(self._check(host) for host in hosts))
        return DeploymentReport(hosts=tuple(results))

    async def _check(self, host: Host) -> HostResult:
        error: Optional[str] = None
        try:
            await run_checks(self.checks(host.health_checks), host, self.attempts)
        except MorphError as e:
            logger.error("[%s] health checks failed: %s", host.name, e)
            error = str(e)
        except Exception as e:
            logger.exception("[%s] health checks raised unexpectedly", host.name)
            error = f"{type(e).__name__}: {e}"

        if error is None:
            return HostResult(
                host=host.name, stage=HostStage.POST_CHECKED.value, succeeded=True
            )
        return HostResult(
            host=host.name,
            stage=HostStage.PENDING.value,
            succeeded=False,
            failed_step="health-checks",
            error=error,
        )
