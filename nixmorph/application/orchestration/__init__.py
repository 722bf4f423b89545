"""
Application Orchestration Package

Architectural Intent:
- Contains the rollout machinery: batch builds, per-host pipelines,
  bounded-parallel fan-out and the reboot protocol
"""

from nixmorph.application.orchestration.build_coordinator import BuildCoordinator
from nixmorph.application.orchestration.deployment_planner import DeploymentPlanner
from nixmorph.application.orchestration.host_pipeline import HostPipeline, PipelineOptions
from nixmorph.application.orchestration.reboot import RebootOutcome, reboot_host

__all__ = [
    "BuildCoordinator",
    "DeploymentPlanner",
    "HostPipeline",
    "PipelineOptions",
    "RebootOutcome",
    "reboot_host",
]
