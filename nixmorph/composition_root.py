"""
Composition Root

Architectural Intent:
- Dependency injection composition root for nixmorph
- Single place where all adapters and use cases are wired together
- No adapter instantiation should occur outside this module (except tests)

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- Factory function creates and wires all dependencies from a MorphConfig
- Telemetry is wired here but initialized by the caller (it is async)
"""

from dataclasses import dataclass
from typing import Optional

from nixmorph.application.orchestration.deployment_planner import DeploymentPlanner
from nixmorph.application.orchestration.host_pipeline import PipelineOptions
from nixmorph.application.use_cases.build_hosts import BuildHosts
from nixmorph.application.use_cases.check_health import CheckHealth
from nixmorph.application.use_cases.deploy_fleet import DeployFleet
from nixmorph.domain.ports.build_port import BuildPort
from nixmorph.infrastructure.adapters.fabric_adapter import FabricAdapter
from nixmorph.infrastructure.adapters.health_checks import HealthCheckFactory
from nixmorph.infrastructure.adapters.nix_adapter import NixBuilder, NixContext, NixEvaluator
from nixmorph.infrastructure.adapters.nix_copy_closure_adapter import NixCopyClosureAdapter
from nixmorph.infrastructure.config import MorphConfig
from nixmorph.infrastructure.event_bus import EventBus
from nixmorph.infrastructure.telemetry.otel_exporter import OTELConfig, OTELExporter


@dataclass
class MorphContainer:
    """DI container holding all wired dependencies."""

    config: MorphConfig
    nix_context: NixContext
    evaluator: NixEvaluator
    transfer: NixCopyClosureAdapter
    remote: FabricAdapter
    checks: HealthCheckFactory
    event_bus: EventBus
    telemetry: OTELExporter
    planner: DeploymentPlanner
    deploy_fleet: DeployFleet
    build_hosts: BuildHosts
    check_health: CheckHealth


def pipeline_defaults(config: MorphConfig) -> PipelineOptions:
    deploy = config.deploy
    return PipelineOptions(
        health_check_attempts=deploy.health_check_attempts,
        reboot_poll_interval=deploy.reboot_poll_interval,
        reboot_timeout=deploy.reboot_timeout or None,
    )


def create_container(config: Optional[MorphConfig] = None) -> MorphContainer:
    """Create and wire all dependencies."""
    config = config or MorphConfig()
    nix_context = NixContext(
        eval_cmd=config.nix.eval_cmd,
        build_cmd=config.nix.build_cmd,
        shell_cmd=config.nix.shell_cmd,
        eval_machines=config.nix.eval_machines,
        show_trace=config.nix.show_trace,
        keep_gc_root=config.nix.keep_gc_root,
        allow_build_shell=config.nix.allow_build_shell,
    )
    evaluator = NixEvaluator(nix_context)
    transfer = NixCopyClosureAdapter(config.ssh)
    remote = FabricAdapter(config.ssh)
    checks = HealthCheckFactory(remote, config.deploy.health_check_period or None)
    event_bus = EventBus()
    telemetry = OTELExporter(
        OTELConfig(endpoint=config.telemetry.endpoint, insecure=config.telemetry.insecure)
    )
    telemetry.attach(event_bus)

    def builder_factory(deployment_path: str) -> BuildPort:
        return NixBuilder(nix_context, deployment_path, evaluator=evaluator)

    defaults = pipeline_defaults(config)
    planner = DeploymentPlanner(transfer, remote, checks, event_bus)
    deploy_fleet = DeployFleet(
        evaluator,
        builder_factory,
        planner,
        defaults=defaults,
        parallel=config.deploy.parallel,
        fail_fast=config.deploy.fail_fast,
    )
    build_hosts = BuildHosts(evaluator, builder_factory, planner, defaults=defaults)
    check_health = CheckHealth(evaluator, checks, config.deploy.health_check_attempts)

    return MorphContainer(
        config=config,
        nix_context=nix_context,
        evaluator=evaluator,
        transfer=transfer,
        remote=remote,
        checks=checks,
        event_bus=event_bus,
        telemetry=telemetry,
        planner=planner,
        deploy_fleet=deploy_fleet,
        build_hosts=build_hosts,
        check_health=check_health,
    )
