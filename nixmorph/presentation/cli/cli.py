"""
CLI Module

Architectural Intent:
- Command-line interface for nixmorph
- Entry point for all user interactions
- Delegates to application use cases via composition root
- Supports --verbose/--debug flags for log level control

Exit Status:
- 0 when every selected host succeeded, 1 otherwise (or on a configuration
  error), 130 when interrupted after in-flight hosts were cancelled
"""

import argparse
import asyncio
import sys
import traceback
from typing import Optional, Sequence

from nixmorph.application.dtos.deployment_dtos import (
    BuildRequest,
    CheckHealthRequest,
    DeploymentReport,
    DeployRequest,
    HostFilter,
)
from nixmorph.composition_root import MorphContainer, create_container
from nixmorph.domain.errors import ConfigurationError, MorphError
from nixmorph.domain.events.host_events import HostFailedEvent, HostStageChangedEvent
from nixmorph.domain.value_objects.deploy_action import DeployAction
from nixmorph.infrastructure.config import load_config
from nixmorph.infrastructure.logging import configure_logging, level_for

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def _split(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(v.strip() for v in value.split(",") if v.strip())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nixmorph", description="Rolling NixOS deployments for a fleet of hosts"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug output with tracebacks"
    )
    parser.add_argument(
        "--config", "-c", default=None, help="Path to nixmorph.json"
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Log JSON lines instead of text"
    )

    selection = argparse.ArgumentParser(add_help=False)
    selection.add_argument("deployment", help="Path to the deployment file")
    selection.add_argument(
        "--on", default="", help="Comma-separated host names or glob patterns"
    )
    selection.add_argument(
        "--tagged", default="", help="Comma-separated tags; hosts with any of them"
    )
    selection.add_argument("--skip", type=int, default=0, help="Skip the first N hosts")
    selection.add_argument("--every", type=int, default=1, help="Only every Nth host")
    selection.add_argument("--limit", type=int, default=0, help="At most N hosts")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    deploy_parser = subparsers.add_parser(
        "deploy", parents=[selection], help="Build, push and activate hosts"
    )
    deploy_parser.add_argument(
        "action", choices=[a.value for a in DeployAction], help="Activation mode"
    )
    deploy_parser.add_argument(
        "--parallel", "-p", type=int, default=None,
        help="Hosts in flight at once (0 = all, 1 = sequential; default from config)",
    )
    deploy_parser.add_argument(
        "--reboot", action="store_true", help="Reboot hosts after activation"
    )
    deploy_parser.add_argument(
        "--fail-fast", action=argparse.BooleanOptionalAction, default=None,
        help="Cancel remaining hosts after a failure (default from config)",
    )
    deploy_parser.add_argument(
        "--skip-health-checks", action="store_true", help="Do not run health checks"
    )
    deploy_parser.add_argument(
        "--skip-pre-deploy-checks", action="store_true", help="Do not run pre-deploy checks"
    )

    subparsers.add_parser(
        "build", parents=[selection], help="Build hosts and print their closures"
    )
    push_parser = subparsers.add_parser(
        "push", parents=[selection], help="Build and push hosts without activating"
    )
    push_parser.add_argument(
        "--parallel", "-p", type=int, default=0, help="Hosts pushed at once (0 = all)"
    )
    subparsers.add_parser(
        "check-health", parents=[selection], help="Run health checks only"
    )
    return parser


def _host_filter(args: argparse.Namespace) -> HostFilter:
    return HostFilter(
        names=_split(args.on),
        tags=_split(args.tagged),
        skip=args.skip,
        every=args.every,
        limit=args.limit,
    )


def _subscribe_progress(container: MorphContainer) -> None:
    async def on_stage(event: HostStageChangedEvent) -> None:
        print(f"[*] {event.aggregate_id}: {event.stage}")

    async def on_failed(event: HostFailedEvent) -> None:
        print(f"[-] {event.aggregate_id}: {event.stage} failed: {event.error_message}")

    container.event_bus.subscribe(HostStageChangedEvent, on_stage)
    container.event_bus.subscribe(HostFailedEvent, on_failed)


def print_report(report: DeploymentReport, show_closures: bool = False) -> None:
    if not report.hosts:
        print("[-] No hosts selected.")
        return
    for result in report.hosts:
        if result.succeeded:
            line = f"[+] {result.host}: {result.stage}"
            if show_closures and result.closure:
                line += f" {result.closure}"
        else:
            line = (
                f"[-] {result.host}: failed at {result.failed_step} "
                f"(reached {result.stage}): {result.error}"
            )
        print(line)
    if report.success:
        print(f"[+] {len(report.hosts)} host(s) OK.")
    else:
        print(f"[-] {len(report.failed)} of {len(report.hosts)} host(s) failed.")


async def _run(args: argparse.Namespace, container: MorphContainer) -> DeploymentReport:
    hosts = _host_filter(args)

    if args.command == "deploy":
        return await container.deploy_fleet.execute(
            DeployRequest(
                deployment_path=args.deployment,
                action=DeployAction.parse(args.action),
                hosts=hosts,
                parallel=args.parallel,
                fail_fast=args.fail_fast,
                reboot=args.reboot,
                skip_pre_deploy_checks=args.skip_pre_deploy_checks,
                skip_health_checks=args.skip_health_checks,
            )
        )
    if args.command in ("build", "push"):
        return await container.build_hosts.execute(
            BuildRequest(
                deployment_path=args.deployment,
                hosts=hosts,
                push=args.command == "push",
                parallel=getattr(args, "parallel", 0),
            )
        )
    return await container.check_health.execute(
        CheckHealthRequest(deployment_path=args.deployment, hosts=hosts)
    )


async def async_main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    verbose = args.verbose or args.debug
    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"[-] Configuration error: {e}")
        return EXIT_FAILURE
    configure_logging(
        level=level_for(args.verbose, args.debug, config.log_level),
        json_format=args.json_logs,
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        container = create_container(config)
    except (ConfigurationError, ValueError) as e:
        print(f"[-] Configuration error: {e}")
        if verbose:
            traceback.print_exc()
        return EXIT_FAILURE
    _subscribe_progress(container)
    await container.telemetry.initialize()
    try:
        report = await _run(args, container)
    except ConfigurationError as e:
        print(f"[-] Configuration error: {e}")
        if verbose:
            traceback.print_exc()
        return EXIT_FAILURE
    except (MorphError, ValueError) as e:
        print(f"[-] {args.command} failed: {e}")
        if verbose:
            traceback.print_exc()
        return EXIT_FAILURE
    finally:
        await container.telemetry.shutdown()

    print_report(report, show_closures=args.command in ("build", "push"))
    return 0 if report.success else EXIT_FAILURE


def main():
    try:
        code = asyncio.run(async_main())
    except KeyboardInterrupt:
        print("\n[-] Interrupted; in-flight hosts were cancelled.")
        code = EXIT_INTERRUPTED
    sys.exit(code)


if __name__ == "__main__":
    main()
