"""
Health Check Runner

Runs a set of checks against one host. Every check is retried up to
``attempts`` times, ``check.period`` seconds apart; the set passes only when
every check passes. Checks run concurrently.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Sequence

from nixmorph.domain.entities.host import Host
from nixmorph.domain.errors import HealthCheckFailure, MorphError
from nixmorph.domain.ports.health_check_port import HealthCheckPort
from nixmorph.domain.value_objects.remote_result import CheckResult

logger = logging.getLogger(__name__)


async def run_checks(
    checks: Sequence[HealthCheckPort], host: Host, attempts: int = 1
) -> None:
    if not checks:
        return

    results = await asyncio.gather(
        *(_run_check(check, host, max(1, attempts)) for check in checks)
    )
    failures = [
        f"{check.description}: {result.error}"
        for check, result in zip(checks, results)
        if not result.ok
    ]
    if failures:
        raise HealthCheckFailure(failures)
    logger.info("[%s] %d health check(s) OK", host.name, len(checks))


async def _run_check(check: HealthCheckPort, host: Host, attempts: int) -> CheckResult:
    result = CheckResult.failed("not run")
    for attempt in range(1, attempts + 1):
        try:
            result = await check.check(host)
        except MorphError as e:
            result = CheckResult.failed(str(e))

        if result.ok:
            logger.debug("[%s] check %r passed", host.name, check.description)
            return result

        logger.info(
            "[%s] check %r failed (attempt %d/%d): %s",
            host.name, check.description, attempt, attempts, result.error,
        )
        if attempt < attempts:
            await asyncio.sleep(check.period)
    return result
