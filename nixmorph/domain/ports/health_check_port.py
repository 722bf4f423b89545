"""
Health Check Port

Architectural Intent:
- Structural interface shared by every health check evaluator
- Used for both pre-deploy and post-deploy check sets
"""

from typing import Protocol, runtime_checkable

from nixmorph.domain.entities.host import Host
from nixmorph.domain.value_objects.remote_result import CheckResult


@runtime_checkable
class HealthCheckPort(Protocol):
    @property
    def description(self) -> str: ...

    @property
    def period(self) -> float: ...

    async def check(self, host: Host) -> CheckResult:
        """Evaluates the check once against host."""
        ...
