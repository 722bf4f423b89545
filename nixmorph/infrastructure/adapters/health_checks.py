"""
Health Check Adapters

Architectural Intent:
- Evaluators for the declarative check specs of a host
- Command checks run on the host through the RemoteExecutorPort
- HTTP checks run from the deploying machine using stdlib urllib
- A check reports failure as a CheckResult; it never raises for an
  unhealthy host

Design Decisions:
- Each evaluation is bounded by the check's own timeout
- Blocking urllib calls run in the default executor
"""

import asyncio
import http.client
import logging
import ssl
import urllib.error
import urllib.request
from typing import Optional

from nixmorph.domain.entities.health_check import (
    CommandCheckSpec,
    HealthCheckSpecs,
    HttpCheckSpec,
)
from nixmorph.domain.entities.host import Host
from nixmorph.domain.errors import MorphError
from nixmorph.domain.ports.health_check_port import HealthCheckPort
from nixmorph.domain.ports.remote_executor_port import RemoteExecutorPort
from nixmorph.domain.value_objects.remote_result import CheckResult

logger = logging.getLogger(__name__)


class CommandHealthCheck:
    def __init__(
        self,
        spec: CommandCheckSpec,
        remote: RemoteExecutorPort,
        period: Optional[float] = None,
    ) -> None:
        self.spec = spec
        self.remote = remote
        self._period = period

    @property
    def description(self) -> str:
        return self.spec.description

    @property
    def period(self) -> float:
        return self._period if self._period is not None else self.spec.period

    async def check(self, host: Host) -> CheckResult:
        try:
            result = await asyncio.wait_for(
                self.remote.run(host, *self.spec.cmd), self.spec.timeout
            )
        except asyncio.TimeoutError:
            return CheckResult.failed(f"timed out after {self.spec.timeout}s")
        except MorphError as e:
            return CheckResult.failed(str(e))

        if result.ok:
            return CheckResult.passed()
        detail = result.stderr.strip() or result.stdout.strip()
        message = f"exit status {result.exit_status}"
        return CheckResult.failed(f"{message}: {detail}" if detail else message)


class HttpHealthCheck:
    def __init__(self, spec: HttpCheckSpec, period: Optional[float] = None) -> None:
        self.spec = spec
        self._period = period

    @property
    def description(self) -> str:
        return self.spec.description or self.spec.url_for("<target>")

    @property
    def period(self) -> float:
        return self._period if self._period is not None else self.spec.period

    def _ssl_context(self) -> Optional[ssl.SSLContext]:
        if self.spec.scheme != "https":
            return None
        context = ssl.create_default_context()
        if self.spec.insecure_ssl:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _get(self, url: str) -> int:
        request = urllib.request.Request(url, headers=dict(self.spec.headers), method="GET")
        with urllib.request.urlopen(
            request, timeout=self.spec.timeout, context=self._ssl_context()
        ) as response:
            return response.status

    async def check(self, host: Host) -> CheckResult:
        url = self.spec.url_for(host.target.host)
        loop = asyncio.get_running_loop()
        try:
            status = await loop.run_in_executor(None, self._get, url)
        except urllib.error.HTTPError as e:
            return CheckResult.failed(f"GET {url}: HTTP {e.code}")
        except (urllib.error.URLError, OSError) as e:
            return CheckResult.failed(f"GET {url}: {e}")
        except (http.client.HTTPException, ValueError) as e:
            # port open but not speaking HTTP (yet)
            detail = str(e).strip() or type(e).__name__
            return CheckResult.failed(f"GET {url}: invalid HTTP response: {detail}")

        if 200 <= status < 300:
            return CheckResult.passed()
        return CheckResult.failed(f"GET {url}: HTTP {status}")


class HealthCheckFactory:
    """Turns a host's check specs into evaluators."""

    def __init__(self, remote: RemoteExecutorPort, period: Optional[float] = None) -> None:
        self.remote = remote
        self.period = period

    def __call__(self, specs: HealthCheckSpecs) -> list[HealthCheckPort]:
        checks: list[HealthCheckPort] = [
            CommandHealthCheck(spec, self.remote, self.period) for spec in specs.cmd
        ]
        checks.extend(HttpHealthCheck(spec, self.period) for spec in specs.http)
        return checks
