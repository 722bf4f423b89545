"""
Health Check Specifications

Declarative health checks as they come out of the evaluated deployment.
Evaluators for them live in the infrastructure layer.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from nixmorph.domain.fields import lookup


@dataclass(frozen=True)
class CommandCheckSpec:
    """Run a command on the host; passes when it exits 0."""
    description: str
    cmd: tuple[str, ...]
    period: int = 2
    timeout: int = 10

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "CommandCheckSpec":
        cmd = lookup(data, "cmd", [])
        if isinstance(cmd, str):
            cmd = [cmd]
        if not cmd:
            raise ValueError("Command health check needs a non-empty cmd")
        return CommandCheckSpec(
            description=lookup(data, "description", "") or " ".join(cmd),
            cmd=tuple(str(c) for c in cmd),
            period=int(lookup(data, "period", 2) or 2),
            timeout=int(lookup(data, "timeout", 10) or 10),
        )


@dataclass(frozen=True)
class HttpCheckSpec:
    """GET a URL; passes on a 2xx response."""
    description: str
    path: str = "/"
    port: int = 80
    scheme: str = "http"
    host: Optional[str] = None
    headers: tuple[tuple[str, str], ...] = ()
    insecure_ssl: bool = False
    period: int = 2
    timeout: int = 10

    def url_for(self, target_host: str) -> str:
        host = self.host or target_host
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        path = self.path if self.path.startswith("/") else "/" + self.path
        return f"{self.scheme}://{host}:{self.port}{path}"

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "HttpCheckSpec":
        scheme = (lookup(data, "scheme", "http") or "http").lower()
        if scheme not in ("http", "https"):
            raise ValueError(f"Unsupported health check scheme: {scheme!r}")
        headers = lookup(data, "headers", {}) or {}
        default_port = 443 if scheme == "https" else 80
        return HttpCheckSpec(
            description=lookup(data, "description", "") or "",
            path=lookup(data, "path", "/") or "/",
            port=int(lookup(data, "port", default_port) or default_port),
            scheme=scheme,
            host=lookup(data, "host", None),
            headers=tuple(sorted((str(k), str(v)) for k, v in headers.items())),
            insecure_ssl=bool(lookup(data, "insecureSSL", False)),
            period=int(lookup(data, "period", 2) or 2),
            timeout=int(lookup(data, "timeout", 10) or 10),
        )


@dataclass(frozen=True)
class HealthCheckSpecs:
    cmd: tuple[CommandCheckSpec, ...] = field(default_factory=tuple)
    http: tuple[HttpCheckSpec, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.cmd) + len(self.http)

    def __bool__(self) -> bool:
        return len(self) > 0

    @staticmethod
    def from_dict(data: Optional[Mapping[str, Any]]) -> "HealthCheckSpecs":
        if not data:
            return HealthCheckSpecs()
        return HealthCheckSpecs(
            cmd=tuple(CommandCheckSpec.from_dict(c) for c in lookup(data, "cmd", []) or []),
            http=tuple(HttpCheckSpec.from_dict(c) for c in lookup(data, "http", []) or []),
        )
