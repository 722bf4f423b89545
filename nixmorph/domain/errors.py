"""
Domain Errors

Architectural Intent:
- Single exception hierarchy for every failure the deployment engine can surface
- Configuration errors are raised before any host pipeline starts
- Per-host stage errors are wrapped in HostStageError so reports can attribute them
"""

from __future__ import annotations
from typing import Optional


class MorphError(Exception):
    """Base class for all nixmorph errors."""


class ConfigurationError(MorphError):
    pass


class UnknownHostError(ConfigurationError):
    def __init__(self, names: list[str]) -> None:
        self.names = list(names)
        super().__init__(
            "host(s) not in deployment: " + ", ".join(sorted(self.names))
        )


class DuplicateHostError(ConfigurationError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"host {name!r} declared more than once")


class InvalidConstraintError(ConfigurationError):
    pass


class KeyNotFoundError(MorphError, KeyError):
    def __init__(self, store: str, key: str) -> None:
        self.store = store
        self.key = key
        super().__init__(f"{store}: key {key!r} not found")

    def __str__(self) -> str:
        return self.args[0]


class BuildError(MorphError):
    pass


class LinkResolutionError(BuildError):
    def __init__(self, link: str, reason: str = "") -> None:
        self.link = link
        message = f"expected build result at {link}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class TransferError(MorphError):
    pass


class ActivationError(MorphError):
    pass


class HealthCheckFailure(MorphError):
    def __init__(self, failures: list[str]) -> None:
        self.failures = list(failures)
        super().__init__("health checks failed: " + "; ".join(self.failures))


class ConnectivityError(MorphError):
    pass


class RebootError(MorphError):
    pass


class RebootTimeout(RebootError):
    def __init__(self, host: str, timeout: float) -> None:
        self.host = host
        self.timeout = timeout
        super().__init__(
            f"{host} did not report a new boot id within {timeout:g}s"
        )


class HostStageError(MorphError):
    """A per-host failure tagged with the host name and the stage it happened in."""

    def __init__(self, host: str, stage: str, cause: Optional[BaseException]) -> None:
        self.host = host
        self.stage = stage
        self.cause = cause
        super().__init__(f"[{host}] {stage}: {cause}")
