"""
Target Value Object

Architectural Intent:
- Immutable SSH connection identity of a deployment host
- Validates hostname format (DNS, IPv4, IPv6) and port bounds
- Empty user and port 0 mean "let ssh decide" (ssh_config, defaults)
"""

import re
from dataclasses import dataclass

# RFC 1123 hostname: labels of alnum/hyphens, dot-separated
_HOSTNAME_RE = re.compile(
    r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.[A-Za-z0-9-]{1,63})*$"
)

_IPV4_RE = re.compile(
    r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$"
)

# Simplified; accepts ::1, fe80::1 and friends
_IPV6_RE = re.compile(r"^[0-9a-fA-F:]+$")


def _is_valid_hostname(host: str) -> bool:
    if not host:
        return False

    m = _IPV4_RE.match(host)
    if m:
        return all(0 <= int(g) <= 255 for g in m.groups())

    if _IPV6_RE.match(host) and ":" in host:
        return True

    return bool(_HOSTNAME_RE.match(host)) and len(host) <= 253


@dataclass(frozen=True)
class Target:
    """
    Value Object representing where a host is reached over SSH.
    """
    host: str
    user: str = ""
    port: int = 0

    def __post_init__(self) -> None:
        if not (0 <= self.port <= 65535):
            raise ValueError(f"Port must be 0-65535, got {self.port}")
        if not _is_valid_hostname(self.host):
            raise ValueError(f"Invalid hostname: {self.host!r}")

    def with_default_user(self, user: str) -> "Target":
        if self.user or not user:
            return self
        return Target(host=self.host, user=user, port=self.port)

    @property
    def ssh_destination(self) -> str:
        """user@host as understood by ssh and nix-copy-closure (no port)."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.user}@{host}" if self.user else host

    def __str__(self) -> str:
        if self.port:
            return f"{self.ssh_destination}:{self.port}"
        return self.ssh_destination

    @staticmethod
    def parse(connection_string: str) -> "Target":
        """
        Parses 'user@host:port', 'host' or 'user@[::1]:port' into a Target.
        """
        user = ""
        port = 0
        host = connection_string.strip()

        if "@" in host:
            user, host = host.split("@", 1)

        if host.startswith("["):
            bracket_end = host.find("]")
            if bracket_end == -1:
                raise ValueError(f"Unterminated IPv6 bracket in: {connection_string}")
            remainder = host[bracket_end + 1:]
            if remainder.startswith(":"):
                port = int(remainder[1:])
            host = host[1:bracket_end]
        elif host.count(":") == 1:
            name, _, port_part = host.partition(":")
            try:
                port = int(port_part)
                host = name
            except ValueError:
                pass

        return Target(host=host, user=user, port=port)
