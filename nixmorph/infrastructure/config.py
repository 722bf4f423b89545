"""
Configuration Module

Architectural Intent:
- Settings for the nix tools, SSH access, rollout defaults and telemetry,
  read from nixmorph.json in the working directory
- A missing or unreadable file means defaults, never a startup failure
- NIXMORPH_<SECTION>_<KEY> environment variables win over the file

Design Decisions:
- Each section is its own frozen dataclass under MorphConfig
- The MORPH_NIX_* variables understood by existing deployments are honoured
  as defaults for the nix section
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import dataclasses
import json
import logging
import os

from nixmorph.domain.errors import ConfigurationError

logger = logging.getLogger(__name__)

LEGACY_NIX_ENV = {
    "MORPH_NIX_EVAL_CMD": "eval_cmd",
    "MORPH_NIX_BUILD_CMD": "build_cmd",
    "MORPH_NIX_SHELL_CMD": "shell_cmd",
    "MORPH_NIX_EVAL_MACHINES": "eval_machines",
}


@dataclass(frozen=True)
class NixConfig:
    """Nix evaluation and build configuration."""
    eval_cmd: str = "nix-instantiate"
    build_cmd: str = "nix-build"
    shell_cmd: str = "nix-shell"
    eval_machines: str = "eval-machines.nix"
    show_trace: bool = False
    keep_gc_root: bool = False
    allow_build_shell: bool = False


@dataclass(frozen=True)
class SSHConfig:
    """How hosts are reached."""
    default_user: str = ""
    identity_file: str = ""
    config_file: str = ""
    skip_host_key_check: bool = False
    use_sudo: bool = True
    connect_timeout: int = 30


@dataclass(frozen=True)
class DeployConfig:
    """Rollout defaults; CLI flags take precedence."""
    parallel: int = 0
    fail_fast: bool = False
    reboot_poll_interval: float = 2.0
    reboot_timeout: float = 0.0  # 0 waits forever
    health_check_attempts: int = 1
    health_check_period: float = 0.0  # 0 keeps each check's own period


@dataclass(frozen=True)
class TelemetryConfig:
    """OpenTelemetry configuration."""
    endpoint: str = ""
    insecure: bool = False


@dataclass(frozen=True)
class MorphConfig:
    """Root configuration for nixmorph."""
    nix: NixConfig = field(default_factory=NixConfig)
    ssh: SSHConfig = field(default_factory=SSHConfig)
    deploy: DeployConfig = field(default_factory=DeployConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    log_level: str = "WARNING"


def _env_override(data: dict, prefix: str = "NIXMORPH") -> dict:
    """Apply NIXMORPH_DEPLOY_PARALLEL=4 style variables on top of data.

    Names whose first word is not a section (NIXMORPH_LOG_LEVEL) land at the
    top level.
    """
    marker = f"{prefix}_"
    for key, value in os.environ.items():
        if not key.startswith(marker):
            continue
        name = key[len(marker):].lower()
        section, _, field_name = name.partition("_")
        if section in _SECTIONS and field_name:
            data.setdefault(section, {})[field_name] = value
        else:
            data[name] = value
    return data


def _legacy_nix_env(data: dict) -> dict:
    nix = data.setdefault("nix", {})
    for var, field_name in LEGACY_NIX_ENV.items():
        value = os.environ.get(var)
        if value:
            nix.setdefault(field_name, value)
    return data


def _read_json(path: Path) -> dict:
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError:
        logger.debug("No config file at %s, using defaults", path)
    except json.JSONDecodeError as e:
        logger.warning("Ignoring unreadable config file %s: %s", path, e)
    return {}


# Environment values arrive as strings; annotations are strings too
_COERCE = {
    "int": int,
    "float": float,
    "bool": lambda v: v.strip().lower() in ("true", "1", "yes", "on"),
}


def _section(name: str, cls, data: dict):
    """Instantiate a section dataclass; keys it does not declare are dropped."""
    values = {}
    for f in dataclasses.fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        if isinstance(value, str) and f.type in _COERCE:
            try:
                value = _COERCE[f.type](value)
            except ValueError:
                raise ConfigurationError(
                    f"{name}.{f.name}: expected {f.type}, got {value!r}"
                ) from None
        values[f.name] = value
    return cls(**values)


_SECTIONS = {
    "nix": NixConfig,
    "ssh": SSHConfig,
    "deploy": DeployConfig,
    "telemetry": TelemetryConfig,
}


def load_config(
    path: Optional[str] = None,
    env_prefix: str = "NIXMORPH",
) -> MorphConfig:
    """Resolve the effective configuration.

    Later sources win: defaults, then MORPH_NIX_* (nix section only), then
    the JSON file at ``path`` (nixmorph.json by default), then
    ``<env_prefix>_<SECTION>_<KEY>`` variables.
    """
    data = _read_json(Path(path or "nixmorph.json"))
    data = _legacy_nix_env(data)
    data = _env_override(data, env_prefix)

    return MorphConfig(
        **{
            name: _section(name, cls, data.get(name, {}))
            for name, cls in _SECTIONS.items()
        },
        log_level=str(data.get("log_level", "WARNING")).upper(),
    )
