"""
nixmorph Telemetry Infrastructure

Architectural Intent:
- OpenTelemetry integration for observability
- Per-host stage durations, results and pipeline spans
"""

from nixmorph.infrastructure.telemetry.otel_exporter import (
    OTELExporter,
    OTELConfig,
    create_exporter,
)

__all__ = [
    "OTELExporter",
    "OTELConfig",
    "create_exporter",
]
