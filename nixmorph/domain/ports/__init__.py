"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external collaborators
- Ports define what the engine needs, adapters implement how
- Follows Hexagonal Architecture principles
"""

from nixmorph.domain.ports.build_port import BuildPort
from nixmorph.domain.ports.transfer_port import TransferPort
from nixmorph.domain.ports.remote_executor_port import RemoteExecutorPort
from nixmorph.domain.ports.health_check_port import HealthCheckPort
from nixmorph.domain.ports.deployment_source_port import DeploymentSourcePort
from nixmorph.domain.ports.event_bus_port import EventBusPort

__all__ = [
    "BuildPort",
    "TransferPort",
    "RemoteExecutorPort",
    "HealthCheckPort",
    "DeploymentSourcePort",
    "EventBusPort",
]
