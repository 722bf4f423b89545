"""
Remote Executor Port

Architectural Intent:
- Port interface for running commands on, and activating configurations on,
  a single remote host
- Implemented by adapters (Fabric/SSH, in-memory fakes for tests)
"""

from abc import ABC, abstractmethod

from nixmorph.domain.entities.host import Host
from nixmorph.domain.value_objects.deploy_action import DeployAction
from nixmorph.domain.value_objects.remote_result import RemoteResult


class RemoteExecutorPort(ABC):
    @abstractmethod
    async def run(self, host: Host, *argv: str) -> RemoteResult:
        """
        Runs a command on the host and returns its output and exit status.
        A dropped connection is reported as exit status 255, not raised.
        Raises ConnectivityError when the host cannot be reached at all.
        """
        pass

    @abstractmethod
    async def activate(self, host: Host, closure: str, action: DeployAction) -> None:
        """
        Activates a pushed closure on the host.
        Raises ActivationError on failure.
        """
        pass

    @abstractmethod
    async def get_boot_id(self, host: Host) -> str:
        """
        Returns the host's current boot identity.
        Raises ConnectivityError when it cannot be read.
        """
        pass
