"""
Transfer Port

Architectural Intent:
- Port interface for copying built closures to a single host
- Never batched across hosts
"""

from abc import ABC, abstractmethod

from nixmorph.domain.entities.host import Host


class TransferPort(ABC):
    @abstractmethod
    async def push(self, host: Host, *paths: str) -> None:
        """
        Copies the given store paths (and their closures) to the host.
        Raises TransferError on failure.
        """
        pass
