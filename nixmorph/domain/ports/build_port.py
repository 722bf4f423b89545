"""
Build Port

Architectural Intent:
- Port interface for the tool that turns host configurations into closures
- One call builds a whole batch of hosts; the result is a directory holding
  one link per host name, pointing at that host's closure
"""

from abc import ABC, abstractmethod
from typing import Sequence

from nixmorph.domain.entities.host import Host


class BuildPort(ABC):
    @abstractmethod
    async def build(self, hosts: Sequence[Host]) -> str:
        """
        Builds every host in the batch and returns the result root directory.
        Raises BuildError on failure.
        """
        pass

    async def close(self) -> None:
        """Release whatever the builder keeps between builds (temp dirs, links)."""
        return None
