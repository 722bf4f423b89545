"""
Deployment Source Port

Architectural Intent:
- Port interface for evaluating a deployment file into a Deployment record
- The result is trusted after Deployment.validate() has run
"""

from abc import ABC, abstractmethod

from nixmorph.domain.entities.deployment import Deployment


class DeploymentSourcePort(ABC):
    @abstractmethod
    async def load(self, deployment_path: str) -> Deployment:
        pass
