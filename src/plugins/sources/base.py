"""
Source Plugin Base - Abstract interface for desired-state sources.

A source plugin reads the workloads running in a cluster and projects every
SSH-reachable port into a DesiredAsset.
"""

from abc import ABC, abstractmethod
from typing import List

from plugins.base import DesiredAsset


class SourcePlugin(ABC):
    """Abstract base class for source inventory plugins."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this plugin (e.g., 'kubernetes')."""
        pass

    @abstractmethod
    async def list_desired_assets(
        self, namespace: str, label_selector: str, port_name_prefix: str
    ) -> List[DesiredAsset]:
        """
        List the assets that should exist in the gateway.

        Args:
            namespace: Namespace to search; empty means all namespaces
            label_selector: Selector the workloads must match
            port_name_prefix: Only ports whose name starts with this are SSH ports

        Returns:
            One DesiredAsset per matching exposed port

        Raises:
            TransportError: If the workload listing fails
        """
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass
