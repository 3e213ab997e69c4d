"""
Gateway Plugin Base - Abstract interface for the access gateway inventory.

Gateway plugins list, create and delete host assets in a remote access
gateway. Authentication and session handling are internal to each plugin.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from plugins.base import ActualAsset, DesiredAsset


class GatewayPlugin(ABC):
    """
    Abstract base class for gateway inventory plugins.

    All operations may raise TransportError. Implementations must bound every
    remote call with a timeout.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this plugin (e.g., 'jumpserver')."""
        pass

    @abstractmethod
    async def list_actual_assets(self) -> List[ActualAsset]:
        """Return every asset currently registered in the gateway."""
        pass

    @abstractmethod
    async def create_asset(self, asset: DesiredAsset) -> str:
        """
        Register an asset.

        Returns:
            The gateway-internal id of the new asset

        Raises:
            ConflictError: If an asset with the same identity already exists
            TransportError: On any other failure
        """
        pass

    @abstractmethod
    async def delete_asset(self, identity: str, asset_id: Optional[str] = None) -> None:
        """
        Remove an asset.

        Deleting an identity that does not exist is a no-op. When asset_id is
        given the lookup by identity is skipped.
        """
        pass

    @abstractmethod
    async def bind_asset_to_principal(self, principal: str, asset_id: str) -> None:
        """Grant a gateway user access to an asset."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass
