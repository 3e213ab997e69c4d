"""
Plugin system for the pod sync controller.

This package provides the source plugins (desired state), the gateway
plugins (actual state) and the asset types they exchange.
"""

from plugins.base import (
    ActualAsset,
    AssetNotFoundError,
    ConflictError,
    DesiredAsset,
    SyncError,
    TransportError,
)
from plugins.gateways.base import GatewayPlugin
from plugins.sources.base import SourcePlugin

__all__ = [
    "ActualAsset",
    "AssetNotFoundError",
    "ConflictError",
    "DesiredAsset",
    "SyncError",
    "TransportError",
    "GatewayPlugin",
    "SourcePlugin",
]
