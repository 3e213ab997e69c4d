"""
Core plugin types and exceptions.

This module contains the asset records and error types shared by the
source plugins, the gateway plugins and the reconciler.
"""

from dataclasses import dataclass
from typing import Optional


class SyncError(Exception):
    """Base class for errors raised by source and gateway plugins."""


class TransportError(SyncError):
    """Network, authentication or protocol failure talking to an external system."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ConflictError(SyncError):
    """An asset with the same identity already exists in the gateway."""

    def __init__(self, identity: str, message: str = ""):
        super().__init__(message or f"Asset {identity} already exists")
        self.identity = identity


class AssetNotFoundError(SyncError):
    """The gateway has no asset with the requested identity."""

    def __init__(self, identity: str):
        super().__init__(f"Asset {identity} not found")
        self.identity = identity


@dataclass(frozen=True)
class DesiredAsset:
    """An asset that should exist, derived from the current cluster state."""

    identity: str
    address: str
    port: int
    platform: str = "Linux"
    comment: str = ""
    # namespace/pod that produced this record
    workload: str = ""


@dataclass(frozen=True)
class ActualAsset:
    """An asset that currently exists in the gateway."""

    identity: str
    asset_id: str
    address: str = ""
    port: Optional[int] = None
