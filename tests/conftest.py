"""Pytest configuration and fixtures."""

import itertools
from typing import Dict, List, Optional, Set

import pytest
from kubernetes.client import (
    V1Container,
    V1ContainerPort,
    V1ObjectMeta,
    V1Pod,
    V1PodSpec,
    V1PodStatus,
)

from plugins.base import (
    ActualAsset,
    ConflictError,
    DesiredAsset,
    TransportError,
)
from plugins.gateways.base import GatewayPlugin
from plugins.sources.base import SourcePlugin


def make_pod(
    name: str,
    containers: Dict[str, List[tuple]],
    ip: Optional[str] = "10.0.0.1",
    namespace: str = "default",
    phase: str = "Running",
) -> V1Pod:
    """Build a V1Pod; containers maps container name to [(port_name, port)]."""
    return V1Pod(
        metadata=V1ObjectMeta(name=name, namespace=namespace),
        spec=V1PodSpec(
            containers=[
                V1Container(
                    name=cname,
                    ports=[
                        V1ContainerPort(name=pname, container_port=pnum)
                        for pname, pnum in ports
                    ],
                )
                for cname, ports in containers.items()
            ]
        ),
        status=V1PodStatus(pod_ip=ip, phase=phase),
    )


def desired(identity: str, address: str = "10.0.0.1", port: int = 22, workload: str = "") -> DesiredAsset:
    return DesiredAsset(
        identity=identity,
        address=address,
        port=port,
        workload=workload or f"default/{identity.split('__')[0]}",
    )


class FakeGateway(GatewayPlugin):
    """In-memory gateway that records every call."""

    def __init__(self, assets: Optional[List[ActualAsset]] = None):
        self._ids = itertools.count(1000)
        self.assets: Dict[str, ActualAsset] = {a.asset_id: a for a in assets or []}
        self.fail_create: Set[str] = set()
        self.fail_delete: Set[str] = set()
        self.fail_bind: Set[str] = set()
        self.fail_list = False
        self.created: List[str] = []
        self.deleted: List[str] = []
        self.bound: List[tuple] = []

    @property
    def name(self) -> str:
        return "fake"

    @property
    def identities(self) -> Set[str]:
        return {a.identity for a in self.assets.values()}

    async def list_actual_assets(self) -> List[ActualAsset]:
        if self.fail_list:
            raise TransportError("gateway unreachable")
        return list(self.assets.values())

    async def create_asset(self, asset: DesiredAsset) -> str:
        if asset.identity in self.fail_create:
            raise TransportError(f"create {asset.identity} refused", status=500)
        if asset.identity in self.identities:
            raise ConflictError(asset.identity)
        asset_id = str(next(self._ids))
        self.assets[asset_id] = ActualAsset(
            identity=asset.identity,
            asset_id=asset_id,
            address=asset.address,
            port=asset.port,
        )
        self.created.append(asset.identity)
        return asset_id

    async def delete_asset(self, identity: str, asset_id: Optional[str] = None) -> None:
        if identity in self.fail_delete:
            raise TransportError(f"delete {identity} refused", status=500)
        self.deleted.append(identity)
        if asset_id is None:
            for a in list(self.assets.values()):
                if a.identity == identity:
                    asset_id = a.asset_id
                    break
        self.assets.pop(asset_id, None)

    async def bind_asset_to_principal(self, principal: str, asset_id: str) -> None:
        identity = self.assets[asset_id].identity
        if identity in self.fail_bind:
            raise TransportError(f"bind {identity} refused", status=500)
        self.bound.append((principal, identity))


class FakeSource(SourcePlugin):
    """Source returning a fixed list of desired assets."""

    def __init__(self, assets: Optional[List[DesiredAsset]] = None):
        self.assets = list(assets or [])
        self.fail = False
        self.calls: List[tuple] = []

    @property
    def name(self) -> str:
        return "fake"

    async def list_desired_assets(self, namespace, label_selector, port_name_prefix):
        self.calls.append((namespace, label_selector, port_name_prefix))
        if self.fail:
            raise TransportError("cluster unreachable")
        return list(self.assets)


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def sample_pod():
    """Pod with one SSH port and one HTTP port."""
    return make_pod("pod-x", {"shell": [("ssh-main", 22), ("http", 80)]})
