"""
Reconciliation engine.

Compares the desired assets discovered in the cluster with the assets that
exist in the gateway and applies the difference. Identity is the unit of
truth: an identity present on both sides is left alone, whatever its fields.

The engine keeps no state between cycles. Every decision is taken from the
two lists handed to plan_reconciliation() for the current cycle.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from identity import parse_identity
from plugins.base import (
    ActualAsset,
    AssetNotFoundError,
    ConflictError,
    DesiredAsset,
)
from plugins.gateways.base import GatewayPlugin

logger = logging.getLogger(__name__)


@dataclass
class SkippedAsset:
    """A desired identity that will not be created this cycle."""

    identity: str
    reason: str


@dataclass
class ReconcilePlan:
    """The actions computed for one reconciliation cycle."""

    desired_identities: Set[str] = field(default_factory=set)
    actual_identities: Set[str] = field(default_factory=set)
    to_create: List[DesiredAsset] = field(default_factory=list)
    to_delete: List[ActualAsset] = field(default_factory=list)
    skipped: List[SkippedAsset] = field(default_factory=list)

    @property
    def stable(self) -> Set[str]:
        return self.desired_identities & self.actual_identities

    @property
    def has_changes(self) -> bool:
        return bool(self.to_create or self.to_delete)


@dataclass
class ItemFailure:
    """A create or delete that failed."""

    action: str
    identity: str
    error: str


@dataclass
class CycleReport:
    """Outcome of one reconciliation cycle."""

    desired: int = 0
    actual: int = 0
    stable: int = 0
    to_create: int = 0
    to_delete: int = 0
    created: int = 0
    deleted: int = 0
    conflicts: int = 0
    skipped: int = 0
    dry_run: bool = False
    failures: List[ItemFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def success(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        return (
            f"desired={self.desired} actual={self.actual} stable={self.stable} "
            f"to_create={self.to_create} to_delete={self.to_delete} "
            f"created={self.created} deleted={self.deleted} "
            f"conflicts={self.conflicts} skipped={self.skipped} "
            f"failed={self.failed} dry_run={self.dry_run}"
        )


def plan_reconciliation(
    desired: Iterable[DesiredAsset], actual: Iterable[ActualAsset]
) -> ReconcilePlan:
    """
    Compute to-create and to-delete by identity.

    Desired records are checked for data quality first. Identical duplicates
    collapse into one. An identity produced by two different workloads, or a
    record without an address, is skipped for creation but still counts as
    desired, so an existing gateway asset for it is kept. A collision on an
    identity that already exists in the gateway is logged as well.
    """
    by_identity: Dict[str, List[DesiredAsset]] = {}
    for asset in desired:
        by_identity.setdefault(asset.identity, []).append(asset)

    actual_by_identity: Dict[str, List[ActualAsset]] = {}
    for asset in actual:
        actual_by_identity.setdefault(asset.identity, []).append(asset)

    plan = ReconcilePlan(
        desired_identities=set(by_identity),
        actual_identities=set(actual_by_identity),
    )

    collisions: Dict[str, str] = {}
    for identity in sorted(by_identity):
        workloads = {c.workload for c in by_identity[identity]}
        if len(workloads) > 1:
            collisions[identity] = (
                f"identity collision between workloads {sorted(workloads)}"
            )
            if identity in actual_by_identity:
                logger.warning(
                    f"Asset {identity} is kept but may point at either of "
                    f"{sorted(workloads)}: identity collision"
                )

    for identity in sorted(by_identity.keys() - actual_by_identity.keys()):
        if identity in collisions:
            reason = collisions[identity]
            logger.warning(f"Skipping asset {identity}: {reason}")
            plan.skipped.append(SkippedAsset(identity, reason))
            continue
        candidate = by_identity[identity][0]
        if not candidate.address:
            reason = f"workload {candidate.workload or identity} has no address yet"
            logger.warning(f"Skipping asset {identity}: {reason}")
            plan.skipped.append(SkippedAsset(identity, reason))
            continue
        plan.to_create.append(candidate)

    for identity in sorted(actual_by_identity.keys() - by_identity.keys()):
        if parse_identity(identity) is None:
            logger.info(f"Deleting asset {identity}, which is not named after a pod port")
        plan.to_delete.extend(actual_by_identity[identity])

    for identity in plan.stable:
        if len(actual_by_identity[identity]) > 1:
            logger.warning(
                f"Gateway holds {len(actual_by_identity[identity])} assets "
                f"named {identity}"
            )

    return plan


class Reconciler:
    """
    Applies a ReconcilePlan to a gateway.

    Each create and delete is attempted independently. A failing item is
    logged and recorded in the report; it never stops its siblings.
    """

    def __init__(
        self,
        gateway: GatewayPlugin,
        bind_principal: Optional[str] = None,
        max_concurrent_operations: int = 4,
        dry_run: bool = False,
    ):
        self.gateway = gateway
        self.bind_principal = bind_principal or None
        self.max_concurrent_operations = max(1, max_concurrent_operations)
        self.dry_run = dry_run

    async def apply(self, plan: ReconcilePlan) -> CycleReport:
        """Run every action in the plan and return the cycle report."""
        report = CycleReport(
            desired=len(plan.desired_identities),
            actual=len(plan.actual_identities),
            stable=len(plan.stable),
            to_create=len(plan.to_create),
            to_delete=len(plan.to_delete),
            skipped=len(plan.skipped),
            dry_run=self.dry_run,
        )

        if self.dry_run:
            for asset in plan.to_create:
                logger.info(
                    f"[dry-run] Would create asset {asset.identity} "
                    f"({asset.address}:{asset.port})"
                )
            for asset in plan.to_delete:
                logger.info(
                    f"[dry-run] Would delete asset {asset.identity} ({asset.asset_id})"
                )
            return report

        semaphore = asyncio.Semaphore(self.max_concurrent_operations)

        async def create(asset: DesiredAsset) -> None:
            async with semaphore:
                await self._create_one(asset, report)

        async def delete(asset: ActualAsset) -> None:
            async with semaphore:
                await self._delete_one(asset, report)

        tasks = [create(a) for a in plan.to_create]
        tasks.extend(delete(a) for a in plan.to_delete)
        if tasks:
            await asyncio.gather(*tasks)
        return report

    async def _create_one(self, asset: DesiredAsset, report: CycleReport) -> None:
        try:
            asset_id = await self.gateway.create_asset(asset)
        except ConflictError:
            report.conflicts += 1
            logger.warning(f"Asset {asset.identity} already exists in jumpserver")
            return
        except Exception as e:
            report.failures.append(ItemFailure("create", asset.identity, str(e)))
            logger.error(f"Add asset {asset.identity} to jumpserver failed: {e}")
            return

        if self.bind_principal:
            try:
                await self.gateway.bind_asset_to_principal(self.bind_principal, asset_id)
            except Exception as e:
                report.failures.append(ItemFailure("bind", asset.identity, str(e)))
                logger.error(
                    f"Binding asset {asset.identity} to {self.bind_principal} "
                    f"failed: {e}"
                )
                await self._rollback(asset, asset_id)
                return

        report.created += 1
        logger.info(
            f"Add asset {asset.identity} ({asset.address}:{asset.port}) "
            f"to jumpserver succeeded"
        )

    async def _rollback(self, asset: DesiredAsset, asset_id: str) -> None:
        """Remove a created but unbound asset so the next cycle retries it."""
        try:
            await self.gateway.delete_asset(asset.identity, asset_id)
        except Exception as e:
            logger.error(f"Rolling back unbound asset {asset.identity} failed: {e}")

    async def _delete_one(self, asset: ActualAsset, report: CycleReport) -> None:
        try:
            await self.gateway.delete_asset(asset.identity, asset.asset_id)
        except AssetNotFoundError:
            logger.info(f"Asset {asset.identity} was already removed")
        except Exception as e:
            report.failures.append(ItemFailure("delete", asset.identity, str(e)))
            logger.error(f"Delete asset {asset.identity} from jumpserver failed: {e}")
            return
        report.deleted += 1
        logger.info(f"Delete asset {asset.identity} from jumpserver succeeded")
