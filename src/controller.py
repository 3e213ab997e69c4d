"""
Pod Sync Controller - Main reconciliation loop.

Similar to Kubernetes controllers, continuously reconciles the gateway's
asset inventory (actual state) with the SSH ports exposed in the cluster
(desired state). Cycles run one after another with a fixed pause between them.
"""

import asyncio
import logging
import time
from typing import Optional

from config import ClusterConfig
from plugins.gateways.base import GatewayPlugin
from plugins.sources.base import SourcePlugin
from reconciler import CycleReport, ReconcilePlan, Reconciler, plan_reconciliation

logger = logging.getLogger(__name__)


class Controller:
    """
    Main controller that implements the reconciliation loop.

    Each cycle lists desired assets from the source, lists actual assets
    from the gateway, computes the plan and hands it to the reconciler.
    """

    def __init__(
        self,
        source: SourcePlugin,
        gateway: GatewayPlugin,
        reconciler: Reconciler,
        cluster: Optional[ClusterConfig] = None,
        sync_interval: float = 60,
    ):
        self.source = source
        self.gateway = gateway
        self.reconciler = reconciler
        self.cluster = cluster or ClusterConfig()
        self.sync_interval = sync_interval
        self.running = False
        self.cycles = 0
        self._shutdown_event = asyncio.Event()

    async def plan(self) -> ReconcilePlan:
        """Read both inventories and compute the actions for this cycle."""
        desired = await self.source.list_desired_assets(
            self.cluster.namespace,
            self.cluster.label_selector,
            self.cluster.ssh_port_name_prefix,
        )
        actual = await self.gateway.list_actual_assets()
        return plan_reconciliation(desired, actual)

    async def run_once(self) -> CycleReport:
        """
        Run a single reconciliation cycle.

        Raises:
            SyncError: If either inventory cannot be listed
        """
        start_time = time.time()
        self.cycles += 1
        logger.info(f"Starting reconciliation cycle {self.cycles}")

        plan = await self.plan()
        logger.info(
            f"There are {len(plan.to_create)} assets to add, "
            f"{len(plan.to_delete)} to delete and {len(plan.stable)} already "
            f"added to jumpserver"
        )
        report = await self.reconciler.apply(plan)

        duration = time.time() - start_time
        log = logger.info if report.success else logger.warning
        log(f"Reconciliation cycle {self.cycles} finished in {duration:.2f}s: {report.summary()}")
        return report

    async def start(self) -> None:
        """Run cycles until stop() is called."""
        logger.info(
            f"Starting pod sync controller (interval={self.sync_interval}s, "
            f"namespace='{self.cluster.namespace or '*'}', "
            f"label='{self.cluster.label_selector}')"
        )
        self.running = True
        self._shutdown_event.clear()

        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Reconciliation cycle {self.cycles} failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(), timeout=self.sync_interval
                )
            except asyncio.TimeoutError:
                pass

        logger.info("Pod sync controller stopped")

    async def stop(self) -> None:
        """Stop the loop; an in-progress wait ends immediately."""
        logger.info("Stopping pod sync controller")
        self.running = False
        self._shutdown_event.set()
