"""
Main entry point for the pod sync controller.

This module parses the command line, builds the source and gateway plugins,
and runs the reconciliation loop next to the liveness endpoint.
"""

import asyncio
import logging
import signal
from typing import Optional

import click

from config import Config
from controller import Controller
from health import HealthServer
from plugins.gateways.base import GatewayPlugin
from plugins.gateways.jumpserver import JumpServerGateway
from plugins.sources.base import SourcePlugin
from plugins.sources.kubernetes import KubernetesSource, build_api_client
from reconciler import Reconciler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def build_gateway(config: Config) -> JumpServerGateway:
    gw = config.gateway
    return JumpServerGateway(
        host=gw.host,
        username=gw.username,
        password=gw.password,
        admin_user=gw.admin_user,
        page_size=gw.page_size,
        request_timeout=gw.request_timeout,
    )


def build_source(config: Config) -> KubernetesSource:
    cluster = config.cluster
    return KubernetesSource(
        build_api_client(cluster.kubeconfig),
        platform=config.gateway.platform,
        max_results=cluster.max_results,
        request_timeout=cluster.request_timeout,
    )


class Application:
    """Main application that wires the controller and the health endpoint."""

    def __init__(
        self,
        config: Config,
        source: Optional[SourcePlugin] = None,
        gateway: Optional[GatewayPlugin] = None,
    ):
        self.config = config
        self.source = source
        self.gateway = gateway
        self.controller: Optional[Controller] = None
        self.health: Optional[HealthServer] = None
        self.running = False

    def initialize(self) -> None:
        """Initialize all components."""
        logger.info("Initializing pod sync controller")

        if self.source is None:
            self.source = build_source(self.config)
        if self.gateway is None:
            self.gateway = build_gateway(self.config)

        ctrl = self.config.controller
        reconciler = Reconciler(
            self.gateway,
            bind_principal=self.config.gateway.bind_principal,
            max_concurrent_operations=ctrl.max_concurrent_operations,
            dry_run=ctrl.dry_run,
        )
        self.controller = Controller(
            source=self.source,
            gateway=self.gateway,
            reconciler=reconciler,
            cluster=self.config.cluster,
            sync_interval=ctrl.sync_interval,
        )
        api = self.config.api
        self.health = HealthServer(host=api.host, port=api.port, log_level=api.log_level)

        logger.info(
            f"Syncing pods to {self.gateway.name} at {self.config.gateway.host} "
            f"(dry_run={ctrl.dry_run})"
        )

    async def start(self) -> None:
        """Start the application and run until one component exits."""
        if not self.controller:
            self.initialize()

        self.running = True
        tasks = [
            asyncio.create_task(self.controller.start()),
            asyncio.create_task(self.health.start()),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception():
                    logger.error(f"Component exited with error: {task.exception()}")
        except asyncio.CancelledError:
            logger.info("Application tasks cancelled")
        finally:
            await self.stop()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Stop the application gracefully."""
        if not self.running:
            return
        logger.info("Stopping pod sync controller")
        self.running = False

        if self.controller:
            await self.controller.stop()
        if self.health:
            await self.health.stop()
        if self.gateway:
            await self.gateway.close()
        if self.source:
            await self.source.close()

        logger.info("Pod sync controller stopped")


async def run(app: Application) -> None:
    """Run the application, stopping on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await app.stop()


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--host", help="JumpServer host [env: JMS_HOST]")
@click.option("--username", help="JumpServer user [env: JMS_USERNAME]")
@click.option("--password", help="JumpServer password [env: JMS_PASSWORD]")
@click.option("--platform", help="Platform of created assets [env: JMS_ASSET_PLATFORM]")
@click.option("--admin-user", help="Admin user attached to created assets [env: JMS_ADMIN_USER]")
@click.option("--bind-principal", help="User that new assets are bound to [env: JMS_BIND_PRINCIPAL]")
@click.option("--namespace", help="Kubernetes namespace, empty for all [env: K8S_NAMESPACE]")
@click.option("--label", help="Pod label selector [env: K8S_LABEL_SELECTOR]")
@click.option("--ssh-port-name-prefix", help="SSH port name prefix [env: SSH_PORT_NAME_PREFIX]")
@click.option("--kubeconfig", help="Kubeconfig used outside the cluster [env: KUBECONFIG]")
@click.option("--port", help="Health endpoint listen address, e.g. :8080 [env: LISTEN_ADDRESS]")
@click.option("--interval", help="Sync interval, e.g. 1m [env: SYNC_INTERVAL]")
@click.option("--max-concurrency", type=int, help="Parallel gateway operations [env: MAX_CONCURRENT_OPERATIONS]")
@click.option("--dry-run", is_flag=True, envvar="DRY_RUN", help="Plan only, never write [env: DRY_RUN]")
@click.option("--log-level", help="Log level [env: LOG_LEVEL]")
def cli(**overrides):
    """Keep JumpServer assets in sync with SSH-capable Kubernetes pods.

    For example:

        jms-pod-sync --host example.jumpserver.com --username admin --password admin
    """
    try:
        config = Config.from_env(overrides)
    except ValueError as e:
        raise click.UsageError(str(e))

    logging.basicConfig(level=config.api.log_level, format=LOG_FORMAT)

    try:
        app = Application(config)
        app.initialize()
    except ValueError as e:
        raise click.UsageError(str(e))

    asyncio.run(run(app))


if __name__ == "__main__":
    cli()
