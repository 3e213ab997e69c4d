"""
Kubernetes Source Plugin - Implements SourcePlugin for Kubernetes pods.

Pods carrying the configured label are listed through the CoreV1 API and
every container port whose name has the SSH prefix becomes one DesiredAsset.
"""

import asyncio
import logging
import os
from typing import Any, List, Optional

from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from identity import asset_identity
from plugins.base import DesiredAsset, TransportError
from plugins.sources.base import SourcePlugin

logger = logging.getLogger(__name__)

# Pods in these phases have stopped and no longer accept connections
TERMINAL_PHASES = {"Succeeded", "Failed"}


def build_api_client(kubeconfig: Optional[str] = None) -> client.ApiClient:
    """
    Create an ApiClient from in-cluster credentials, falling back to kubeconfig.

    The global default kubernetes configuration is left untouched.

    Raises:
        ValueError: If neither credential source is usable
    """
    configuration = client.Configuration()
    try:
        k8s_config.load_incluster_config(client_configuration=configuration)
        logger.info("Using in-cluster Kubernetes credentials")
        return client.ApiClient(configuration)
    except ConfigException:
        logger.debug("In-cluster credentials unavailable, trying kubeconfig")

    if not kubeconfig or not os.path.exists(kubeconfig):
        raise ValueError(
            "Kubernetes credentials unavailable: not running in a cluster and "
            f"kubeconfig '{kubeconfig}' does not exist"
        )
    try:
        k8s_config.load_kube_config(
            config_file=kubeconfig, client_configuration=configuration
        )
    except ConfigException as e:
        raise ValueError(f"Invalid kubeconfig '{kubeconfig}': {e}") from e
    logger.info(f"Using Kubernetes credentials from {kubeconfig}")
    return client.ApiClient(configuration)


def project_pod(
    pod: Any, port_name_prefix: str, platform: str = "Linux"
) -> List[DesiredAsset]:
    """
    Turn one pod into the DesiredAssets for its SSH ports.

    Pods without a prefixed port yield an empty list. A pod with no IP yet
    still yields assets, with an empty address.
    """
    metadata = pod.metadata
    pod_name = metadata.name
    namespace = metadata.namespace or ""
    address = (pod.status.pod_ip if pod.status else None) or ""
    workload = f"{namespace}/{pod_name}" if namespace else pod_name

    assets = []
    containers = (pod.spec.containers if pod.spec else None) or []
    for container in containers:
        for port in container.ports or []:
            if not port.name or not port.name.startswith(port_name_prefix):
                continue
            assets.append(
                DesiredAsset(
                    identity=asset_identity(pod_name, container.name, port.name),
                    address=address,
                    port=int(port.container_port),
                    platform=platform,
                    comment=(
                        f"Synced from pod {workload}, "
                        f"container {container.name}, port {port.name}"
                    ),
                    workload=workload,
                )
            )
    return assets


class KubernetesSource(SourcePlugin):
    """Source plugin that discovers SSH ports on labelled Kubernetes pods."""

    def __init__(
        self,
        api_client: client.ApiClient,
        platform: str = "Linux",
        max_results: int = 65535,
        request_timeout: float = 30,
    ):
        self.api_client = api_client
        self.core_v1 = client.CoreV1Api(api_client)
        self.platform = platform
        self.max_results = max_results
        self.request_timeout = request_timeout

    @property
    def name(self) -> str:
        return "kubernetes"

    async def list_desired_assets(
        self, namespace: str, label_selector: str, port_name_prefix: str
    ) -> List[DesiredAsset]:
        pods = await self._list_pods(namespace, label_selector)

        assets: List[DesiredAsset] = []
        with_ports = 0
        for pod in pods:
            phase = pod.status.phase if pod.status else None
            if phase in TERMINAL_PHASES:
                logger.debug(f"Skipping pod {pod.metadata.name} in phase {phase}")
                continue
            projected = project_pod(pod, port_name_prefix, self.platform)
            if projected:
                with_ports += 1
                assets.extend(projected)

        logger.info(
            f"Collected {with_ports} pods with ssh ports out of {len(pods)} "
            f"matching '{label_selector}' ({len(assets)} ports)"
        )
        return assets

    async def _list_pods(self, namespace: str, label_selector: str) -> List[Any]:
        """List pods in a worker thread, bounded by the request timeout."""
        if namespace:
            call = self.core_v1.list_namespaced_pod
            args = (namespace,)
        else:
            call = self.core_v1.list_pod_for_all_namespaces
            args = ()

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(
                    call,
                    *args,
                    label_selector=label_selector,
                    limit=self.max_results,
                    _request_timeout=self.request_timeout,
                ),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Listing pods timed out after {self.request_timeout}s"
            ) from e
        except ApiException as e:
            raise TransportError(
                f"Listing pods failed: {e.status} {e.reason}", status=e.status
            ) from e
        except (HTTPError, OSError) as e:
            raise TransportError(f"Listing pods failed: {e}") from e

        if getattr(result.metadata, "_continue", None):
            logger.warning(
                f"Pod list truncated at {self.max_results} items; "
                "raise K8S_MAX_RESULTS to see every pod"
            )
        return list(result.items or [])

    async def close(self) -> None:
        await asyncio.to_thread(self.api_client.close)
