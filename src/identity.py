"""
Asset identity scheme.

Every SSH-reachable container port found in the cluster is registered in the
gateway under a hostname derived from (pod, container, port name). That
hostname is the only join key between the two inventories.
"""

from typing import Optional, Tuple

# Kubernetes pod, container and port names never contain an underscore.
SEPARATOR = "__"


def asset_identity(workload_name: str, container_name: str, port_name: str) -> str:
    """Build the gateway hostname for one exposed port."""
    return SEPARATOR.join((workload_name, container_name, port_name))


def parse_identity(identity: str) -> Optional[Tuple[str, str, str]]:
    """
    Split an identity back into (workload, container, port name).

    Returns None if the string was not produced by asset_identity().
    """
    parts = identity.split(SEPARATOR)
    if len(parts) != 3 or not all(parts):
        return None
    return parts[0], parts[1], parts[2]
