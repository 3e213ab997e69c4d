"""
Kubernetes Source Plugin.

Discovers SSH ports on labelled pods.
"""

from plugins.sources.kubernetes.source import (
    KubernetesSource,
    build_api_client,
    project_pod,
)

__all__ = ["KubernetesSource", "build_api_client", "project_pod"]
