"""
Source plugins package.

Source plugins read the desired state (SSH-reachable workloads) from a cluster.
"""

from plugins.sources.base import SourcePlugin

__all__ = ["SourcePlugin"]
