"""
Gateway plugins package.

Gateway plugins own the actual state: the host inventory of an access gateway.
"""

from plugins.gateways.base import GatewayPlugin

__all__ = ["GatewayPlugin"]
