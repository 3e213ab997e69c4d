"""
JumpServer Gateway Plugin.

Manages JumpServer assets through its REST API.
"""

from plugins.gateways.jumpserver.client import JumpServerGateway

__all__ = ["JumpServerGateway"]
