"""Tunnel models, control API client and registry."""

from .lifecycle import TunnelLifecycleClient
from .models import Protocol, Tunnel
from .registry import TunnelRegistry

__all__ = [
    "Protocol",
    "Tunnel",
    "TunnelLifecycleClient",
    "TunnelRegistry",
]
