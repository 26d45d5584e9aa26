"""Adapters — bindings for SteamCMD and systemd.

Public re-exports for convenient access.
"""

from steamserv.adapters.base import Adapter, ExecutionContext
from steamserv.adapters.mock import MockAdapter
from steamserv.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
