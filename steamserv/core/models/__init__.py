"""
Domain models — Pydantic types for steamserv.

All models are re-exported here for convenient access:

    from steamserv.core.models import ServerRecord, ServerStatus, RegistryState
"""

from steamserv.core.models.action import Action, Receipt
from steamserv.core.models.catalog import CatalogCache, CatalogEntry
from steamserv.core.models.request import Credentials, InstallRequest, UpdateRequest
from steamserv.core.models.server import (
    INSTALLED_STATES,
    LoginType,
    ServerRecord,
    ServerStatus,
    is_valid_server_name,
    is_valid_transition,
    unit_name_for,
)
from steamserv.core.models.state import RegistryState

__all__ = [
    # action.py
    "Action",
    # catalog.py
    "CatalogCache",
    "CatalogEntry",
    # request.py
    "Credentials",
    # server.py
    "INSTALLED_STATES",
    "InstallRequest",
    "LoginType",
    "Receipt",
    # state.py
    "RegistryState",
    "ServerRecord",
    "ServerStatus",
    "UpdateRequest",
    "is_valid_server_name",
    "is_valid_transition",
    "unit_name_for",
]
