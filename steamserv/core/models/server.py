"""
Server record model — one managed game server instance and its lifecycle.

The transition table below is the whole state machine. The registry
consults it for every status change; nothing else decides what is a
legal move.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

SERVER_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$"
UNIT_PREFIX = "steamserv-"

_NAME_RE = re.compile(SERVER_NAME_PATTERN)


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ServerStatus(StrEnum):
    """Lifecycle states of a server record."""

    PENDING = "pending"
    INSTALLED = "installed"
    UPDATING = "updating"
    STOPPED = "stopped"
    RUNNING = "running"
    FAILED = "failed"
    UNINSTALLED = "uninstalled"


class LoginType(StrEnum):
    """How SteamCMD authenticates for this server."""

    ANONYMOUS = "anonymous"
    STEAM_ACCOUNT = "steam_account"


# States whose install_path must exist on disk.
INSTALLED_STATES = frozenset(
    {ServerStatus.INSTALLED, ServerStatus.STOPPED, ServerStatus.RUNNING}
)

# States driven by a live process; stale if that process is gone.
TRANSIENT_STATES = frozenset({ServerStatus.PENDING, ServerStatus.UPDATING})

UNINSTALLABLE_STATES = frozenset(
    {ServerStatus.INSTALLED, ServerStatus.STOPPED, ServerStatus.FAILED}
)

TRANSITIONS: dict[ServerStatus, frozenset[ServerStatus]] = {
    ServerStatus.PENDING: frozenset({ServerStatus.INSTALLED, ServerStatus.FAILED}),
    ServerStatus.INSTALLED: frozenset({
        ServerStatus.RUNNING,
        ServerStatus.INSTALLED,     # stop on a never-started server
        ServerStatus.UPDATING,
        ServerStatus.FAILED,
        ServerStatus.UNINSTALLED,
    }),
    ServerStatus.RUNNING: frozenset({
        ServerStatus.STOPPED,
        ServerStatus.UPDATING,
        ServerStatus.INSTALLED,
        ServerStatus.FAILED,
    }),
    ServerStatus.STOPPED: frozenset({
        ServerStatus.RUNNING,
        ServerStatus.UPDATING,
        ServerStatus.INSTALLED,
        ServerStatus.FAILED,
        ServerStatus.UNINSTALLED,
    }),
    ServerStatus.UPDATING: frozenset({ServerStatus.INSTALLED, ServerStatus.FAILED}),
    ServerStatus.FAILED: frozenset({ServerStatus.PENDING, ServerStatus.UNINSTALLED}),
    ServerStatus.UNINSTALLED: frozenset(),
}


def is_valid_transition(current: ServerStatus, requested: ServerStatus) -> bool:
    """Whether ``current → requested`` appears in the lifecycle table."""
    return requested in TRANSITIONS.get(current, frozenset())


def is_valid_server_name(name: str) -> bool:
    """Server names double as folder and unit names."""
    return bool(_NAME_RE.match(name or ""))


def unit_name_for(name: str) -> str:
    """Derive the systemd unit name for a server name."""
    return f"{UNIT_PREFIX}{name}.service"


class ServerRecord(BaseModel):
    """A game server known to the registry."""

    name: str = Field(pattern=SERVER_NAME_PATTERN)
    app_id: int = Field(ge=0)
    install_path: str = ""
    owner_username: str = ""
    status: ServerStatus = ServerStatus.PENDING

    display_name: str = ""
    login_type: LoginType = LoginType.ANONYMOUS
    auto_update: bool = False
    launch_command: str = ""

    install_date: str | None = None
    last_updated: str | None = None
    last_error: str | None = None
    owner_pid: int | None = None

    @property
    def unit_name(self) -> str:
        return unit_name_for(self.name)

    @property
    def is_installed(self) -> bool:
        return self.status in INSTALLED_STATES

    @property
    def label(self) -> str:
        """Human-readable title for listings and unit descriptions."""
        return self.display_name or self.name

    def mark_installed(self, install_path: str) -> None:
        """Stamp a successful install or update."""
        now = _now_iso()
        self.install_path = install_path
        if self.install_date is None:
            self.install_date = now
        self.last_updated = now
        self.last_error = None
