"""
Error taxonomy — every failure the registry and lifecycle can report.

Each error carries a ``kind`` string that the command surface prints
verbatim, so operators can tell a name collision from a locked state
file without reading a traceback.
"""

from __future__ import annotations


class SteamservError(Exception):
    """Base class for all domain errors."""

    kind = "Error"

    def __init__(self, message: str, *, server: str | None = None):
        super().__init__(message)
        self.server = server


class NotFoundError(SteamservError):
    """No record (or catalog entry) matches the requested key."""

    kind = "NotFound"


class NameConflictError(SteamservError):
    """The server name is already used by an active record."""

    kind = "NameConflict"


class PathConflictError(SteamservError):
    """The install path is already owned by another record."""

    kind = "PathConflict"


class InvalidTransitionError(SteamservError):
    """The requested status change is not in the lifecycle table."""

    kind = "InvalidTransition"

    def __init__(self, server: str, current: str, requested: str):
        super().__init__(
            f"Cannot move '{server}' from {current} to {requested}",
            server=server,
        )
        self.current = current
        self.requested = requested


class ServerBusyError(SteamservError):
    """The server is running and must be stopped first."""

    kind = "ServerBusy"


class CorruptStateError(SteamservError):
    """The state file exists but cannot be parsed or validated."""

    kind = "CorruptState"


class RegistryLockedError(SteamservError):
    """Another process holds the state file lock or changed the file first."""

    kind = "RegistryLocked"


class AdapterFailureError(SteamservError):
    """An external tool (SteamCMD, systemctl) reported failure."""

    kind = "AdapterFailure"

    def __init__(self, message: str, *, server: str | None = None, detail: str = ""):
        super().__init__(message, server=server)
        self.detail = detail

    def __str__(self) -> str:
        base = super().__str__()
        if self.detail:
            return f"{base}\n{self.detail}"
        return base


class FilesystemError(SteamservError):
    """A filesystem operation failed (permissions, missing parent, disk full)."""

    kind = "FilesystemError"


class ConfigError(SteamservError):
    """Raised when steamserv configuration is invalid or unreadable."""

    kind = "ConfigError"
