"""
Server registry — the persisted set of managed game servers.

The registry is the only writer of ``servers.json``. It owns:
    - name uniqueness and install-path uniqueness
    - the lifecycle transition table (see ``core.models.server``)
    - reconciliation of recorded state against the disk

Every mutating method takes the state file lock, re-reads the file
under it, applies the change, and writes the file back atomically
before releasing. Two processes mutating back to back therefore both
land; neither overwrites the other's change with a stale copy.

Reads (``get``, ``list``) take no lock. They re-read the file whenever
its stat signature changes, so a write made by another process is
picked up on the next read.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol

from steamserv.core.errors import (
    FilesystemError,
    InvalidTransitionError,
    NameConflictError,
    NotFoundError,
    PathConflictError,
    RegistryLockedError,
)
from steamserv.core.models.catalog import CatalogEntry
from steamserv.core.models.server import (
    INSTALLED_STATES,
    TRANSIENT_STATES,
    UNINSTALLABLE_STATES,
    ServerRecord,
    ServerStatus,
    is_valid_transition,
)
from steamserv.core.models.state import RegistryState
from steamserv.core.persistence.locking import DEFAULT_LOCK_TIMEOUT, StateLock
from steamserv.core.persistence.state_file import load_state, save_state

logger = logging.getLogger(__name__)

AMENDABLE_FIELDS = frozenset({
    "display_name",
    "owner_username",
    "login_type",
    "auto_update",
    "launch_command",
})


class CatalogLookup(Protocol):
    def lookup(self, app_id: int) -> CatalogEntry | None: ...


def normalize_path(path: str | Path) -> str:
    """Canonical form used for install-path comparisons."""
    return os.path.normpath(os.path.abspath(os.path.expanduser(str(path))))


def pid_alive(pid: int | None) -> bool:
    """Whether a process with this PID exists on the host."""
    if not pid or pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class ServerQuery:
    """Lazy, restartable view over registry records.

    Each iteration re-reads the state file if it changed and yields
    copies, so callers cannot mutate the registry through it.
    """

    def __init__(
        self,
        registry: ServerRegistry,
        filter_text: str | None = None,
        installed_only: bool = False,
    ):
        self._registry = registry
        self._needle = (filter_text or "").lower()
        self._installed_only = installed_only

    def __iter__(self) -> Iterator[ServerRecord]:
        state = self._registry._current()
        for name in sorted(state.servers):
            record = state.servers[name]
            if self._needle and self._needle not in name.lower():
                continue
            if self._installed_only and record.status not in INSTALLED_STATES:
                continue
            yield record.model_copy(deep=True)

    def __repr__(self) -> str:
        return (
            f"<ServerQuery filter={self._needle!r} installed_only={self._installed_only}>"
        )


class ServerRegistry:
    """Persisted mapping of server name → ServerRecord."""

    def __init__(self, state_path: Path, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        self._path = state_path
        self._lock = StateLock(state_path, timeout=lock_timeout)
        self._state: RegistryState | None = None
        self._signature: tuple[int, int, int] | None = None

    @property
    def path(self) -> Path:
        return self._path

    # ── Loading ──────────────────────────────────────────────────

    def _stat_signature(self) -> tuple[int, int, int] | None:
        try:
            st = self._path.stat()
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size, st.st_ino)

    def _read(self) -> RegistryState:
        signature = self._stat_signature()
        self._state = load_state(self._path)
        self._signature = signature
        return self._state

    def load(self) -> ServerRegistry:
        """Read the state file (empty registry if absent).

        Raises:
            CorruptStateError: If the file exists but cannot be parsed.
        """
        self._read()
        logger.debug("Registry loaded from %s (%d servers)", self._path, len(self._state.servers))
        return self

    def _current(self) -> RegistryState:
        """In-memory state, re-read if the file changed on disk."""
        if self._state is None or self._stat_signature() != self._signature:
            return self._read()
        return self._state

    # ── Persistence ──────────────────────────────────────────────

    def _write(self) -> None:
        assert self._state is not None
        try:
            save_state(self._state, self._path)
        except OSError as e:
            self._signature = None
            raise FilesystemError(f"Cannot write state file {self._path}: {e}") from e
        self._signature = self._stat_signature()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the state file lock across several registry calls."""
        with self._lock.hold():
            yield

    @contextmanager
    def _mutation(self) -> Iterator[RegistryState]:
        """Lock, re-read, let the caller mutate, then persist.

        If the caller raises, nothing is written and the next access
        re-reads the file, discarding any in-memory change.
        """
        with self._lock.hold():
            state = self._read()
            try:
                yield state
            except BaseException:
                self._signature = None
                raise
            self._write()

    def save(self) -> None:
        """Atomically persist the in-memory state.

        Raises:
            RegistryLockedError: If another process changed the file
                since this registry last read it.
        """
        if self._state is None:
            self._state = RegistryState()
        with self._lock.hold():
            if self._stat_signature() != self._signature:
                self._signature = None
                raise RegistryLockedError(
                    f"State file {self._path} changed since it was read; reload and retry"
                )
            self._write()

    # ── Reads ────────────────────────────────────────────────────

    def find(self, name: str) -> ServerRecord | None:
        record = self._current().servers.get(name)
        return record.model_copy(deep=True) if record else None

    def get(self, name: str) -> ServerRecord:
        """The record for ``name``.

        Raises:
            NotFoundError: If no active record has that name.
        """
        record = self.find(name)
        if record is None:
            raise NotFoundError(f"No server named '{name}'", server=name)
        return record

    def list(self, filter: str | None = None, installed_only: bool = False) -> ServerQuery:
        """Records matching a case-insensitive name substring.

        Args:
            filter: Substring of the server name.
            installed_only: Only Installed, Stopped and Running records.
        """
        return ServerQuery(self, filter_text=filter, installed_only=installed_only)

    # ── Mutations ────────────────────────────────────────────────

    @staticmethod
    def _check_path(state: RegistryState, path: str, owner: str) -> None:
        wanted = normalize_path(path)
        for other in state.servers.values():
            if other.name == owner or not other.install_path:
                continue
            if normalize_path(other.install_path) == wanted:
                raise PathConflictError(
                    f"Install path {wanted} is already used by '{other.name}'",
                    server=owner,
                )

    def insert(self, candidate: ServerRecord, reserve_path: str | Path | None = None) -> ServerRecord:
        """Add a new record with status Pending.

        Args:
            candidate: The record to add. Its status is ignored.
            reserve_path: Path the install will use, checked for conflicts
                without being recorded yet.

        Raises:
            NameConflictError: If the name is taken by an active record.
            PathConflictError: If the install path is taken.
        """
        with self._mutation() as state:
            existing = state.servers.get(candidate.name)
            if existing is not None and existing.status != ServerStatus.UNINSTALLED:
                raise NameConflictError(
                    f"A server named '{candidate.name}' already exists ({existing.status})",
                    server=candidate.name,
                )

            for path in (candidate.install_path, reserve_path):
                if path:
                    self._check_path(state, str(path), candidate.name)

            record = candidate.model_copy(deep=True)
            record.status = ServerStatus.PENDING
            record.owner_pid = os.getpid()
            if record.install_path:
                record.install_path = normalize_path(record.install_path)
            state.servers[record.name] = record

        logger.info("Registered server '%s' (app %d)", record.name, record.app_id)
        return record.model_copy(deep=True)

    def update_status(
        self,
        name: str,
        new_status: ServerStatus,
        /,
        install_path: str | Path | None = None,
        error: str | None = None,
        **fields: Any,
    ) -> ServerRecord:
        """Move a record along the lifecycle table.

        Args:
            name: Server name.
            new_status: Requested status.
            install_path: Set on install/update success. Once a server
                has been installed its path can no longer change.
            error: Diagnostic text stored on a Failed record.
            **fields: Descriptive fields changed in the same write
                (see ``AMENDABLE_FIELDS``).

        Raises:
            NotFoundError: If the record does not exist.
            InvalidTransitionError: If the move is not in the table.
            PathConflictError: If the path is taken or would change.
        """
        unknown = set(fields) - AMENDABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be amended: {', '.join(sorted(unknown))}")
        new_status = ServerStatus(new_status)

        with self._mutation() as state:
            record = state.servers.get(name)
            if record is None:
                raise NotFoundError(f"No server named '{name}'", server=name)

            if not is_valid_transition(record.status, new_status):
                raise InvalidTransitionError(name, record.status.value, new_status.value)

            if install_path is not None:
                path = normalize_path(install_path)
                if record.install_path and normalize_path(record.install_path) != path:
                    raise PathConflictError(
                        f"Install path of '{name}' is {record.install_path}; it cannot move to {path}",
                        server=name,
                    )
                self._check_path(state, path, name)
                record.mark_installed(path)
            elif record.status == ServerStatus.PENDING and new_status == ServerStatus.INSTALLED:
                raise ValueError(f"Installing '{name}' requires an install_path")

            for key, value in fields.items():
                setattr(record, key, value)

            previous = record.status
            record.status = new_status
            record.owner_pid = os.getpid() if new_status in TRANSIENT_STATES else None
            if new_status == ServerStatus.FAILED:
                record.last_error = error or record.last_error

        logger.info("Server '%s': %s → %s", name, previous, new_status)
        return record.model_copy(deep=True)

    def amend(self, name: str, /, **changes: Any) -> ServerRecord:
        """Change descriptive fields of a record (never name, app id or path).

        Raises:
            NotFoundError: If the record does not exist.
            ValueError: If a field is not amendable.
        """
        unknown = set(changes) - AMENDABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be amended: {', '.join(sorted(unknown))}")

        with self._mutation() as state:
            record = state.servers.get(name)
            if record is None:
                raise NotFoundError(f"No server named '{name}'", server=name)
            for key, value in changes.items():
                setattr(record, key, value)

        return record.model_copy(deep=True)

    def remove(self, name: str) -> ServerRecord:
        """Mark Uninstalled and drop the record from the active set.

        Raises:
            NotFoundError: If the record does not exist.
            InvalidTransitionError: If the status cannot be uninstalled.
        """
        with self._mutation() as state:
            record = state.servers.get(name)
            if record is None:
                raise NotFoundError(f"No server named '{name}'", server=name)
            if record.status not in UNINSTALLABLE_STATES:
                raise InvalidTransitionError(
                    name, record.status.value, ServerStatus.UNINSTALLED.value
                )
            del state.servers[name]

        record.status = ServerStatus.UNINSTALLED
        record.owner_pid = None
        logger.info("Removed server '%s' from the registry", name)
        return record

    # ── Reconciliation ───────────────────────────────────────────

    @staticmethod
    def _drift(record: ServerRecord) -> str | None:
        """Why this record no longer matches reality, or None."""
        if record.status in INSTALLED_STATES:
            if not record.install_path:
                return "Install path was never recorded"
            if not Path(record.install_path).exists():
                return f"Install path {record.install_path} is missing"
        if record.status in TRANSIENT_STATES and not pid_alive(record.owner_pid):
            return (
                f"Interrupted while {record.status} "
                f"(process {record.owner_pid} is no longer running)"
            )
        return None

    @staticmethod
    def _missing_display_name(record: ServerRecord, catalog: CatalogLookup | None) -> str | None:
        if catalog is None or record.display_name:
            return None
        entry = catalog.lookup(record.app_id)
        return entry.name if entry else None

    def reconcile(self, catalog: CatalogLookup | None = None) -> list[ServerRecord]:
        """Correct drift between recorded state and the host.

        Installed/Stopped/Running records whose install path is gone,
        and Pending/Updating records whose owning process died, become
        Failed. Nothing is deleted. With a catalog, empty display names
        are filled in.

        Returns:
            Records whose status changed (after the change).
        """
        state = self._current()
        needs_write = any(
            self._drift(r) or self._missing_display_name(r, catalog)
            for r in state.servers.values()
        )
        if not needs_write:
            return []

        changed: list[ServerRecord] = []
        with self._mutation() as state:
            for record in state.servers.values():
                display_name = self._missing_display_name(record, catalog)
                if display_name:
                    record.display_name = display_name

                reason = self._drift(record)
                if reason is None:
                    continue
                logger.warning("Server '%s' marked failed: %s", record.name, reason)
                record.status = ServerStatus.FAILED
                record.owner_pid = None
                record.last_error = reason
                changed.append(record.model_copy(deep=True))

        return changed
