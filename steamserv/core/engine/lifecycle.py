"""
Lifecycle controller — install, update, uninstall, start, stop, restart.

The controller is the only code that strings registry transitions and
adapter calls together into one operation. Each operation follows the
same shape:

    check the record → run the external step → record the outcome

Registry checks come first, so a name or path conflict fails before
anything touches the disk. A failed SteamCMD run moves the record to
Failed and surfaces as AdapterFailureError carrying the tool's output
tail. A failed systemctl call leaves the status untouched.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from steamserv.adapters.registry import AdapterRegistry
from steamserv.core.errors import (
    AdapterFailureError,
    FilesystemError,
    InvalidTransitionError,
    NameConflictError,
    ServerBusyError,
    SteamservError,
)
from steamserv.core.models.action import Action, Receipt
from steamserv.core.models.catalog import CatalogEntry
from steamserv.core.models.request import Credentials, InstallRequest, UpdateRequest
from steamserv.core.models.server import (
    INSTALLED_STATES,
    UNINSTALLABLE_STATES,
    LoginType,
    ServerRecord,
    ServerStatus,
    is_valid_server_name,
    is_valid_transition,
)
from steamserv.core.models.template import GeneratedFile
from steamserv.core.persistence.state_file import atomic_write
from steamserv.core.services.catalog import CatalogSource
from steamserv.core.services.generators.systemd_unit import generate
from steamserv.core.services.server_registry import (
    ServerQuery,
    ServerRegistry,
    normalize_path,
    pid_alive,
)

logger = logging.getLogger(__name__)

STEAMCMD = "steamcmd"
SYSTEMD = "systemd"


@dataclass
class UnitOptions:
    """Where and how unit files are rendered."""

    unit_dir: Path
    service_user: str = ""
    user_mode: bool = False


@dataclass
class BatchOutcome:
    """Result of one server within a batch operation."""

    name: str
    record: ServerRecord | None = None
    error: SteamservError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result: dict = {"name": self.name, "ok": self.ok}
        if self.record is not None:
            result["status"] = self.record.status.value
        if self.error is not None:
            result["error_kind"] = self.error.kind
            result["error"] = str(self.error)
        return result


@dataclass
class UnitRender:
    """A rendered unit and whether it was written."""

    unit: GeneratedFile
    written: bool = False


class LifecycleController:
    """Orchestrates server operations over the registry and adapters."""

    def __init__(
        self,
        registry: ServerRegistry,
        adapters: AdapterRegistry,
        catalog: CatalogSource,
        install_root: Path,
        units: UnitOptions,
    ):
        self._registry = registry
        self._adapters = adapters
        self._catalog = catalog
        self._install_root = install_root
        self._units = units

    @property
    def registry(self) -> ServerRegistry:
        return self._registry

    # ── Adapter plumbing ─────────────────────────────────────────

    def _run(self, adapter: str, action_id: str, server: str, **params) -> Receipt:
        action = Action(id=action_id, adapter=adapter, params=params, for_server=server)
        receipt = self._adapters.execute_action(action)
        logger.debug(
            "%s:%s for '%s' → %s (%dms)",
            adapter, action_id, server, receipt.status, receipt.duration_ms,
        )
        return receipt

    def _supervise(self, operation: str, record: ServerRecord) -> Receipt:
        """Run a systemctl operation; raise if it fails."""
        receipt = self._run(SYSTEMD, operation, record.name, unit=record.unit_name)
        if receipt.failed:
            raise AdapterFailureError(
                f"systemctl {operation} {record.unit_name} failed: {receipt.error}",
                server=record.name,
                detail=receipt.output,
            )
        return receipt

    def _daemon_reload(self, server: str) -> None:
        receipt = self._run(SYSTEMD, "daemon-reload", server)
        if receipt.failed:
            logger.warning("systemctl daemon-reload failed: %s", receipt.error)

    def _is_active(self, record: ServerRecord) -> bool:
        receipt = self._run(SYSTEMD, "is-active", record.name, unit=record.unit_name)
        if receipt.failed:
            if not self.unit_path(record).exists():
                logger.debug("No unit for '%s' and is-active failed; treating as inactive", record.name)
                return False
            raise AdapterFailureError(
                f"Cannot query state of {record.unit_name}: {receipt.error}",
                server=record.name,
            )
        return bool(receipt.metadata.get("active", False))

    def _app_update(
        self,
        record_name: str,
        app_id: int,
        install_dir: str,
        credentials: Credentials,
        validate: bool,
    ) -> Receipt:
        return self._run(
            STEAMCMD,
            "app_update",
            record_name,
            app_id=app_id,
            install_dir=install_dir,
            username=credentials.username,
            password=credentials.password.get_secret_value(),
            validate=validate,
        )

    # ── Unit files ───────────────────────────────────────────────

    def unit_path(self, record: ServerRecord) -> Path:
        return self._units.unit_dir / record.unit_name

    def _generate_unit(self, record: ServerRecord) -> GeneratedFile:
        return generate(
            record,
            self._units.unit_dir,
            service_user=self._units.service_user,
            user_mode=self._units.user_mode,
        )

    def _write_unit(self, record: ServerRecord) -> bool:
        """Write the unit file if its content changed. Returns True if written."""
        unit = self._generate_unit(record)
        path = Path(unit.path)
        try:
            if path.is_file() and path.read_text(encoding="utf-8") == unit.content:
                logger.debug("Unit %s unchanged", path)
                return False
            atomic_write(path, unit.content)
        except OSError as e:
            raise FilesystemError(
                f"Cannot write unit file {path}: {e}. "
                f"Fix permissions and run 'steamserv unit {record.name} --write'.",
                server=record.name,
            ) from e

        logger.info("Wrote unit file %s", path)
        self._daemon_reload(record.name)
        return True

    def render_unit(self, name: str, write: bool = False) -> UnitRender:
        """Unit text for an installed server, optionally (re)written."""
        record = self._registry.get(name)
        if not record.install_path:
            raise InvalidTransitionError(name, record.status.value, "unit rendering")
        unit = self._generate_unit(record)
        written = self._write_unit(record) if write else False
        return UnitRender(unit=unit, written=written)

    # ── Install ──────────────────────────────────────────────────

    def install_dir_for(self, name: str) -> str:
        return normalize_path(self._install_root / name)

    def _reserve(self, request: InstallRequest, entry: CatalogEntry | None) -> ServerRecord:
        """Insert a Pending record, or reuse a retryable one."""
        creds = request.credentials
        launch = request.launch_command or (entry.launch_command if entry else "")
        fields = {
            "display_name": entry.name if entry else "",
            "owner_username": creds.owner_username,
            "login_type": LoginType.ANONYMOUS if creds.anonymous else LoginType.STEAM_ACCOUNT,
            "auto_update": request.auto_update,
            "launch_command": launch,
        }
        install_dir = self.install_dir_for(request.name)

        existing = self._registry.find(request.name)
        if existing is None:
            candidate = ServerRecord(name=request.name, app_id=request.app_id, **fields)
            return self._registry.insert(candidate, reserve_path=install_dir)

        if existing.app_id != request.app_id:
            raise NameConflictError(
                f"'{request.name}' already exists for app {existing.app_id}",
                server=request.name,
            )

        if existing.status == ServerStatus.FAILED:
            logger.info("Retrying install of '%s'", request.name)
            return self._registry.update_status(request.name, ServerStatus.PENDING, **fields)
        if existing.status != ServerStatus.PENDING:
            raise NameConflictError(
                f"A server named '{request.name}' already exists ({existing.status})",
                server=request.name,
            )
        if existing.owner_pid != os.getpid() and pid_alive(existing.owner_pid):
            raise NameConflictError(
                f"'{request.name}' is being installed by process {existing.owner_pid}",
                server=request.name,
            )

        return self._registry.amend(request.name, **fields)

    def install(self, request: InstallRequest) -> ServerRecord:
        """Download a server and register it.

        Raises:
            NameConflictError, PathConflictError: Before any download.
            AdapterFailureError: If SteamCMD fails (record ends Failed).
            FilesystemError: If the unit file cannot be written (record
                stays Installed).
        """
        if not is_valid_server_name(request.name):
            raise ValueError(
                f"Invalid server name '{request.name}': use letters, digits, '.', '_' or '-'"
            )

        entry = self._catalog.lookup(request.app_id)
        if entry is None:
            logger.info("App %d is not in the catalog; installing anyway", request.app_id)
        elif not entry.anonymous and request.credentials.anonymous:
            logger.warning("%s usually requires a Steam account login", entry.name)

        record = self._reserve(request, entry)
        install_dir = self.install_dir_for(record.name)

        receipt = self._app_update(
            record.name,
            record.app_id,
            install_dir,
            request.credentials,
            request.validate_files,
        )
        if receipt.failed:
            self._registry.update_status(record.name, ServerStatus.FAILED, error=receipt.error)
            raise AdapterFailureError(
                f"SteamCMD failed to install app {record.app_id}: {receipt.error}",
                server=record.name,
                detail=receipt.output,
            )

        record = self._registry.update_status(
            record.name, ServerStatus.INSTALLED, install_path=install_dir
        )
        self._write_unit(record)
        return record

    # ── Update ───────────────────────────────────────────────────

    def _update_credentials(self, record: ServerRecord, credentials: Credentials) -> Credentials:
        # SteamCMD caches the login session; the stored username is enough
        if credentials.anonymous and record.owner_username:
            return Credentials(username=record.owner_username)
        return credentials

    def update(self, request: UpdateRequest) -> ServerRecord:
        """Update a server in place, restoring its run state afterwards.

        Raises:
            NotFoundError: If the server does not exist.
            InvalidTransitionError: If it is not installed.
            AdapterFailureError: If SteamCMD or systemctl fails.
            FilesystemError: If the unit file cannot be rewritten. The
                server is still restarted first.
        """
        record = self._registry.get(request.name)
        if record.status not in INSTALLED_STATES:
            raise InvalidTransitionError(
                record.name, record.status.value, ServerStatus.UPDATING.value
            )

        was_running = record.status == ServerStatus.RUNNING
        if was_running:
            self._supervise("stop", record)
            self._registry.update_status(record.name, ServerStatus.STOPPED)

        self._registry.update_status(record.name, ServerStatus.UPDATING)
        receipt = self._app_update(
            record.name,
            record.app_id,
            record.install_path,
            self._update_credentials(record, request.credentials),
            request.validate_files,
        )

        failure: SteamservError | None = None
        if receipt.failed:
            record = self._registry.update_status(
                record.name, ServerStatus.FAILED, error=receipt.error
            )
            failure = AdapterFailureError(
                f"SteamCMD failed to update app {record.app_id}: {receipt.error}",
                server=record.name,
                detail=receipt.output,
            )
        else:
            record = self._registry.update_status(
                record.name, ServerStatus.INSTALLED, install_path=record.install_path
            )
            try:
                self._write_unit(record)
            except FilesystemError as e:
                failure = e

        if was_running:
            started = self._run(SYSTEMD, "start", record.name, unit=record.unit_name)
            if started.failed:
                logger.error("Could not restart '%s' after update: %s", record.name, started.error)
                if failure is None:
                    failure = AdapterFailureError(
                        f"Updated, but systemctl start {record.unit_name} failed: {started.error}",
                        server=record.name,
                        detail=started.output,
                    )
            elif not receipt.failed:
                record = self._registry.update_status(record.name, ServerStatus.RUNNING)

        if failure is not None:
            raise failure
        return record

    def update_all(self, credentials: Credentials | None = None) -> list[BatchOutcome]:
        """Update every installed server with auto_update enabled."""
        outcomes = []
        for record in self._registry.list(installed_only=True):
            if not record.auto_update:
                continue
            request = UpdateRequest(name=record.name, credentials=credentials or Credentials())
            try:
                outcomes.append(BatchOutcome(name=record.name, record=self.update(request)))
            except SteamservError as e:
                logger.error("Update of '%s' failed: %s", record.name, e)
                outcomes.append(BatchOutcome(name=record.name, error=e))
        return outcomes

    # ── Uninstall ────────────────────────────────────────────────

    def uninstall(self, name: str) -> ServerRecord:
        """Remove a stopped server's files, unit, and record.

        Raises:
            NotFoundError: If the server does not exist.
            ServerBusyError: If it is running.
            InvalidTransitionError: If an install or update is in progress.
            FilesystemError: If files cannot be removed (record kept).
        """
        record = self._registry.get(name)
        busy = ServerBusyError(
            f"'{name}' is running; stop it first with 'steamserv stop {name}'",
            server=name,
        )
        if record.status == ServerStatus.RUNNING:
            raise busy
        if record.status not in UNINSTALLABLE_STATES:
            raise InvalidTransitionError(
                name, record.status.value, ServerStatus.UNINSTALLED.value
            )
        if self._is_active(record):
            raise busy

        unit_path = self.unit_path(record)
        if unit_path.exists():
            self._supervise("disable", record)

        files = Path(record.install_path or self.install_dir_for(name))
        if files.exists():
            logger.info("Removing %s", files)
            try:
                shutil.rmtree(files)
            except OSError as e:
                raise FilesystemError(f"Cannot remove {files}: {e}", server=name) from e

        if unit_path.exists():
            try:
                unit_path.unlink()
            except OSError as e:
                raise FilesystemError(f"Cannot remove {unit_path}: {e}", server=name) from e
            self._daemon_reload(name)

        return self._registry.remove(name)

    # ── Run state ────────────────────────────────────────────────

    def _require(self, record: ServerRecord, target: ServerStatus) -> None:
        if not is_valid_transition(record.status, target):
            raise InvalidTransitionError(record.name, record.status.value, target.value)

    def start(self, name: str) -> ServerRecord:
        """Enable and start the server's unit."""
        record = self._registry.get(name)
        self._require(record, ServerStatus.RUNNING)
        self._write_unit(record)
        self._supervise("enable", record)
        self._supervise("start", record)
        return self._registry.update_status(name, ServerStatus.RUNNING)

    def stop(self, name: str) -> ServerRecord:
        """Stop the server's unit. Stopping a never-started server is a no-op."""
        record = self._registry.get(name)
        if record.status == ServerStatus.INSTALLED:
            logger.info("'%s' is not running", name)
            return record
        self._require(record, ServerStatus.STOPPED)
        self._supervise("stop", record)
        return self._registry.update_status(name, ServerStatus.STOPPED)

    def restart(self, name: str) -> ServerRecord:
        record = self._registry.get(name)
        if record.status != ServerStatus.RUNNING:
            return self.start(name)
        self._supervise("restart", record)
        return record

    # ── Queries ──────────────────────────────────────────────────

    def list_servers(self, filter: str | None = None, installed_only: bool = False) -> ServerQuery:
        return self._registry.list(filter=filter, installed_only=installed_only)

    def list_available(self, text: str | None = None) -> Iterator[CatalogEntry]:
        return self._catalog.search(text)

    def reconcile(self) -> list[ServerRecord]:
        return self._registry.reconcile(self._catalog)
