"""
Server use cases — one function per command, each returning a result.

Every lifecycle operation runs through ``_execute``, which times it,
turns a domain error into ``error`` / ``error_kind`` on the result, and
appends a history entry. The CLI only ever inspects results; it never
catches domain exceptions itself.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from steamserv.core.context import ServiceContext
from steamserv.core.engine.lifecycle import BatchOutcome
from steamserv.core.errors import AdapterFailureError, SteamservError
from steamserv.core.models.catalog import CatalogEntry
from steamserv.core.models.request import Credentials, InstallRequest, UpdateRequest
from steamserv.core.models.server import ServerRecord
from steamserv.core.persistence.audit import HistoryEntry

logger = logging.getLogger(__name__)


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"


def _record_dict(record: ServerRecord) -> dict:
    data = record.model_dump(mode="json", exclude={"owner_pid"})
    data["unit_name"] = record.unit_name
    return data


@dataclass
class OperationResult:
    """Outcome of one lifecycle operation."""

    operation: str
    server: str = ""
    operation_id: str = ""
    record: ServerRecord | None = None
    outcomes: list[BatchOutcome] = field(default_factory=list)
    duration_ms: int = 0
    error: str | None = None
    error_kind: str | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result: dict = {
            "operation": self.operation,
            "server": self.server,
            "operation_id": self.operation_id,
            "ok": self.ok,
            "duration_ms": self.duration_ms,
        }
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
            if self.detail:
                result["detail"] = self.detail
        if self.record is not None:
            result["record"] = _record_dict(self.record)
        if self.outcomes:
            result["outcomes"] = [o.to_dict() for o in self.outcomes]
        return result


def describe_error(operation: str, server: str, error: SteamservError | ValueError) -> str:
    """One-line message naming the operation, the server and the error kind."""
    kind = getattr(error, "kind", "InvalidRequest")
    message = error.args[0] if error.args else str(error)
    target = f" '{server}'" if server else ""
    return f"{operation}{target} failed [{kind}]: {message}"


def _execute(
    ctx: ServiceContext,
    operation: str,
    server: str,
    fn: Callable[[], ServerRecord | list[BatchOutcome]],
    app_id: int | None = None,
) -> OperationResult:
    result = OperationResult(operation=operation, server=server, operation_id=generate_operation_id())
    start = time.monotonic()

    try:
        value = fn()
    except (SteamservError, ValueError) as e:
        result.error = describe_error(operation, server, e)
        result.error_kind = getattr(e, "kind", "InvalidRequest")
        if isinstance(e, AdapterFailureError):
            result.detail = e.detail
        logger.debug("%s %s raised %r", operation, server, e)
    else:
        if isinstance(value, list):
            result.outcomes = value
        else:
            result.record = value

    result.duration_ms = int((time.monotonic() - start) * 1000)

    if result.record is not None and app_id is None:
        app_id = result.record.app_id
    failed_batch = [o.name for o in result.outcomes if not o.ok]
    ctx.history.write(HistoryEntry(
        operation_id=result.operation_id,
        operation=operation,
        server=server,
        app_id=app_id,
        status="ok" if result.ok and not failed_batch else "failed",
        error_kind=result.error_kind,
        error=result.error,
        duration_ms=result.duration_ms,
        context={"failed": failed_batch} if failed_batch else {},
    ))
    return result


# ── Lifecycle operations ────────────────────────────────────────


def install_server(ctx: ServiceContext, request: InstallRequest) -> OperationResult:
    return _execute(
        ctx, "install", request.name,
        lambda: ctx.controller.install(request),
        app_id=request.app_id,
    )


def update_server(ctx: ServiceContext, request: UpdateRequest) -> OperationResult:
    return _execute(ctx, "update", request.name, lambda: ctx.controller.update(request))


def update_all_servers(ctx: ServiceContext, credentials: Credentials | None = None) -> OperationResult:
    """Update every auto-update server; failures are reported per server."""
    return _execute(ctx, "update-all", "", lambda: ctx.controller.update_all(credentials))


def uninstall_server(ctx: ServiceContext, name: str) -> OperationResult:
    return _execute(ctx, "uninstall", name, lambda: ctx.controller.uninstall(name))


def start_server(ctx: ServiceContext, name: str) -> OperationResult:
    return _execute(ctx, "start", name, lambda: ctx.controller.start(name))


def stop_server(ctx: ServiceContext, name: str) -> OperationResult:
    return _execute(ctx, "stop", name, lambda: ctx.controller.stop(name))


def restart_server(ctx: ServiceContext, name: str) -> OperationResult:
    return _execute(ctx, "restart", name, lambda: ctx.controller.restart(name))


# ── Queries ─────────────────────────────────────────────────────


@dataclass
class ListResult:
    """Servers in the registry."""

    servers: list[ServerRecord] = field(default_factory=list)
    error: str | None = None
    error_kind: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error, "error_kind": self.error_kind}
        return {"servers": [_record_dict(r) for r in self.servers]}


def list_servers(
    ctx: ServiceContext,
    filter: str | None = None,
    installed_only: bool = False,
) -> ListResult:
    try:
        return ListResult(servers=list(ctx.controller.list_servers(filter, installed_only)))
    except SteamservError as e:
        return ListResult(error=describe_error("list", "", e), error_kind=e.kind)


@dataclass
class CatalogResult:
    """Catalog titles matching a search."""

    entries: list[CatalogEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"entries": [e.model_dump(mode="json") for e in self.entries]}


def list_available(ctx: ServiceContext, text: str | None = None, limit: int = 0) -> CatalogResult:
    entries = list(ctx.controller.list_available(text))
    return CatalogResult(entries=entries[:limit] if limit > 0 else entries)


@dataclass
class UnitResult:
    """A rendered unit file."""

    server: str
    path: str = ""
    content: str = ""
    written: bool = False
    error: str | None = None
    error_kind: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"server": self.server, "error": self.error, "error_kind": self.error_kind}
        return {
            "server": self.server,
            "path": self.path,
            "written": self.written,
            "content": self.content,
        }


def render_unit(ctx: ServiceContext, name: str, write: bool = False) -> UnitResult:
    result = UnitResult(server=name)
    try:
        render = ctx.controller.render_unit(name, write=write)
    except SteamservError as e:
        result.error = describe_error("unit", name, e)
        result.error_kind = e.kind
        return result
    result.path = render.unit.path
    result.content = render.unit.content
    result.written = render.written
    return result


@dataclass
class ReconcileResult:
    """Records whose status was corrected."""

    changed: list[ServerRecord] = field(default_factory=list)
    error: str | None = None
    error_kind: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error, "error_kind": self.error_kind}
        return {"changed": [_record_dict(r) for r in self.changed]}


def reconcile_registry(ctx: ServiceContext) -> ReconcileResult:
    """Run reconciliation (again) and report what changed.

    Includes records already corrected while the context was built.
    """
    try:
        changed = ctx.reconciled + ctx.controller.reconcile()
    except SteamservError as e:
        return ReconcileResult(error=describe_error("reconcile", "", e), error_kind=e.kind)
    return ReconcileResult(changed=changed)


def read_history(ctx: ServiceContext, n: int = 20, server: str | None = None) -> list[HistoryEntry]:
    return ctx.history.read_recent(n=n, server=server)
