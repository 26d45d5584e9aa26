"""
Tests for server use cases — results, error reporting and history.
"""

import re
import shutil
from pathlib import Path

from steamserv.adapters.mock import MockAdapter
from steamserv.core.context import ServiceContext, build_context
from steamserv.core.errors import NotFoundError
from steamserv.core.models.action import Receipt
from steamserv.core.models.request import InstallRequest, UpdateRequest
from steamserv.core.models.server import ServerStatus
from steamserv.core.use_cases.servers import (
    describe_error,
    generate_operation_id,
    install_server,
    list_available,
    list_servers,
    read_history,
    reconcile_registry,
    render_unit,
    restart_server,
    start_server,
    stop_server,
    uninstall_server,
    update_all_servers,
    update_server,
)


def _failed_receipt() -> Receipt:
    return Receipt.failure(
        adapter="steamcmd",
        action_id="app_update",
        error="ERROR! Failed to install app '730' (No connection)",
        output="Connecting anonymously to Steam Public...\nERROR! Failed to install app '730' (No connection)",
        return_code=0,
    )


def _install(services: ServiceContext, name: str = "pal", app_id: int = 2394010, **kwargs):
    return install_server(services, InstallRequest(app_id=app_id, name=name, **kwargs))


class TestOperationId:
    def test_format(self):
        assert re.fullmatch(r"op-\d{8}-\d{6}-[0-9a-f]{6}", generate_operation_id())

    def test_unique(self):
        assert generate_operation_id() != generate_operation_id()


class TestDescribeError:
    def test_domain_error(self):
        msg = describe_error("start", "pal", NotFoundError("No server named 'pal'", server="pal"))
        assert msg == "start 'pal' failed [NotFound]: No server named 'pal'"

    def test_value_error(self):
        msg = describe_error("install", "a/b", ValueError("Invalid server name 'a/b'"))
        assert "[InvalidRequest]" in msg

    def test_without_server(self):
        assert describe_error("list", "", NotFoundError("x")).startswith("list failed")


class TestLifecycleResults:
    def test_install_ok(self, services):
        result = _install(services)
        assert result.ok
        assert result.record.status == ServerStatus.INSTALLED
        data = result.to_dict()
        assert data["ok"] is True
        assert data["record"]["unit_name"] == "steamserv-pal.service"
        assert "owner_pid" not in data["record"]

    def test_install_failure_carries_detail(self, services, mock_adapter: MockAdapter):
        mock_adapter.set_response("app_update", _failed_receipt())
        result = _install(services, name="cs-server", app_id=730)
        assert not result.ok
        assert result.error_kind == "AdapterFailure"
        assert result.error.startswith("install 'cs-server' failed [AdapterFailure]")
        assert "Connecting anonymously" in result.detail

    def test_invalid_name(self, services):
        result = _install(services, name="bad name")
        assert result.error_kind == "InvalidRequest"

    def test_start_stop_restart(self, services):
        _install(services)
        assert start_server(services, "pal").record.status == ServerStatus.RUNNING
        assert restart_server(services, "pal").record.status == ServerStatus.RUNNING
        assert stop_server(services, "pal").record.status == ServerStatus.STOPPED

    def test_uninstall_running(self, services):
        _install(services)
        start_server(services, "pal")
        result = uninstall_server(services, "pal")
        assert result.error_kind == "ServerBusy"
        assert "stop it first" in result.error

    def test_update(self, services):
        _install(services)
        assert update_server(services, UpdateRequest(name="pal")).ok

    def test_update_missing(self, services):
        assert update_server(services, UpdateRequest(name="ghost")).error_kind == "NotFound"

    def test_update_all(self, services):
        _install(services, auto_update=True)
        result = update_all_servers(services)
        assert result.ok
        assert result.to_dict()["outcomes"] == [{"name": "pal", "ok": True, "status": "installed"}]


class TestHistory:
    def test_operations_recorded(self, services):
        _install(services)
        start_server(services, "pal")
        stop_server(services, "pal")

        entries = read_history(services)
        assert [e.operation for e in entries] == ["install", "start", "stop"]
        assert all(e.status == "ok" for e in entries)
        assert entries[0].app_id == 2394010
        assert entries[0].operation_id.startswith("op-")

    def test_failure_recorded(self, services):
        start_server(services, "ghost")
        entry = read_history(services)[-1]
        assert entry.status == "failed"
        assert entry.error_kind == "NotFound"

    def test_batch_failures_recorded(self, services, mock_adapter: MockAdapter):
        _install(services, auto_update=True)
        mock_adapter.set_failure("app_update")
        update_all_servers(services)

        entry = read_history(services)[-1]
        assert entry.operation == "update-all"
        assert entry.status == "failed"
        assert entry.context == {"failed": ["pal"]}

    def test_filter_by_server(self, services):
        _install(services, name="a")
        _install(services, name="b", app_id=896660)
        assert [e.server for e in read_history(services, server="b")] == ["b"]


class TestQueries:
    def test_list_servers(self, services):
        _install(services, name="b", app_id=896660)
        _install(services, name="a")
        result = list_servers(services)
        assert [r.name for r in result.servers] == ["a", "b"]
        assert [s["name"] for s in result.to_dict()["servers"]] == ["a", "b"]

    def test_list_filter(self, services):
        _install(services, name="valheim-1", app_id=896660)
        _install(services, name="pal")
        assert [r.name for r in list_servers(services, filter="VAL").servers] == ["valheim-1"]

    def test_list_available_limit(self, services):
        assert len(list_available(services, limit=3).entries) == 3
        assert list_available(services, "palworld").entries[0].app_id == 2394010

    def test_render_unit(self, services):
        _install(services)
        result = render_unit(services, "pal")
        assert result.path.endswith("steamserv-pal.service")
        assert "ExecStart=" in result.content

    def test_render_unit_missing(self, services):
        assert render_unit(services, "ghost").error_kind == "NotFound"


class TestReconcile:
    def test_missing_files_fail_the_record(self, services, settings, adapters):
        record = _install(services).record
        shutil.rmtree(record.install_path)

        fresh = build_context(settings=settings, adapters=adapters)
        result = reconcile_registry(fresh)
        assert [r.name for r in result.changed] == ["pal"]
        assert fresh.registry.get("pal").status == ServerStatus.FAILED
        assert "missing" in fresh.registry.get("pal").last_error

    def test_clean_registry(self, services):
        _install(services)
        assert reconcile_registry(services).changed == []

    def test_reconcile_skipped_on_request(self, settings, adapters, services):
        record = _install(services).record
        shutil.rmtree(Path(record.install_path))
        ctx = build_context(settings=settings, adapters=adapters, reconcile=False)
        assert ctx.reconciled == []
        assert ctx.registry.get("pal").status == ServerStatus.INSTALLED
