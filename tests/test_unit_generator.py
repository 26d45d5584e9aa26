"""
Tests for the systemd unit generator.
"""

from pathlib import Path

import pytest

from steamserv.core.models.server import ServerRecord, ServerStatus
from steamserv.core.services.generators.systemd_unit import (
    generate,
    render_unit,
    resolve_exec_start,
)


def _record(**overrides) -> ServerRecord:
    fields = {
        "name": "pal",
        "app_id": 2394010,
        "status": ServerStatus.INSTALLED,
        "install_path": "/srv/steam/pal",
        "display_name": "Palworld Dedicated Server",
        "launch_command": "./PalServer.sh -port=8211",
    }
    fields.update(overrides)
    return ServerRecord(**fields)


class TestResolveExecStart:
    def test_relative_resolves_against_install_dir(self):
        assert resolve_exec_start("./srcds_run -game tf", "/srv/tf2") == "/srv/tf2/srcds_run -game tf"

    def test_bare_name(self):
        assert resolve_exec_start("PalServer.sh", "/srv/pal") == "/srv/pal/PalServer.sh"

    def test_absolute_untouched(self):
        assert resolve_exec_start("/usr/bin/env bash run.sh", "/srv/x") == "/usr/bin/env bash run.sh"

    def test_default(self):
        assert resolve_exec_start("", "/srv/x") == "/srv/x/start.sh"

    def test_quoting_preserved(self):
        line = resolve_exec_start("./run.sh -name 'My Server'", "/srv/x")
        assert line == "/srv/x/run.sh -name 'My Server'"


class TestRenderUnit:
    def test_system_unit(self):
        text = render_unit(_record(), service_user="steam")
        assert "Description=Palworld Dedicated Server dedicated server (pal, app 2394010)" in text
        assert "User=steam\n" in text
        assert "WorkingDirectory=/srv/steam/pal\n" in text
        assert "ExecStart=/srv/steam/pal/PalServer.sh -port=8211\n" in text
        assert "WantedBy=multi-user.target" in text
        assert "Restart=on-failure" in text

    def test_user_unit_has_no_user_line(self):
        text = render_unit(_record(), service_user="steam", user_mode=True)
        assert "User=" not in text
        assert "WantedBy=default.target" in text

    def test_percent_escaped(self):
        text = render_unit(_record(launch_command="./run.sh --motd 100%"))
        assert "100%%" in text

    def test_control_characters_flattened(self):
        text = render_unit(_record(display_name="Evil\r\nExecStartPre=/bin/rm -rf /"))
        assert "Description=Evil ExecStartPre=/bin/rm -rf / dedicated server" in text
        assert "\nExecStartPre=" not in text
        assert len(text.splitlines()) == len(render_unit(_record()).splitlines())

    def test_deterministic(self):
        assert render_unit(_record()) == render_unit(_record())

    def test_timestamps_do_not_change_text(self):
        before = render_unit(_record())
        after = render_unit(_record(last_updated="2030-01-01T00:00:00+00:00"))
        assert before == after

    def test_requires_install_path(self):
        with pytest.raises(ValueError, match="install it first"):
            render_unit(_record(install_path="", status=ServerStatus.PENDING))


class TestGenerate:
    def test_path_and_reason(self, tmp_path: Path):
        unit = generate(_record(), tmp_path)
        assert unit.path == str(tmp_path / "steamserv-pal.service")
        assert unit.content.startswith("[Unit]")
        assert "pal" in unit.reason
