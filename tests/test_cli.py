"""
Tests for CLI commands — install flow, run state, queries, config.
"""

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from steamserv.core.config.loader import Settings, load_settings
from steamserv.main import cli


def run(config_file: Path, *args: str, input: str | None = None):
    """Invoke the CLI in mock mode against ``config_file``."""
    runner = CliRunner()
    return runner.invoke(cli, ["-q", "--config", str(config_file), "--mock", *args], input=input)


def install_cs(config_file: Path, *extra: str):
    return run(
        config_file,
        "install", "--appid", "730", "--server-name", "cs-server", "--no-input", *extra,
    )


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Steam dedicated game servers" in result.output
        for command in ("install", "update", "uninstall", "list", "start", "stop", "catalog"):
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_corrupt_state(self, config_file: Path, settings: Settings):
        (settings.state_dir / "servers.json").write_text("{{{")
        result = run(config_file, "list")
        assert result.exit_code == 1
        assert "CorruptState" in result.output


class TestInstallCommand:
    def test_install_no_input(self, config_file: Path, settings: Settings):
        result = install_cs(config_file)
        assert result.exit_code == 0, result.output
        assert "Installed cs-server" in result.output
        assert (settings.install_root / "cs-server").is_dir()
        assert (settings.unit_dir / "steamserv-cs-server.service").is_file()

    def test_install_json(self, config_file: Path):
        result = install_cs(config_file, "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["ok"] is True
        assert data["record"]["status"] == "installed"
        assert data["record"]["display_name"] == "Counter-Strike 2 Dedicated Server"

    def test_duplicate_name(self, config_file: Path):
        install_cs(config_file)
        result = install_cs(config_file)
        assert result.exit_code == 1
        assert "[NameConflict]" in result.output

    def test_missing_appid_with_no_input(self, config_file: Path):
        result = run(config_file, "install", "--server-name", "x", "--no-input")
        assert result.exit_code == 2
        assert "--appid" in result.output

    def test_invalid_name(self, config_file: Path):
        result = run(config_file, "install", "--appid", "730", "--server-name", "a b", "--no-input")
        assert result.exit_code == 2
        assert "server name" in result.output

    def test_install_by_title(self, config_file: Path):
        result = run(
            config_file,
            "install", "--appid", "Valheim", "--server-name", "vh", "--no-input", "--json",
        )
        assert result.exit_code == 0
        assert json.loads(result.output)["record"]["app_id"] == 896660

    def test_interactive(self, config_file: Path):
        result = run(config_file, "install", input="palworld\npal\ny\n")
        assert result.exit_code == 0, result.output
        assert "Palworld Dedicated Server" in result.output

        listed = json.loads(run(config_file, "list", "--json").output)
        assert listed["servers"][0]["name"] == "pal"
        assert listed["servers"][0]["auto_update"] is True

    def test_interactive_ambiguous_title(self, config_file: Path):
        result = run(config_file, "install", input="counter-strike\n1\ncs\nn\n")
        assert result.exit_code == 0, result.output
        listed = json.loads(run(config_file, "list", "--json").output)
        assert listed["servers"][0]["app_id"] == 730


class TestLifecycleCommands:
    def test_full_cycle(self, config_file: Path, settings: Settings):
        install_cs(config_file)

        assert run(config_file, "start", "cs-server").exit_code == 0

        busy = run(config_file, "uninstall", "cs-server", "-y")
        assert busy.exit_code == 1
        assert "ServerBusy" in busy.output

        assert run(config_file, "stop", "cs-server").exit_code == 0
        result = run(config_file, "uninstall", "cs-server", "-y")
        assert result.exit_code == 0
        assert not (settings.install_root / "cs-server").exists()
        assert "No servers found." in run(config_file, "list").output

    def test_uninstall_declined(self, config_file: Path):
        install_cs(config_file)
        result = run(config_file, "uninstall", "cs-server", input="n\n")
        assert result.exit_code == 1
        assert "cs-server" in run(config_file, "list").output

    def test_start_missing(self, config_file: Path):
        result = run(config_file, "start", "ghost")
        assert result.exit_code == 1
        assert "start 'ghost' failed [NotFound]" in result.output

    def test_stop_without_name_no_input(self, config_file: Path):
        assert run(config_file, "stop", "--no-input").exit_code == 2

    def test_start_pick_from_list(self, config_file: Path):
        install_cs(config_file)
        result = run(config_file, "start", input="1\n")
        assert result.exit_code == 0
        assert "Started cs-server" in result.output

    def test_restart(self, config_file: Path):
        install_cs(config_file)
        result = run(config_file, "restart", "cs-server", "--json")
        assert json.loads(result.output)["record"]["status"] == "running"

    def test_update(self, config_file: Path):
        install_cs(config_file)
        result = run(config_file, "update", "cs-server", "--no-input")
        assert result.exit_code == 0
        assert "Updated cs-server" in result.output

    def test_update_all_none_enabled(self, config_file: Path):
        install_cs(config_file)
        result = run(config_file, "update", "--all")
        assert result.exit_code == 0
        assert "No servers have auto-update enabled." in result.output

    def test_update_all(self, config_file: Path):
        install_cs(config_file, "--auto-update")
        result = run(config_file, "update", "--all", "--json")
        assert result.exit_code == 0
        assert json.loads(result.output)["outcomes"][0]["name"] == "cs-server"

    def test_update_name_and_all(self, config_file: Path):
        assert run(config_file, "update", "x", "--all").exit_code == 2


class TestQueryCommands:
    def test_list_filter(self, config_file: Path):
        install_cs(config_file)
        run(config_file, "install", "--appid", "896660", "--server-name", "valheim", "--no-input")

        data = json.loads(run(config_file, "list", "--filter", "val", "--json").output)
        assert [s["name"] for s in data["servers"]] == ["valheim"]

    def test_unit(self, config_file: Path):
        install_cs(config_file)
        result = run(config_file, "unit", "cs-server")
        assert result.exit_code == 0
        assert "ExecStart=" in result.output
        assert "cs2 -dedicated" in result.output

    def test_unit_write_up_to_date(self, config_file: Path):
        install_cs(config_file)
        result = run(config_file, "unit", "cs-server", "--write")
        assert "already up to date" in result.output

    def test_history(self, config_file: Path):
        install_cs(config_file)
        run(config_file, "start", "cs-server")
        data = json.loads(run(config_file, "history", "--json").output)
        assert [e["operation"] for e in data] == ["install", "start"]

    def test_reconcile(self, config_file: Path, settings: Settings):
        install_cs(config_file)
        assert "Registry matches the host" in run(config_file, "reconcile").output

        (settings.install_root / "cs-server").rename(settings.install_root / "moved")
        data = json.loads(run(config_file, "reconcile", "--json").output)
        assert data["changed"][0]["status"] == "failed"


class TestCatalogCommands:
    def test_search(self, config_file: Path):
        result = run(config_file, "catalog", "search", "valheim")
        assert result.exit_code == 0
        assert "896660" in result.output

    def test_search_json_limit(self, config_file: Path):
        data = json.loads(run(config_file, "catalog", "search", "-n", "2", "--json").output)
        assert len(data["entries"]) == 2

    def test_search_no_match(self, config_file: Path):
        assert run(config_file, "catalog", "search", "minesweeper").exit_code == 1


class TestConfigCommands:
    def test_show_json(self, config_file: Path, settings: Settings):
        result = run(config_file, "config", "show", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["exists"] is True
        assert data["settings"]["lock_timeout"] == 1.0
        assert data["unit_dir"] == str(settings.unit_dir)
        assert set(data["adapters"]) == {"steamcmd", "systemd"}

    def test_init_no_input(self, tmp_path: Path):
        path = tmp_path / "new" / "config.yml"
        result = CliRunner().invoke(cli, [
            "--config", str(path), "config", "init", "--no-input",
            "--install-root", str(tmp_path / "games"),
            "--state-dir", str(tmp_path / "st"),
            "--steamcmd", "/usr/games/steamcmd",
            "--user",
        ])
        assert result.exit_code == 0, result.output

        settings = load_settings(path)
        assert settings.install_root == tmp_path / "games"
        assert settings.steamcmd_path == "/usr/games/steamcmd"
        assert settings.systemd_user is True

    def test_init_refuses_overwrite(self, config_file: Path):
        before = config_file.read_text()
        result = CliRunner().invoke(cli, ["--config", str(config_file), "config", "init", "--no-input"])
        assert result.exit_code == 1
        assert config_file.read_text() == before

    def test_init_force(self, config_file: Path):
        result = CliRunner().invoke(cli, [
            "--config", str(config_file), "config", "init", "--no-input", "--force",
            "--service-user", "steam", "--system",
        ])
        assert result.exit_code == 0
        assert yaml.safe_load(config_file.read_text())["service_user"] == "steam"


@pytest.mark.parametrize("command", ["start", "stop", "restart", "uninstall", "update"])
def test_commands_reject_unknown_server(config_file: Path, command: str):
    args = [command, "ghost", "--no-input"]
    if command == "uninstall":
        args.append("-y")
    result = run(config_file, *args)
    assert result.exit_code == 1
    assert "NotFound" in result.output
