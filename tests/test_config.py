"""
Tests for configuration loading — config.yml parsing and validation.
"""

import textwrap
from pathlib import Path

import pytest
import yaml

from steamserv.core.config.loader import (
    CONFIG_ENV_VAR,
    SYSTEM_UNIT_DIR,
    Settings,
    default_config_path,
    find_config_file,
    load_settings,
    save_settings,
)
from steamserv.core.errors import ConfigError


@pytest.fixture
def valid_config_yml(tmp_path: Path) -> Path:
    content = textwrap.dedent(f"""\
        steamcmd_path: /opt/steamcmd/steamcmd.sh
        install_root: {tmp_path}/servers
        state_dir: {tmp_path}/state
        systemd_user: true
        lock_timeout: 2.5
    """)
    path = tmp_path / "config.yml"
    path.write_text(content)
    return path


class TestFindConfigFile:
    def test_explicit_wins(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.yml"))
        assert find_config_file(tmp_path / "cli.yml") == tmp_path / "cli.yml"

    def test_env_var(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.yml"))
        assert find_config_file() == tmp_path / "env.yml"

    def test_xdg_default(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert find_config_file() == tmp_path / "steamserv" / "config.yml"
        assert default_config_path() == tmp_path / "steamserv" / "config.yml"


class TestLoadSettings:
    def test_valid(self, valid_config_yml: Path, tmp_path: Path):
        settings = load_settings(valid_config_yml)
        assert settings.steamcmd_path == "/opt/steamcmd/steamcmd.sh"
        assert settings.install_root == tmp_path / "servers"
        assert settings.systemd_user is True
        assert settings.lock_timeout == 2.5

    def test_missing_file_gives_defaults(self, tmp_path: Path):
        settings = load_settings(tmp_path / "absent.yml")
        assert settings.steamcmd_path == "steamcmd"
        assert settings.lock_timeout == 10.0
        assert "~" not in str(settings.install_root)

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("")
        assert load_settings(path).steamcmd_path == "steamcmd"

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("steamcmd_path: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path)

    def test_invalid_value(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("lock_timeout: soon\n")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_settings(path)

    def test_tilde_expanded(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        path = tmp_path / "config.yml"
        path.write_text("install_root: ~/games\n")
        assert load_settings(path).install_root == tmp_path / "games"


class TestUnitDir:
    def test_explicit(self, tmp_path: Path):
        assert Settings(unit_dir=tmp_path).effective_unit_dir == tmp_path

    def test_system(self):
        assert Settings().effective_unit_dir == SYSTEM_UNIT_DIR

    def test_user(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert Settings(systemd_user=True).effective_unit_dir == tmp_path / "systemd" / "user"


class TestSaveSettings:
    def test_roundtrip(self, tmp_path: Path):
        path = tmp_path / "nested" / "config.yml"
        original = Settings(install_root=tmp_path / "srv", state_dir=tmp_path / "st", service_user="steam")
        assert save_settings(original, path) == path

        loaded = load_settings(path)
        assert loaded.install_root == tmp_path / "srv"
        assert loaded.service_user == "steam"

    def test_unset_unit_dir_omitted(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        save_settings(Settings(), path)
        assert "unit_dir" not in yaml.safe_load(path.read_text())
