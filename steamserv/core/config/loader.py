"""
Configuration loader — reads config.yml into a Settings model.

Lookup order: explicit ``--config`` path, then ``STEAMSERV_CONFIG``,
then ``~/.config/steamserv/config.yml``. A missing file is not an
error; every setting has a default that works for a single operator
with SteamCMD on ``PATH``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from steamserv.core.errors import ConfigError
from steamserv.core.persistence.locking import DEFAULT_LOCK_TIMEOUT
from steamserv.core.persistence.state_file import atomic_write

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yml"
CONFIG_ENV_VAR = "STEAMSERV_CONFIG"
DEFAULT_CATALOG_URL = "https://api.steampowered.com/ISteamApps/GetAppList/v2/"

SYSTEM_UNIT_DIR = Path("/etc/systemd/system")


def _xdg_dir(env_var: str, fallback: str) -> Path:
    base = os.environ.get(env_var)
    return Path(base) if base else Path.home() / fallback


def default_config_path() -> Path:
    """``$XDG_CONFIG_HOME/steamserv/config.yml``."""
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / "steamserv" / CONFIG_FILE


def _default_state_dir() -> Path:
    return _xdg_dir("XDG_STATE_HOME", ".local/state") / "steamserv"


def _default_install_root() -> Path:
    return Path.home() / "steamserv" / "servers"


class Settings(BaseModel):
    """Host-level steamserv settings."""

    steamcmd_path: str = "steamcmd"
    install_root: Path = Field(default_factory=_default_install_root)
    state_dir: Path = Field(default_factory=_default_state_dir)
    unit_dir: Path | None = None          # None → derived from systemd_user
    systemd_user: bool = False
    service_user: str = ""
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    catalog_url: str = DEFAULT_CATALOG_URL

    @property
    def effective_unit_dir(self) -> Path:
        """Where unit files are written."""
        if self.unit_dir is not None:
            return self.unit_dir
        if self.systemd_user:
            return _xdg_dir("XDG_CONFIG_HOME", ".config") / "systemd" / "user"
        return SYSTEM_UNIT_DIR

    def expanded(self) -> Settings:
        """Copy with ``~`` expanded in every path."""
        return self.model_copy(update={
            "install_root": self.install_root.expanduser(),
            "state_dir": self.state_dir.expanduser(),
            "unit_dir": self.unit_dir.expanduser() if self.unit_dir else None,
            "steamcmd_path": os.path.expanduser(self.steamcmd_path),
        })


def find_config_file(explicit: Path | None = None) -> Path:
    """Resolve which config file applies (it may not exist yet)."""
    if explicit is not None:
        return explicit
    env = os.environ.get(CONFIG_ENV_VAR)
    if env:
        return Path(env)
    return default_config_path()


def load_settings(path: Path | None = None) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit path to config.yml. If None, uses the lookup order.

    Returns:
        Validated Settings with paths expanded.

    Raises:
        ConfigError: If the file exists but is invalid.
    """
    path = find_config_file(path)

    if not path.is_file():
        logger.debug("No config file at %s — using defaults", path)
        return Settings().expanded()

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    return settings.expanded()


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    """Write settings to config.yml (atomic). Returns the path written."""
    path = find_config_file(path)
    data = settings.model_dump(mode="json", exclude_none=True)
    content = yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
    try:
        atomic_write(path, content)
    except OSError as e:
        raise ConfigError(f"Cannot write {path}: {e}") from e
    logger.info("Settings saved to %s", path)
    return path
