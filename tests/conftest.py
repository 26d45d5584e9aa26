"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest
import yaml

from steamserv.adapters.mock import MockAdapter
from steamserv.adapters.registry import AdapterRegistry
from steamserv.core.config.loader import Settings
from steamserv.core.context import ServiceContext, build_context
from steamserv.core.services.server_registry import ServerRegistry


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def settings(tmp_path: Path, tmp_state_dir: Path) -> Settings:
    """Settings confined to tmp_path."""
    return Settings(
        steamcmd_path="steamcmd",
        install_root=tmp_path / "servers",
        state_dir=tmp_state_dir,
        unit_dir=tmp_path / "units",
        lock_timeout=1.0,
    )


@pytest.fixture
def registry(tmp_state_dir: Path) -> ServerRegistry:
    """An empty registry over a temporary state file."""
    return ServerRegistry(tmp_state_dir / "servers.json", lock_timeout=0.5).load()


@pytest.fixture
def mock_adapter() -> MockAdapter:
    return MockAdapter(create_paths=True)


@pytest.fixture
def adapters(mock_adapter: MockAdapter) -> AdapterRegistry:
    """Adapter registry that routes every action to the mock."""
    reg = AdapterRegistry()
    reg.set_mock_mode(True, mock_adapter)
    return reg


@pytest.fixture
def services(settings: Settings, adapters: AdapterRegistry) -> ServiceContext:
    """Fully wired service context over mocks and tmp_path."""
    return build_context(settings=settings, adapters=adapters)


@pytest.fixture
def config_file(tmp_path: Path, settings: Settings) -> Path:
    """config.yml pointing every directory into tmp_path."""
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump(settings.model_dump(mode="json", exclude_none=True)))
    return path
