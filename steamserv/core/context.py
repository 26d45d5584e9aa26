"""
Service context — everything one steamserv invocation works with.

Built once by the entry point and passed explicitly to every use case:

    - CLI:    ui/cli commands → build_context(config_path, mock_mode)
    - Tests:  build_context(settings=..., adapters=...) with a MockAdapter

There is no module-level registry. Two contexts over the same state
directory behave like two processes: they share the state file and
its lock, nothing else.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from steamserv.adapters.mock import MockAdapter
from steamserv.adapters.registry import AdapterRegistry
from steamserv.adapters.steam.steamcmd import OutputCallback, SteamCmdAdapter
from steamserv.adapters.supervisor.systemd import SystemdAdapter
from steamserv.core.config.loader import Settings, load_settings
from steamserv.core.engine.lifecycle import LifecycleController, UnitOptions
from steamserv.core.models.server import ServerRecord
from steamserv.core.persistence.audit import HistoryWriter
from steamserv.core.persistence.state_file import default_state_path
from steamserv.core.services.catalog import CatalogSource, default_cache_path
from steamserv.core.services.server_registry import ServerRegistry

logger = logging.getLogger(__name__)

MOCK_UNIT_DIR = "units"


@dataclass
class ServiceContext:
    """Wired components for one invocation."""

    settings: Settings
    registry: ServerRegistry
    catalog: CatalogSource
    adapters: AdapterRegistry
    controller: LifecycleController
    history: HistoryWriter
    reconciled: list[ServerRecord] = field(default_factory=list)


def build_adapters(
    settings: Settings,
    mock_mode: bool = False,
    on_output: OutputCallback | None = None,
) -> AdapterRegistry:
    """Adapter registry with SteamCMD and systemd registered.

    In mock mode every action goes to a MockAdapter that creates the
    install directory, so a mocked install survives reconciliation.
    """
    adapters = AdapterRegistry()
    adapters.register(SteamCmdAdapter(settings.steamcmd_path, on_output=on_output))
    adapters.register(SystemdAdapter(user_mode=settings.systemd_user))
    if mock_mode:
        adapters.set_mock_mode(True, MockAdapter(create_paths=True))
    return adapters


def _unit_dir(settings: Settings, mock_mode: bool) -> Path:
    # Mock runs never touch the real systemd directories
    if mock_mode and settings.unit_dir is None:
        return settings.state_dir / MOCK_UNIT_DIR
    return settings.effective_unit_dir


def build_context(
    config_path: Path | None = None,
    mock_mode: bool = False,
    on_output: OutputCallback | None = None,
    settings: Settings | None = None,
    adapters: AdapterRegistry | None = None,
    reconcile: bool = True,
) -> ServiceContext:
    """Load settings and state, reconcile, and wire the controller.

    Raises:
        ConfigError: If the config file is invalid.
        CorruptStateError: If the state file cannot be parsed.
        RegistryLockedError: If reconciliation cannot take the lock.
    """
    if settings is None:
        settings = load_settings(config_path)
    if adapters is None:
        adapters = build_adapters(settings, mock_mode=mock_mode, on_output=on_output)
    mock_mode = mock_mode or adapters.mock_mode

    registry = ServerRegistry(
        default_state_path(settings.state_dir),
        lock_timeout=settings.lock_timeout,
    ).load()

    catalog = CatalogSource(
        cache_path=default_cache_path(settings.state_dir),
        url=settings.catalog_url,
    )

    controller = LifecycleController(
        registry=registry,
        adapters=adapters,
        catalog=catalog,
        install_root=settings.install_root,
        units=UnitOptions(
            unit_dir=_unit_dir(settings, mock_mode),
            service_user=settings.service_user,
            user_mode=settings.systemd_user,
        ),
    )

    ctx = ServiceContext(
        settings=settings,
        registry=registry,
        catalog=catalog,
        adapters=adapters,
        controller=controller,
        history=HistoryWriter(state_dir=settings.state_dir),
    )

    if reconcile:
        ctx.reconciled = controller.reconcile()
        for record in ctx.reconciled:
            logger.warning("Reconciled '%s' → %s: %s", record.name, record.status, record.last_error)

    return ctx
