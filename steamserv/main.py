"""
steamserv — CLI entrypoint.

Usage:
    steamserv --help
    steamserv install --appid 896660 --server-name valheim
    steamserv list --installed
    python -m steamserv.main config show
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from steamserv import __version__
from steamserv.core.observability.logging_config import (
    FILE_ENV_VAR,
    FILE_LEVEL_ENV_VAR,
    LEVEL_ENV_VAR,
    resolve_level,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="steamserv")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.yml (default: $STEAMSERV_CONFIG or ~/.config/steamserv/config.yml).",
)
@click.option(
    "--mock",
    is_flag=True,
    help="Route SteamCMD and systemctl calls to a mock adapter.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    mock: bool,
) -> None:
    """steamserv — install and run Steam dedicated game servers."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["mock"] = mock

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug, verbose, quiet, os.environ.get(LEVEL_ENV_VAR)),
        log_file=os.environ.get(FILE_ENV_VAR),
        log_file_level=os.environ.get(FILE_LEVEL_ENV_VAR),
        quiet_third_party=not debug,
    )


# ── Register sub-groups ─────────────────────────────────────────

from steamserv.ui.cli.catalog import catalog  # noqa: E402
from steamserv.ui.cli.config import config  # noqa: E402
from steamserv.ui.cli.servers import (  # noqa: E402
    history,
    install,
    list_cmd,
    reconcile,
    restart,
    start,
    stop,
    uninstall,
    unit,
    update,
)

cli.add_command(install)
cli.add_command(update)
cli.add_command(uninstall)
cli.add_command(list_cmd)
cli.add_command(start)
cli.add_command(stop)
cli.add_command(restart)
cli.add_command(unit)
cli.add_command(history)
cli.add_command(reconcile)
cli.add_command(catalog)
cli.add_command(config)


def main() -> None:
    """Entry point for ``python -m steamserv.main``."""
    cli()


if __name__ == "__main__":
    main()
