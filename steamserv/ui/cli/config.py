"""
CLI commands for host configuration.

``config init`` writes config.yml (asking for anything not given as a
flag) and can download SteamCMD. ``config show`` prints the effective
settings and whether SteamCMD and systemctl are reachable.
"""

from __future__ import annotations

import json
from pathlib import Path

import click

from steamserv.ui.cli.helpers import fail


@click.group()
def config() -> None:
    """Configuration — create and inspect config.yml."""


@config.command()
@click.option("--steamcmd", "steamcmd_path", default=None, help="SteamCMD executable.")
@click.option("--install-root", type=click.Path(file_okay=False), default=None, help="Where servers are installed.")
@click.option("--state-dir", type=click.Path(file_okay=False), default=None, help="Registry and history directory.")
@click.option("--user/--system", "systemd_user", default=None, help="systemctl --user or system units.")
@click.option("--service-user", default=None, help="Account system units run as.")
@click.option("--bootstrap-steamcmd", is_flag=True, help="Download and initialise SteamCMD.")
@click.option(
    "--steamcmd-dir",
    type=click.Path(file_okay=False),
    default="~/steamcmd",
    show_default=True,
    help="Where --bootstrap-steamcmd puts SteamCMD.",
)
@click.option("--force", is_flag=True, help="Overwrite an existing config file without asking.")
@click.option("--no-input", is_flag=True, help="Never prompt; use flags and defaults.")
@click.pass_context
def init(
    ctx: click.Context,
    steamcmd_path: str | None,
    install_root: str | None,
    state_dir: str | None,
    systemd_user: bool | None,
    service_user: str | None,
    bootstrap_steamcmd: bool,
    steamcmd_dir: str,
    force: bool,
    no_input: bool,
) -> None:
    """Write config.yml for this host."""
    from steamserv.adapters.steam.bootstrap import install_steamcmd
    from steamserv.core.config.loader import (
        Settings,
        find_config_file,
        load_settings,
        save_settings,
    )
    from steamserv.core.errors import SteamservError

    path = find_config_file(ctx.obj.get("config_path"))
    if path.exists() and not force:
        if no_input:
            fail(f"{path} already exists (use --force to overwrite)")
        click.confirm(f"{path} exists. Overwrite?", abort=True)

    try:
        settings = load_settings(path)
    except SteamservError as e:
        click.secho(f"⚠️  Ignoring invalid {path}: {e}", fg="yellow")
        settings = Settings().expanded()

    def ask(value, prompt: str, current):
        if value is not None or no_input:
            return current if value is None else value
        return click.prompt(prompt, default=str(current))

    updates: dict = {
        "install_root": Path(ask(install_root, "Install servers under", settings.install_root)),
        "state_dir": Path(ask(state_dir, "State directory", settings.state_dir)),
    }
    if systemd_user is None and not no_input:
        systemd_user = click.confirm("Use per-user systemd units (systemctl --user)?", default=settings.systemd_user)
    updates["systemd_user"] = settings.systemd_user if systemd_user is None else systemd_user

    if not updates["systemd_user"]:
        updates["service_user"] = ask(service_user, "Run system units as user (empty for root)", settings.service_user)

    if not bootstrap_steamcmd and steamcmd_path is None and not no_input:
        bootstrap_steamcmd = click.confirm("Download SteamCMD now?", default=False)

    if bootstrap_steamcmd:
        target = Path(steamcmd_dir).expanduser()
        click.secho(f"⬇️  Downloading SteamCMD into {target}…", fg="cyan")
        try:
            script = install_steamcmd(target)
        except SteamservError as e:
            fail(f"config init failed [{e.kind}]: {e}", detail=getattr(e, "detail", ""))
        updates["steamcmd_path"] = str(script)
        click.secho(f"✅ SteamCMD ready: {script}", fg="green")
    else:
        updates["steamcmd_path"] = ask(steamcmd_path, "SteamCMD executable", settings.steamcmd_path)

    settings = settings.model_copy(update=updates).expanded()
    try:
        written = save_settings(settings, path)
    except SteamservError as e:
        fail(f"config init failed [{e.kind}]: {e}")

    click.secho(f"✅ Configuration written to {written}", fg="green", bold=True)


@config.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show(ctx: click.Context, as_json: bool) -> None:
    """Show the effective settings and tool availability."""
    from steamserv.core.config.loader import find_config_file, load_settings
    from steamserv.core.context import build_adapters
    from steamserv.core.errors import SteamservError

    path = find_config_file(ctx.obj.get("config_path"))
    try:
        settings = load_settings(path)
    except SteamservError as e:
        fail(f"[{e.kind}] {e}", as_json=as_json, kind=e.kind)

    tools = build_adapters(settings).adapter_status()

    if as_json:
        click.echo(json.dumps({
            "config_file": str(path),
            "exists": path.is_file(),
            "settings": settings.model_dump(mode="json"),
            "unit_dir": str(settings.effective_unit_dir),
            "adapters": tools,
        }, indent=2))
        return

    source = str(path) if path.is_file() else f"{path} (not created; defaults)"
    click.secho(f"⚙️  {source}", fg="cyan", bold=True)
    for key, value in settings.model_dump(mode="json").items():
        click.echo(f"   {key:<14} {value}")
    click.echo(f"   {'unit dir':<14} {settings.effective_unit_dir}")
    click.echo()
    for name, info in tools.items():
        icon = "✅" if info["available"] else "❌"
        click.echo(f"   {icon} {name}")
