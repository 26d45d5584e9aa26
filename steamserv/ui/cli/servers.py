"""
CLI commands for server lifecycle.

Thin wrappers over ``steamserv.core.use_cases.servers``: resolve the
request (flags or prompts), call the use case, print the result.
"""

from __future__ import annotations

import json
import sys

import click

from steamserv.ui.cli.helpers import fail, open_services, status_label

_json_option = click.option(
    "--json-output", "--json", "as_json", is_flag=True, help="Output as JSON."
)
_no_input_option = click.option(
    "--no-input", is_flag=True, help="Never prompt; missing values are errors."
)


def _report(result, as_json: bool, success: str) -> None:
    """Print an OperationResult and exit 1 on failure."""
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return
    if result.error:
        fail(result.error, detail=result.detail)
    click.secho(f"✅ {success}", fg="green", bold=True)
    if result.record is not None:
        click.echo(f"   Status: {status_label(result.record.status.value)}")


# ── install / update / uninstall ────────────────────────────────


@click.command()
@click.option("--appid", "app", default=None, help="Steam app id or title.")
@click.option("--server-name", default=None, help="Unique name (folder and unit name).")
@click.option("--username", default=None, help="Steam account (default: anonymous).")
@click.option(
    "--password",
    default=None,
    envvar="STEAMSERV_STEAM_PASSWORD",
    help="Steam password (or $STEAMSERV_STEAM_PASSWORD).",
)
@click.option("--auto-update/--no-auto-update", default=None, help="Include in 'update --all'.")
@click.option("--launch", "launch_command", default=None, help="Server command for ExecStart.")
@click.option("--no-validate", is_flag=True, help="Skip SteamCMD file validation.")
@_no_input_option
@_json_option
@click.pass_context
def install(
    ctx: click.Context,
    app: str | None,
    server_name: str | None,
    username: str | None,
    password: str | None,
    auto_update: bool | None,
    launch_command: str | None,
    no_validate: bool,
    no_input: bool,
    as_json: bool,
) -> None:
    """Download a dedicated server and register it.

    Examples:

        steamserv install --appid 896660 --server-name valheim

        steamserv install --appid "Palworld" --server-name pal --no-input
    """
    from steamserv.core.use_cases.servers import install_server
    from steamserv.ui.cli.prompts import resolve_install_request

    services = open_services(ctx, as_json=as_json, stream=True)
    request = resolve_install_request(
        services.catalog,
        app,
        server_name,
        username,
        password,
        auto_update,
        launch_command,
        validate_files=not no_validate,
        no_input=no_input,
    )

    if not as_json:
        click.secho(f"⬇️  Installing {request.name} (app {request.app_id})…", fg="cyan")
    result = install_server(services, request)
    _report(result, as_json, f"Installed {request.name}")
    if not as_json and result.record is not None:
        click.echo(f"   Path: {result.record.install_path}")
        click.echo(f"   Unit: {result.record.unit_name}")


@click.command()
@click.argument("name", required=False)
@click.option("--all", "update_all", is_flag=True, help="Update every auto-update server.")
@click.option("--username", default=None, help="Steam account (default: the installing account).")
@click.option("--password", default=None, envvar="STEAMSERV_STEAM_PASSWORD", help="Steam password.")
@click.option("--no-validate", is_flag=True, help="Skip SteamCMD file validation.")
@_no_input_option
@_json_option
@click.pass_context
def update(
    ctx: click.Context,
    name: str | None,
    update_all: bool,
    username: str | None,
    password: str | None,
    no_validate: bool,
    no_input: bool,
    as_json: bool,
) -> None:
    """Update a server in place (a running server is restarted)."""
    from steamserv.core.errors import NotFoundError
    from steamserv.core.models.request import Credentials
    from steamserv.core.use_cases.servers import update_all_servers, update_server
    from steamserv.ui.cli.prompts import choose_server, resolve_update_request

    services = open_services(ctx, as_json=as_json, stream=True)

    if update_all:
        if name:
            raise click.UsageError("Give a server name or --all, not both.")
        creds = Credentials(username=username, password=password or "") if username else None
        result = update_all_servers(services, creds)
        failed = [o for o in result.outcomes if not o.ok]

        if as_json:
            click.echo(json.dumps(result.to_dict(), indent=2))
            if result.error or failed:
                sys.exit(1)
            return

        if result.error:
            fail(result.error)
        if not result.outcomes:
            click.secho("No servers have auto-update enabled.", fg="yellow")
        for outcome in result.outcomes:
            if outcome.ok:
                click.secho(f"   ✅ {outcome.name}", fg="green")
            else:
                click.secho(f"   ❌ {outcome.name}: [{outcome.error.kind}] {outcome.error.args[0]}", fg="red")
        if failed:
            sys.exit(1)
        return

    records = list(services.registry.list(installed_only=True))
    name = choose_server(records, name, no_input, "update")
    try:
        record = services.registry.get(name)
    except NotFoundError as e:
        fail(f"update '{name}' failed [{e.kind}]: {e}", as_json=as_json, kind=e.kind)

    request = resolve_update_request(record, username, password, not no_validate, no_input)
    if not as_json:
        click.secho(f"🔄 Updating {name} (app {record.app_id})…", fg="cyan")
    result = update_server(services, request)
    _report(result, as_json, f"Updated {name}")


@click.command()
@click.argument("name", required=False)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@_no_input_option
@_json_option
@click.pass_context
def uninstall(ctx: click.Context, name: str | None, yes: bool, no_input: bool, as_json: bool) -> None:
    """Remove a stopped server's files, unit file and record."""
    from steamserv.core.use_cases.servers import uninstall_server
    from steamserv.ui.cli.prompts import choose_server

    services = open_services(ctx, as_json=as_json)
    name = choose_server(list(services.registry.list()), name, no_input, "uninstall")

    if not (yes or no_input):
        click.confirm(f"Delete {name} and all of its files?", abort=True)

    result = uninstall_server(services, name)
    _report(result, as_json, f"Uninstalled {name}")


# ── run state ───────────────────────────────────────────────────


def _run_state(ctx: click.Context, operation: str, name: str | None, no_input: bool, as_json: bool) -> None:
    from steamserv.core.use_cases import servers as use_cases
    from steamserv.ui.cli.prompts import choose_server

    services = open_services(ctx, as_json=as_json)
    name = choose_server(list(services.registry.list(installed_only=True)), name, no_input, operation)
    fn = getattr(use_cases, f"{operation}_server")
    result = fn(services, name)
    past = {"start": "Started", "stop": "Stopped", "restart": "Restarted"}[operation]
    _report(result, as_json, f"{past} {name}")


@click.command()
@click.argument("name", required=False)
@_no_input_option
@_json_option
@click.pass_context
def start(ctx: click.Context, name: str | None, no_input: bool, as_json: bool) -> None:
    """Enable and start a server's systemd unit."""
    _run_state(ctx, "start", name, no_input, as_json)


@click.command()
@click.argument("name", required=False)
@_no_input_option
@_json_option
@click.pass_context
def stop(ctx: click.Context, name: str | None, no_input: bool, as_json: bool) -> None:
    """Stop a running server."""
    _run_state(ctx, "stop", name, no_input, as_json)


@click.command()
@click.argument("name", required=False)
@_no_input_option
@_json_option
@click.pass_context
def restart(ctx: click.Context, name: str | None, no_input: bool, as_json: bool) -> None:
    """Restart a running server (starts a stopped one)."""
    _run_state(ctx, "restart", name, no_input, as_json)


# ── queries ─────────────────────────────────────────────────────


@click.command("list")
@click.option("--filter", "filter_text", default=None, help="Substring of the server name.")
@click.option("--installed", is_flag=True, help="Only installed, stopped or running servers.")
@_json_option
@click.pass_context
def list_cmd(ctx: click.Context, filter_text: str | None, installed: bool, as_json: bool) -> None:
    """List managed servers."""
    from steamserv.core.use_cases.servers import list_servers

    services = open_services(ctx, as_json=as_json)
    result = list_servers(services, filter=filter_text, installed_only=installed)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        fail(result.error)

    if not result.servers:
        click.secho("No servers found.", fg="yellow")
        return

    click.secho(f"🎮 Servers ({len(result.servers)}):", fg="cyan", bold=True)
    for record in result.servers:
        auto = " 🔁" if record.auto_update else ""
        click.echo(
            f"   {status_label(record.status.value):<14} {record.name}{auto}"
            f"  [{record.app_id}] {record.label}"
        )
        if record.install_path:
            click.echo(f"      → {record.install_path}")
        if record.last_error:
            click.secho(f"      ⚠️  {record.last_error}", fg="yellow")


@click.command()
@click.argument("name")
@click.option("--write", is_flag=True, help="Write the unit file and reload systemd.")
@_json_option
@click.pass_context
def unit(ctx: click.Context, name: str, write: bool, as_json: bool) -> None:
    """Show (or rewrite) the systemd unit of a server."""
    from steamserv.core.use_cases.servers import render_unit

    services = open_services(ctx, as_json=as_json)
    result = render_unit(services, name, write=write)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        fail(result.error)

    click.secho(f"# {result.path}", dim=True)
    click.echo(result.content, nl=False)
    if write:
        click.secho(
            "✅ Unit file written" if result.written else "Unit file already up to date",
            fg="green",
        )


@click.command()
@click.option("-n", "count", default=20, show_default=True, help="Number of entries.")
@click.option("--server", default=None, help="Only entries for this server.")
@_json_option
@click.pass_context
def history(ctx: click.Context, count: int, server: str | None, as_json: bool) -> None:
    """Show recent lifecycle operations."""
    from steamserv.core.use_cases.servers import read_history

    services = open_services(ctx, as_json=as_json, reconcile=False)
    entries = read_history(services, n=count, server=server)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.secho("No history yet.", fg="yellow")
        return

    for entry in entries:
        icon = "✅" if entry.status == "ok" else "❌"
        target = f" {entry.server}" if entry.server else ""
        click.echo(f"   {icon} {entry.timestamp[:19]}  {entry.operation}{target}  ({entry.duration_ms}ms)")
        if entry.error:
            click.secho(f"      {entry.error}", fg="red")


@click.command()
@_json_option
@click.pass_context
def reconcile(ctx: click.Context, as_json: bool) -> None:
    """Mark servers whose files vanished or whose install died as failed."""
    from steamserv.core.use_cases.servers import reconcile_registry

    services = open_services(ctx, as_json=as_json)
    result = reconcile_registry(services)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        fail(result.error)

    if not result.changed:
        click.secho("✅ Registry matches the host", fg="green")
        return

    for record in result.changed:
        click.secho(f"   ❌ {record.name}: {record.last_error}", fg="yellow")
