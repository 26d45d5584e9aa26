"""
Interactive prompt flow — turn flags plus answers into a resolved request.

Flags win. Anything missing is asked for, unless ``--no-input`` is set,
in which case a missing required value is a usage error. Either way the
result is the same InstallRequest / UpdateRequest, so the lifecycle
controller never knows which path produced it.
"""

from __future__ import annotations

import logging
import re

import click

from steamserv.core.errors import NotFoundError
from steamserv.core.models.catalog import CatalogEntry
from steamserv.core.models.request import (
    ANONYMOUS_USER,
    Credentials,
    InstallRequest,
    UpdateRequest,
)
from steamserv.core.models.server import ServerRecord, is_valid_server_name
from steamserv.core.services.catalog import CatalogSource

logger = logging.getLogger(__name__)

_SUFFIXES = re.compile(r"\b(dedicated server|dedicated|server)\b", re.IGNORECASE)


def suggest_server_name(entry: CatalogEntry | None, app_id: int) -> str:
    """A folder-safe default name derived from the catalog title."""
    if entry is None:
        return f"app-{app_id}"
    base = _SUFFIXES.sub("", entry.name)
    slug = re.sub(r"[^a-z0-9]+", "-", base.lower()).strip("-")
    return slug[:64] or f"app-{app_id}"


def _check_name(value: str) -> str:
    value = value.strip()
    if not is_valid_server_name(value):
        raise click.BadParameter(
            "use 1-64 letters, digits, '.', '_' or '-', starting with a letter or digit",
            param_hint="server name",
        )
    return value


def _pick(entries: list[CatalogEntry], query: str) -> CatalogEntry:
    click.secho(f"'{query}' matches {len(entries)} titles:", fg="yellow")
    shown = entries[:20]
    for i, entry in enumerate(shown, start=1):
        click.echo(f"   {i:>2}. {entry.name}  (app {entry.app_id})")
    choice = click.prompt("Choose", type=click.IntRange(1, len(shown)))
    return shown[choice - 1]


def resolve_app(
    catalog: CatalogSource,
    app: str | None,
    no_input: bool,
) -> tuple[int, CatalogEntry | None]:
    """App id and catalog entry for an id or title.

    A numeric id not in the catalog is accepted as-is.
    """
    while True:
        if app is None:
            if no_input:
                raise click.UsageError("Missing --appid (an app id or a title).")
            app = click.prompt("Game (app id or title)").strip()

        if app.isdigit():
            app_id = int(app)
            return app_id, catalog.lookup(app_id)

        candidates = catalog.find(app)
        if len(candidates) == 1:
            return candidates[0].app_id, candidates[0]
        if candidates and not no_input:
            entry = _pick(candidates, app)
            return entry.app_id, entry

        try:
            catalog.resolve(app)
        except NotFoundError as e:
            if no_input:
                raise click.BadParameter(str(e), param_hint="--appid") from e
            click.secho(str(e), fg="yellow")
        app = None


def resolve_credentials(
    username: str | None,
    password: str | None,
    no_input: bool,
    entry: CatalogEntry | None = None,
    default_username: str = ANONYMOUS_USER,
) -> Credentials:
    """SteamCMD login from flags, falling back to prompts."""
    if username is None:
        needs_account = entry is not None and not entry.anonymous
        if no_input:
            username = default_username
        elif needs_account or default_username != ANONYMOUS_USER:
            username = click.prompt("Steam username", default=default_username)
        else:
            username = ANONYMOUS_USER

    creds = Credentials(username=username.strip() or ANONYMOUS_USER)
    if creds.anonymous:
        return creds

    if password is None and not no_input:
        password = click.prompt(
            f"Password for {creds.username} (empty to use a cached login)",
            default="",
            hide_input=True,
            show_default=False,
        )
    return Credentials(username=creds.username, password=password or "")


def resolve_install_request(
    catalog: CatalogSource,
    app: str | None,
    server_name: str | None,
    username: str | None,
    password: str | None,
    auto_update: bool | None,
    launch_command: str | None,
    validate_files: bool,
    no_input: bool,
) -> InstallRequest:
    """Collect every install value from flags or prompts."""
    app_id, entry = resolve_app(catalog, app, no_input)
    if not no_input:
        if entry is not None:
            click.echo(f"🎮 {entry.name} (app {app_id})")
        else:
            click.secho(f"⚠️  App {app_id} is not in the catalog", fg="yellow")

    if server_name is None:
        if no_input:
            raise click.UsageError("Missing --server-name.")
        server_name = click.prompt(
            "Server name",
            default=suggest_server_name(entry, app_id),
            value_proc=_check_name,
        )
    else:
        server_name = _check_name(server_name)

    credentials = resolve_credentials(username, password, no_input, entry=entry)

    if auto_update is None:
        auto_update = False if no_input else click.confirm("Update automatically with 'update --all'?", default=False)

    if launch_command is None and not no_input and not (entry and entry.launch_command):
        launch_command = click.prompt(
            "Launch command (relative to the install directory)",
            default="./start.sh",
        )

    return InstallRequest(
        app_id=app_id,
        name=server_name,
        credentials=credentials,
        auto_update=auto_update,
        launch_command=launch_command or "",
        validate_files=validate_files,
    )


def choose_server(records: list[ServerRecord], name: str | None, no_input: bool, verb: str) -> str:
    """Server name from an argument or a numbered prompt."""
    if name is not None:
        return name
    if no_input:
        raise click.UsageError(f"Missing server name to {verb}.")
    if not records:
        raise click.UsageError(f"No servers to {verb}.")

    for i, record in enumerate(records, start=1):
        click.echo(f"   {i:>2}. {record.name}  ({record.label}, {record.status})")
    choice = click.prompt(f"Server to {verb}", type=click.IntRange(1, len(records)))
    return records[choice - 1].name


def resolve_update_request(
    record: ServerRecord,
    username: str | None,
    password: str | None,
    validate_files: bool,
    no_input: bool,
) -> UpdateRequest:
    """Update values; the stored owner is the default login."""
    credentials = resolve_credentials(
        username,
        password,
        no_input,
        default_username=record.owner_username or ANONYMOUS_USER,
    )
    return UpdateRequest(name=record.name, credentials=credentials, validate_files=validate_files)
