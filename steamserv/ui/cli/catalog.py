"""
CLI commands for the game catalog.

Thin wrappers over ``steamserv.core.services.catalog``.
"""

from __future__ import annotations

import json
import sys

import click

from steamserv.ui.cli.helpers import fail, open_services


@click.group()
def catalog() -> None:
    """Catalog — search installable dedicated servers, refresh the listing."""


@catalog.command()
@click.option("--url", default=None, help="Listing URL (default: catalog_url from config).")
@click.option("--timeout", default=30, show_default=True, help="Fetch timeout in seconds.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def refresh(ctx: click.Context, url: str | None, timeout: int, as_json: bool) -> None:
    """Download the remote listing into the local cache."""
    from steamserv.core.errors import SteamservError

    services = open_services(ctx, as_json=as_json, reconcile=False)
    try:
        cache = services.catalog.refresh(url=url, timeout=timeout)
    except SteamservError as e:
        fail(f"catalog refresh failed [{e.kind}]: {e}", as_json=as_json, kind=e.kind)

    if as_json:
        click.echo(json.dumps({
            "source": cache.source,
            "last_update": cache.last_update,
            "entries": len(cache.entries),
            "cache_path": str(services.catalog.cache_path),
        }, indent=2))
        return

    click.secho(f"✅ Catalog refreshed: {len(cache.entries)} server titles", fg="green", bold=True)
    click.echo(f"   Source: {cache.source}")
    click.echo(f"   Cache:  {services.catalog.cache_path}")


@catalog.command()
@click.argument("text", required=False)
@click.option("--limit", "-n", default=50, show_default=True, help="Maximum results (0 = all).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def search(ctx: click.Context, text: str | None, limit: int, as_json: bool) -> None:
    """List installable titles whose name contains TEXT."""
    from steamserv.core.use_cases.servers import list_available

    services = open_services(ctx, as_json=as_json, reconcile=False)
    result = list_available(services, text, limit=limit)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not result.entries:
        click.secho(f"No titles match '{text}'.", fg="yellow")
        sys.exit(1)

    click.secho(f"📚 Titles ({len(result.entries)}):", fg="cyan", bold=True)
    for entry in result.entries:
        login = "" if entry.anonymous else "  🔑 account"
        click.echo(f"   {entry.app_id:>8}  {entry.name}{login}")
