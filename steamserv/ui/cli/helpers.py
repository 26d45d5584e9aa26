"""
Shared CLI plumbing — context setup, output streaming, error exits.
"""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, NoReturn

import click

if TYPE_CHECKING:
    from steamserv.core.context import ServiceContext

STATUS_ICONS = {
    "pending": "⏳",
    "installed": "📦",
    "updating": "🔄",
    "stopped": "⏹️ ",
    "running": "🟢",
    "failed": "❌",
    "uninstalled": "🗑️ ",
}


def stream_line(line: str) -> None:
    """Echo one line of SteamCMD output."""
    click.echo(click.style("   │ ", dim=True) + line)


def fail(message: str, detail: str = "", as_json: bool = False, kind: str | None = None) -> NoReturn:
    """Print an error and exit 1."""
    if as_json:
        payload: dict = {"error": message}
        if kind:
            payload["error_kind"] = kind
        if detail:
            payload["detail"] = detail
        click.echo(json.dumps(payload, indent=2))
    else:
        click.secho(f"❌ {message}", fg="red")
        if detail:
            for line in detail.splitlines():
                click.secho(f"   │ {line}", dim=True)
    sys.exit(1)


def open_services(
    ctx: click.Context,
    as_json: bool = False,
    stream: bool = False,
    reconcile: bool = True,
) -> ServiceContext:
    """Build the service context for this invocation or exit on error.

    Args:
        stream: Echo SteamCMD output as it arrives.
        reconcile: Reconcile the registry against the host first.
    """
    from steamserv.core.context import build_context
    from steamserv.core.errors import SteamservError

    on_output = stream_line if stream and not as_json and not ctx.obj.get("quiet") else None
    try:
        return build_context(
            config_path=ctx.obj.get("config_path"),
            mock_mode=ctx.obj.get("mock", False),
            on_output=on_output,
            reconcile=reconcile,
        )
    except SteamservError as e:
        fail(f"[{e.kind}] {e}", as_json=as_json, kind=e.kind)


def status_label(status: str) -> str:
    return f"{STATUS_ICONS.get(status, '•')} {status}"
