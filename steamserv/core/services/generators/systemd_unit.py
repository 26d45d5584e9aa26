"""
systemd unit generator — ServerRecord → unit file text.

Pure: the output depends only on the record and the render options, so
re-generating after an update yields byte-identical text unless the
record itself changed. No timestamps, no environment lookups.
"""

from __future__ import annotations

import posixpath
import re
import shlex
from pathlib import Path

from steamserv.core.models.server import ServerRecord
from steamserv.core.models.template import GeneratedFile

DEFAULT_LAUNCH_COMMAND = "./start.sh"

_UNIT_TEMPLATE = """\
[Unit]
Description={description}
Wants=network-online.target
After=network-online.target

[Service]
Type=simple
{user_line}WorkingDirectory={working_dir}
ExecStart={exec_start}
Restart=on-failure
RestartSec=10
TimeoutStopSec=60
KillSignal=SIGINT

[Install]
WantedBy={wanted_by}
"""


_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]+")


def _escape(value: str) -> str:
    """Escape systemd specifiers (``%``) and flatten control characters.

    The result is always a single line.
    """
    return _CONTROL_CHARS.sub(" ", value).replace("%", "%%")


def resolve_exec_start(launch_command: str, install_path: str) -> str:
    """Absolute ExecStart line for a launch command.

    A relative executable (``./srcds_run``, ``PalServer.sh``) resolves
    against the install directory; arguments pass through unchanged.
    """
    parts = shlex.split(launch_command or DEFAULT_LAUNCH_COMMAND)
    if not parts:
        parts = shlex.split(DEFAULT_LAUNCH_COMMAND)
    executable = parts[0]
    if not posixpath.isabs(executable):
        executable = posixpath.normpath(posixpath.join(install_path, executable))
    return shlex.join([executable, *parts[1:]])


def render_unit(
    record: ServerRecord,
    service_user: str = "",
    user_mode: bool = False,
) -> str:
    """Render the unit file text for an installed server.

    Args:
        record: The server record; must have an install_path.
        service_user: Account the server runs as (system units only).
        user_mode: Render for ``systemctl --user``.

    Raises:
        ValueError: If the record has no install_path yet.
    """
    if not record.install_path:
        raise ValueError(f"Server '{record.name}' has no install path; install it first")

    description = f"{record.label} dedicated server ({record.name}, app {record.app_id})"
    user_line = f"User={service_user}\n" if service_user and not user_mode else ""

    return _UNIT_TEMPLATE.format(
        description=_escape(description),
        user_line=user_line,
        working_dir=record.install_path,
        exec_start=_escape(resolve_exec_start(record.launch_command, record.install_path)),
        wanted_by="default.target" if user_mode else "multi-user.target",
    )


def generate(
    record: ServerRecord,
    unit_dir: Path,
    service_user: str = "",
    user_mode: bool = False,
) -> GeneratedFile:
    """Unit file for ``record`` placed in ``unit_dir``."""
    return GeneratedFile(
        path=str(unit_dir / record.unit_name),
        content=render_unit(record, service_user=service_user, user_mode=user_mode),
        reason=f"systemd unit for {record.name}",
    )
