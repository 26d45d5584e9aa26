"""
SteamCMD adapter — download, update and validate dedicated server files.

Runs ``steamcmd +force_install_dir <dir> +login <user> +app_update <id>
validate +quit`` and streams its output line by line to a callback, so
a multi-minute download is visible to the operator while it happens.

SteamCMD sometimes exits 0 after printing ``ERROR!``; both a non-zero
exit and an ``ERROR!`` line count as failure.

Action params:
    app_id (int): Steam app id.
    install_dir (str): Destination directory (created if missing).
    username (str): Login name, "anonymous" for anonymous titles.
    password (str): Account password (never logged).
    validate (bool): Verify existing files (default: True).
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from collections import deque
from collections.abc import Callable
from pathlib import Path

from steamserv.adapters.base import Adapter, ExecutionContext
from steamserv.core.models.action import Receipt

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], None]

_TAIL_LINES = 30
_ERROR_MARKER = "ERROR!"
_REDACTED = "********"


def build_command(
    steamcmd_path: str,
    app_id: int,
    install_dir: str,
    username: str = "anonymous",
    password: str = "",
    validate: bool = True,
) -> list[str]:
    """SteamCMD argument list. force_install_dir must come before login."""
    cmd = [steamcmd_path, "+force_install_dir", install_dir, "+login", username or "anonymous"]
    if password:
        cmd.append(password)
    cmd += ["+app_update", str(app_id)]
    if validate:
        cmd.append("validate")
    cmd.append("+quit")
    return cmd


def redact(cmd: list[str], password: str) -> str:
    """Printable command line with the password masked."""
    if not password:
        return " ".join(cmd)
    return " ".join(_REDACTED if part == password else part for part in cmd)


class SteamCmdAdapter(Adapter):
    """Install and update game server files through SteamCMD."""

    def __init__(
        self,
        steamcmd_path: str = "steamcmd",
        on_output: OutputCallback | None = None,
    ):
        self._steamcmd_path = steamcmd_path
        self._on_output = on_output

    @property
    def name(self) -> str:
        return "steamcmd"

    def _resolve_executable(self) -> str | None:
        if "/" in self._steamcmd_path:
            path = Path(self._steamcmd_path)
            return str(path) if path.is_file() else None
        return shutil.which(self._steamcmd_path)

    def is_available(self) -> bool:
        return self._resolve_executable() is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if context.params.get("app_id") is None:
            return False, "Missing required param: 'app_id'"
        if not context.params.get("install_dir"):
            return False, "Missing required param: 'install_dir'"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.params
        app_id = int(params["app_id"])
        install_dir = str(params["install_dir"])
        username = params.get("username") or "anonymous"
        password = params.get("password") or ""
        action_id = context.action.id

        executable = self._resolve_executable()
        if executable is None:
            return Receipt.failure(
                adapter=self.name,
                action_id=action_id,
                error=f"SteamCMD not found: {self._steamcmd_path}. Run 'steamserv config init'.",
            )

        try:
            Path(install_dir).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=action_id,
                error=f"Cannot create install directory {install_dir}: {e}",
            )

        cmd = build_command(
            executable,
            app_id,
            install_dir,
            username=username,
            password=password,
            validate=params.get("validate", True),
        )
        printable = redact(cmd, password)
        logger.info("Running %s", printable)

        start = time.monotonic()
        tail: deque[str] = deque(maxlen=_TAIL_LINES)
        error_lines: list[str] = []

        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
            if proc.stdout:
                for line in proc.stdout:
                    stripped = line.rstrip()
                    if password:
                        stripped = stripped.replace(password, _REDACTED)
                    tail.append(stripped)
                    if _ERROR_MARKER in stripped:
                        error_lines.append(stripped.strip())
                    if self._on_output:
                        self._on_output(stripped)
            proc.wait()
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=action_id,
                error=f"Could not run SteamCMD: {e}",
                metadata={"command": printable},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output_tail = "\n".join(tail)
        metadata = {"command": printable, "install_path": install_dir, "app_id": app_id}

        if proc.returncode != 0:
            if proc.returncode < 0:
                reason = f"SteamCMD was killed by signal {-proc.returncode}"
            else:
                reason = f"SteamCMD exited with code {proc.returncode}"
            return Receipt.failure(
                adapter=self.name,
                action_id=action_id,
                error=reason,
                output=output_tail,
                return_code=proc.returncode,
                duration_ms=elapsed_ms,
                metadata=metadata,
            )

        if error_lines:
            return Receipt.failure(
                adapter=self.name,
                action_id=action_id,
                error=error_lines[-1],
                output=output_tail,
                return_code=proc.returncode,
                duration_ms=elapsed_ms,
                metadata=metadata,
            )

        return Receipt.success(
            adapter=self.name,
            action_id=action_id,
            output=output_tail,
            return_code=0,
            duration_ms=elapsed_ms,
            metadata=metadata,
        )
