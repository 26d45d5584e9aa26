"""
systemd adapter — delegate run state to systemctl.

steamserv never keeps a server process alive itself. It writes unit
files and asks systemd to enable, start, stop or restart them.

Action ids: daemon-reload, enable, disable, start, stop, restart,
is-active.

Action params:
    unit (str): Unit name (not needed for daemon-reload).
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time

from steamserv.adapters.base import Adapter, ExecutionContext
from steamserv.core.models.action import Receipt

logger = logging.getLogger(__name__)

UNIT_OPERATIONS = frozenset({"enable", "disable", "start", "stop", "restart", "is-active"})
OPERATIONS = UNIT_OPERATIONS | {"daemon-reload"}


class SystemdAdapter(Adapter):
    """Run systemctl against steamserv units."""

    def __init__(self, user_mode: bool = False, timeout: int = 120):
        self._user_mode = user_mode
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "systemd"

    def is_available(self) -> bool:
        return shutil.which("systemctl") is not None

    def build_command(self, operation: str, unit: str | None = None) -> list[str]:
        cmd = ["systemctl"]
        if self._user_mode:
            cmd.append("--user")
        cmd.append(operation)
        if operation in UNIT_OPERATIONS and unit:
            cmd.append(unit)
        return cmd

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.action.id
        if operation not in OPERATIONS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(OPERATIONS))}"
        if operation in UNIT_OPERATIONS and not context.params.get("unit"):
            return False, "Missing required param: 'unit'"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.action.id
        unit = context.params.get("unit")
        cmd = self.build_command(operation, unit)

        logger.debug("Executing: %s", " ".join(cmd))
        start = time.monotonic()

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=operation,
                error=f"systemctl {operation} timed out after {self._timeout}s",
                metadata={"unit": unit},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=operation,
                error=f"Could not run systemctl: {e}",
                metadata={"unit": unit},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = result.stdout.strip()
        stderr = result.stderr.strip()

        # is-active answers through its exit code; non-zero means "not active"
        if operation == "is-active":
            return Receipt.success(
                adapter=self.name,
                action_id=operation,
                output=output,
                return_code=result.returncode,
                duration_ms=elapsed_ms,
                metadata={"unit": unit, "active": result.returncode == 0, "state": output},
            )

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=operation,
                output=output,
                return_code=0,
                duration_ms=elapsed_ms,
                metadata={"unit": unit},
            )

        return Receipt.failure(
            adapter=self.name,
            action_id=operation,
            error=stderr or f"systemctl {operation} exited with code {result.returncode}",
            output=output,
            return_code=result.returncode,
            duration_ms=elapsed_ms,
            metadata={"unit": unit},
        )
