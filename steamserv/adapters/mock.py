"""
Mock adapter — universal test double for SteamCMD and systemd.

Succeeds by default. Individual action ids can be told to fail, and
``create_paths`` makes it create the install directory on app_update
so that a mocked install survives reconciliation.
"""

from __future__ import annotations

from pathlib import Path

from steamserv.adapters.base import Adapter, ExecutionContext
from steamserv.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter for tests and ``--mock`` runs."""

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
        create_paths: bool = True,
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._create_paths = create_paths
        self._responses: dict[str, Receipt] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_for(self, action_id: str) -> list[ExecutionContext]:
        """Calls made for one action id (e.g. 'start')."""
        return [c for c in self._call_log if c.action.id == action_id]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        """Set a custom response for a specific action ID."""
        self._responses[action_id] = receipt

    def set_failure(self, action_id: str, error: str = "Mock failure") -> None:
        """Configure a specific action to fail."""
        self._responses[action_id] = Receipt.failure(
            adapter=self._name,
            action_id=action_id,
            error=error,
            return_code=1,
        )

    def clear_response(self, action_id: str) -> None:
        self._responses.pop(action_id, None)

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)

        if context.action.id in self._responses:
            return self._responses[context.action.id]

        metadata: dict = {"mock": True}
        install_dir = context.params.get("install_dir")
        if install_dir:
            if self._create_paths:
                Path(install_dir).mkdir(parents=True, exist_ok=True)
            metadata["install_path"] = str(install_dir)

        return Receipt.success(
            adapter=self._name,
            action_id=context.action.id,
            output=self._default_output,
            return_code=0,
            metadata=metadata,
        )

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()
