"""
Adapter base — the contract between the lifecycle controller and tools.

The controller never shells out itself. SteamCMD and systemctl sit
behind adapters that take an Action and hand back a Receipt, so the
core only ever sees structured results, never raw process output.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from steamserv.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action."""

    action: Action
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def server(self) -> str | None:
        return self.action.for_server


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'steamcmd', 'systemd')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the underlying tool exists. Fast, never raises."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt. MUST never raise."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
