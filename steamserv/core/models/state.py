"""
RegistryState — the serialized server registry.

This is the single document behind ``servers.json``. It is loaded on
every invocation, mutated only through the server registry, and written
back atomically.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from steamserv.core.models.server import ServerRecord


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class RegistryState(BaseModel):
    """Root state model — serialized to servers.json."""

    # ── Schema ───────────────────────────────────────────────────
    schema_version: int = 1

    # ── Timestamps ───────────────────────────────────────────────
    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    # ── Records (active set only) ────────────────────────────────
    servers: dict[str, ServerRecord] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()
