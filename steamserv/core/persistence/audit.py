"""
Operation history — append-only lifecycle log.

Every install, update, uninstall, start, stop and restart appends one
line to an NDJSON file. Entries are never modified or deleted; the
ledger is for the operator, the registry never reads it back.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_FILE = "history.ndjson"


class HistoryEntry(BaseModel):
    """A single history entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    operation: str = ""            # install, update, uninstall, start, ...
    server: str = ""
    app_id: int | None = None

    status: str = ""               # ok, failed
    error_kind: str | None = None
    error: str | None = None
    duration_ms: int = 0

    context: dict[str, Any] = Field(default_factory=dict)


class HistoryWriter:
    """Append-only history ledger writer."""

    def __init__(self, path: Path | None = None, state_dir: Path | None = None):
        if path is not None:
            self._path = path
        elif state_dir is not None:
            self._path = state_dir / DEFAULT_HISTORY_FILE
        else:
            self._path = Path(DEFAULT_HISTORY_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: HistoryEntry) -> None:
        """Append an entry. A ledger write failure never fails the operation."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("History entry written: %s/%s", entry.operation, entry.server)
        except OSError as e:
            logger.error("Failed to write history entry: %s", e)

    def read_all(self) -> list[HistoryEntry]:
        """Read all entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(HistoryEntry.model_validate(json.loads(line)))
                    except ValueError as e:
                        logger.warning("Skipping corrupt history entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read history ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20, server: str | None = None) -> list[HistoryEntry]:
        """Read the most recent N entries, optionally for one server."""
        entries = self.read_all()
        if server:
            entries = [e for e in entries if e.server == server]
        return entries[-n:] if n > 0 else []
