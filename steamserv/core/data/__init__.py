"""
Bundled data — static catalogs shipped with the package.

Loads ``steamserv/core/data/catalogs/*.json`` on first access and
caches the result for the lifetime of the registry instance.
"""

from __future__ import annotations

import json
import logging
from functools import cached_property
from pathlib import Path

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent


def _load_json(relative_path: str) -> list | dict:
    """Load a JSON file relative to the data directory."""
    path = _DATA_DIR / relative_path
    if not path.exists():
        logger.warning("Data file not found: %s", path)
        return []
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class DataRegistry:
    """Lazily loaded static catalogs."""

    @cached_property
    def dedicated_servers(self) -> list[dict]:
        """Well-known dedicated server titles (app id, name, launcher hint)."""
        data = _load_json("catalogs/dedicated_servers.json")
        logger.debug("Loaded %d bundled dedicated server titles", len(data))
        return data
