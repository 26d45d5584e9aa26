"""
Catalog source — map titles and app ids to installable servers.

Two layers, merged by app id:
    1. the bundled listing shipped with the package
    2. a cached copy of the remote listing (``catalog.json``), refreshed
       on demand with ``steamserv catalog refresh``

Cached remote entries win over bundled ones, except that bundled
launch hints are kept when the remote listing has none.
"""

from __future__ import annotations

import json
import logging
import urllib.request
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from steamserv.core.data import DataRegistry
from steamserv.core.errors import AdapterFailureError, FilesystemError, NotFoundError
from steamserv.core.models.catalog import CatalogCache, CatalogEntry
from steamserv.core.persistence.state_file import atomic_write

logger = logging.getLogger(__name__)

DEFAULT_CACHE_FILE = "catalog.json"

_SERVER_MARKERS = ("dedicated server", "dedicated-server")


def default_cache_path(state_dir: Path) -> Path:
    return state_dir / DEFAULT_CACHE_FILE


def _is_server_title(name: str) -> bool:
    lowered = name.lower().strip()
    return any(marker in lowered for marker in _SERVER_MARKERS) or lowered.endswith(" server")


def parse_listing(data: Any) -> list[CatalogEntry]:
    """Parse a remote listing.

    Accepts the Steam Web API ``GetAppList`` shape
    (``{"applist": {"apps": [{"appid", "name"}]}}``), keeping only
    server titles, or a plain list of catalog entries.
    """
    if isinstance(data, dict) and "applist" in data:
        apps = data.get("applist", {}).get("apps", [])
        entries = []
        for app in apps:
            name = str(app.get("name", "")).strip()
            app_id = app.get("appid")
            if not name or app_id is None or not _is_server_title(name):
                continue
            entries.append(CatalogEntry(app_id=int(app_id), name=name))
        return entries

    if isinstance(data, list):
        try:
            return [CatalogEntry.model_validate(item) for item in data]
        except ValidationError as e:
            raise ValueError(f"Invalid catalog entry: {e}") from e

    raise ValueError(f"Unrecognised catalog format ({type(data).__name__})")


class CatalogSource:
    """Read-mostly view over the bundled and cached catalogs."""

    def __init__(
        self,
        cache_path: Path | None = None,
        url: str = "",
        data: DataRegistry | None = None,
    ):
        self._cache_path = cache_path
        self._url = url
        self._data = data or DataRegistry()
        self._entries: dict[int, CatalogEntry] | None = None

    @property
    def cache_path(self) -> Path | None:
        return self._cache_path

    # ── Loading ──────────────────────────────────────────────────

    def load_cache(self) -> CatalogCache | None:
        """The cached remote listing, or None if absent or unreadable."""
        if self._cache_path is None or not self._cache_path.is_file():
            return None
        try:
            return CatalogCache.model_validate_json(self._cache_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable catalog cache %s: %s", self._cache_path, e)
            return None

    def _load(self) -> dict[int, CatalogEntry]:
        if self._entries is not None:
            return self._entries

        entries: dict[int, CatalogEntry] = {}
        for item in self._data.dedicated_servers:
            try:
                entry = CatalogEntry.model_validate(item)
            except ValidationError as e:
                logger.warning("Skipping bundled catalog entry %r: %s", item, e)
                continue
            entries[entry.app_id] = entry

        cache = self.load_cache()
        if cache is not None:
            for entry in cache.entries:
                bundled = entries.get(entry.app_id)
                if bundled is not None and not entry.launch_command:
                    entry = entry.model_copy(update={"launch_command": bundled.launch_command})
                entries[entry.app_id] = entry

        self._entries = entries
        return entries

    # ── Queries ──────────────────────────────────────────────────

    def entries(self) -> list[CatalogEntry]:
        """All known titles, sorted by name."""
        return sorted(self._load().values(), key=lambda e: e.name.lower())

    def lookup(self, app_id: int) -> CatalogEntry | None:
        return self._load().get(app_id)

    def search(self, text: str | None = None) -> Iterator[CatalogEntry]:
        """Titles whose name contains ``text`` (case-insensitive)."""
        needle = (text or "").lower()
        for entry in self.entries():
            if needle in entry.name.lower():
                yield entry

    def find(self, query: str) -> list[CatalogEntry]:
        """Candidates for a free-form query: an app id or part of a title."""
        query = query.strip()
        if query.isdigit():
            entry = self.lookup(int(query))
            return [entry] if entry else []
        exact = [e for e in self.entries() if e.name.lower() == query.lower()]
        return exact or list(self.search(query))

    def resolve(self, query: str | int) -> CatalogEntry:
        """Exactly one catalog entry for an app id or title.

        Raises:
            NotFoundError: If nothing matches, or a title is ambiguous.
        """
        candidates = self.find(str(query))
        if len(candidates) == 1:
            return candidates[0]
        if not candidates:
            raise NotFoundError(f"No catalog entry matches '{query}'")
        names = ", ".join(f"{e.name} ({e.app_id})" for e in candidates[:5])
        raise NotFoundError(
            f"'{query}' matches {len(candidates)} titles ({names}); use the app id"
        )

    # ── Refresh ──────────────────────────────────────────────────

    def refresh(self, url: str | None = None, timeout: int = 30) -> CatalogCache:
        """Fetch the remote listing and replace the cache.

        Raises:
            AdapterFailureError: If the fetch or parse fails.
        """
        url = url or self._url
        if not url:
            raise AdapterFailureError("No catalog URL configured")
        if self._cache_path is None:
            raise AdapterFailureError("No catalog cache path configured")

        logger.info("Fetching catalog from %s", url)
        try:
            req = urllib.request.Request(url, headers={"User-Agent": "steamserv/1.0"})
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                data = json.loads(resp.read())
        except (OSError, ValueError) as e:
            raise AdapterFailureError(f"Failed to fetch catalog from {url}: {e}") from e

        try:
            entries = parse_listing(data)
        except ValueError as e:
            raise AdapterFailureError(f"Catalog from {url} is malformed: {e}") from e

        cache = CatalogCache(
            last_update=datetime.now(UTC).isoformat(),
            source=url,
            entries=entries,
        )
        try:
            atomic_write(self._cache_path, cache.model_dump_json(indent=2) + "\n")
        except OSError as e:
            raise FilesystemError(f"Cannot write catalog cache {self._cache_path}: {e}") from e
        self._entries = None
        logger.info("Catalog cache updated: %d titles", len(entries))
        return cache
