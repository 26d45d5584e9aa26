"""
Tests for the catalog source — bundled listing, cache merge, refresh.
"""

import io
import json
from pathlib import Path

import pytest

from steamserv.core.data import DataRegistry
from steamserv.core.errors import AdapterFailureError, NotFoundError
from steamserv.core.models.catalog import CatalogCache, CatalogEntry
from steamserv.core.services import catalog as catalog_module
from steamserv.core.services.catalog import CatalogSource, default_cache_path, parse_listing


def _write_cache(path: Path, entries: list[CatalogEntry]) -> None:
    path.write_text(CatalogCache(source="test", entries=entries).model_dump_json())


class TestBundled:
    def test_bundled_titles_load(self):
        data = DataRegistry()
        assert len(data.dedicated_servers) >= 10
        assert all("app_id" in item for item in data.dedicated_servers)

    def test_lookup(self):
        entry = CatalogSource().lookup(730)
        assert entry.name == "Counter-Strike 2 Dedicated Server"
        assert entry.launch_command.startswith("./game/bin")

    def test_lookup_unknown(self):
        assert CatalogSource().lookup(1) is None

    def test_account_only_title(self):
        assert CatalogSource().lookup(233780).anonymous is False

    def test_entries_sorted(self):
        names = [e.name.lower() for e in CatalogSource().entries()]
        assert names == sorted(names)


class TestSearch:
    def test_case_insensitive(self):
        results = list(CatalogSource().search("VALHEIM"))
        assert [e.app_id for e in results] == [896660]

    def test_empty_text_lists_all(self):
        catalog = CatalogSource()
        assert len(list(catalog.search())) == len(catalog.entries())

    def test_no_match(self):
        assert list(CatalogSource().search("minesweeper")) == []

    def test_find_by_app_id(self):
        assert [e.app_id for e in CatalogSource().find("2394010")] == [2394010]

    def test_find_exact_title_wins(self):
        found = CatalogSource().find("valheim dedicated server")
        assert len(found) == 1

    def test_resolve_ambiguous(self):
        with pytest.raises(NotFoundError, match="use the app id"):
            CatalogSource().resolve("Counter-Strike")

    def test_resolve_missing(self):
        with pytest.raises(NotFoundError):
            CatalogSource().resolve("minesweeper")

    def test_resolve_by_id(self):
        assert CatalogSource().resolve(896660).name == "Valheim Dedicated Server"


class TestCache:
    def test_default_cache_path(self, tmp_path: Path):
        assert default_cache_path(tmp_path) == tmp_path / "catalog.json"

    def test_cache_overrides_bundled(self, tmp_path: Path):
        path = tmp_path / "catalog.json"
        _write_cache(path, [CatalogEntry(app_id=730, name="CS2 (remote)")])
        entry = CatalogSource(cache_path=path).lookup(730)
        assert entry.name == "CS2 (remote)"
        assert entry.launch_command.startswith("./game/bin")

    def test_cache_adds_titles(self, tmp_path: Path):
        path = tmp_path / "catalog.json"
        _write_cache(path, [CatalogEntry(app_id=555, name="Indie Dedicated Server")])
        assert CatalogSource(cache_path=path).lookup(555).name == "Indie Dedicated Server"

    def test_unreadable_cache_ignored(self, tmp_path: Path):
        path = tmp_path / "catalog.json"
        path.write_text("{nope")
        catalog = CatalogSource(cache_path=path)
        assert catalog.load_cache() is None
        assert catalog.lookup(730) is not None


class TestParseListing:
    def test_steam_applist_keeps_servers(self):
        data = {"applist": {"apps": [
            {"appid": 1, "name": "Some Game"},
            {"appid": 2, "name": "Some Game Dedicated Server"},
            {"appid": 3, "name": "Other Server"},
            {"appid": 4, "name": ""},
        ]}}
        assert [e.app_id for e in parse_listing(data)] == [2, 3]

    def test_plain_list(self):
        entries = parse_listing([{"app_id": 9, "name": "Nine", "launch_command": "./run"}])
        assert entries[0].launch_command == "./run"

    def test_invalid_entry(self):
        with pytest.raises(ValueError):
            parse_listing([{"name": "no id"}])

    def test_unknown_shape(self):
        with pytest.raises(ValueError):
            parse_listing("text")


class TestRefresh:
    def _serve(self, monkeypatch, payload: bytes):
        monkeypatch.setattr(
            catalog_module.urllib.request,
            "urlopen",
            lambda req, timeout: io.BytesIO(payload),
        )

    def test_refresh_writes_cache(self, tmp_path: Path, monkeypatch):
        payload = json.dumps({"applist": {"apps": [{"appid": 777, "name": "New Dedicated Server"}]}})
        self._serve(monkeypatch, payload.encode())

        path = tmp_path / "catalog.json"
        catalog = CatalogSource(cache_path=path, url="https://example.invalid/apps.json")
        assert catalog.lookup(777) is None

        cache = catalog.refresh()
        assert cache.source == "https://example.invalid/apps.json"
        assert cache.last_update is not None
        assert path.is_file()
        assert catalog.lookup(777).name == "New Dedicated Server"

    def test_refresh_without_url(self, tmp_path: Path):
        with pytest.raises(AdapterFailureError, match="No catalog URL"):
            CatalogSource(cache_path=tmp_path / "c.json").refresh()

    def test_refresh_network_failure_keeps_cache(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "catalog.json"
        _write_cache(path, [CatalogEntry(app_id=555, name="Cached Server")])

        def offline(req, timeout):
            raise OSError("unreachable")

        monkeypatch.setattr(catalog_module.urllib.request, "urlopen", offline)
        catalog = CatalogSource(cache_path=path, url="https://example.invalid")
        with pytest.raises(AdapterFailureError):
            catalog.refresh()
        assert catalog.lookup(555).name == "Cached Server"

    def test_refresh_malformed(self, tmp_path: Path, monkeypatch):
        self._serve(monkeypatch, b"not json")
        catalog = CatalogSource(cache_path=tmp_path / "c.json", url="https://example.invalid")
        with pytest.raises(AdapterFailureError):
            catalog.refresh()
        assert not (tmp_path / "c.json").exists()
