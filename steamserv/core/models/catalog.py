"""
Catalog models — installable titles and the cached remote listing.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class CatalogEntry(BaseModel):
    """One installable dedicated server title."""

    app_id: int
    name: str
    description: str | None = None
    anonymous: bool = True          # fetchable with an anonymous login
    launch_command: str = ""        # default ExecStart hint, relative to install dir


class CatalogCache(BaseModel):
    """Locally cached copy of the remote catalog."""

    last_update: str | None = None
    source: str = ""
    entries: list[CatalogEntry] = Field(default_factory=list)
