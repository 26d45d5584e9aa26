"""
Generated file model — output of the unit file generator.
"""

from __future__ import annotations

from pydantic import BaseModel


class GeneratedFile(BaseModel):
    """A file produced by a generator.

    Attributes:
        path:      Absolute target path.
        content:   Full file content.
        reason:    Why this file was generated.
    """

    path: str
    content: str
    reason: str = ""
