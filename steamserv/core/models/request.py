"""
Resolved requests — what the lifecycle controller is asked to do.

Flags and interactive prompts both end up here. By the time a request
reaches the controller every field is final; the controller never asks
where a value came from.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, SecretStr

ANONYMOUS_USER = "anonymous"


class Credentials(BaseModel):
    """SteamCMD login. Never persisted; the password never reaches a log."""

    username: str = ANONYMOUS_USER
    password: SecretStr = SecretStr("")

    @property
    def anonymous(self) -> bool:
        return not self.username or self.username == ANONYMOUS_USER

    @property
    def owner_username(self) -> str:
        """Username as stored on the record (empty for anonymous)."""
        return "" if self.anonymous else self.username


class InstallRequest(BaseModel):
    """A fully resolved install."""

    app_id: int = Field(ge=0)
    name: str
    credentials: Credentials = Field(default_factory=Credentials)
    auto_update: bool = False
    launch_command: str = ""
    validate_files: bool = True


class UpdateRequest(BaseModel):
    """A fully resolved update of an existing server."""

    name: str
    credentials: Credentials = Field(default_factory=Credentials)
    validate_files: bool = True
