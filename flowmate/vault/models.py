"""Vault data models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class TokenPair(BaseModel):
    """Decrypted, ready-to-use tokens. Only ever built inside the decrypt boundary."""

    access_token: str
    refresh_token: str | None = None

    def __repr__(self) -> str:
        return f"TokenPair(access_token=***, refresh_token={'***' if self.refresh_token else None})"

    __str__ = __repr__


class CredentialRecord(BaseModel):
    """A stored integration (metadata only, never includes decrypted tokens)."""

    user_id: str
    provider: str
    team_id: str | None = None
    has_refresh_token: bool = False
    # Provider-specific bag: team_name, account_id, email, ...
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
