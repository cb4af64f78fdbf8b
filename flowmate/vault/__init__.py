"""
FlowMate Vault: per-user OAuth credential store backed by PostgreSQL + AES-256-GCM.

Public API:
    vault.put(user, provider, access, refresh, team_id=..., metadata=...)
    vault.get(user, provider, team_id=None)   → TokenPair or None
    vault.is_connected(user, provider)        → bool, never raises
    vault.list_providers(user)                → {provider: connected}
    vault.delete(user, provider, team_id=None)
"""

from __future__ import annotations

from typing import Any

from flowmate.vault.crypto import generate_key, get_cipher
from flowmate.vault.dal import delete_credential
from flowmate.vault.gateway import ProviderTokenGateway
from flowmate.vault.models import CredentialRecord, TokenPair

_gateway: ProviderTokenGateway | None = None


def get_gateway() -> ProviderTokenGateway:
    """Process-wide gateway using the configured cipher."""
    global _gateway
    if _gateway is None:
        _gateway = ProviderTokenGateway()
    return _gateway


def reset_gateway() -> None:
    """Drop the process-wide gateway (for testing)."""
    global _gateway
    _gateway = None


def put(
    user_id: str,
    provider: str,
    access_token: str,
    refresh_token: str | None = None,
    *,
    team_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Encrypt and store a credential (upsert)."""
    get_gateway().store_token(
        user_id, provider, access_token, refresh_token, team_id=team_id, metadata=metadata
    )


def get(user_id: str, provider: str, *, team_id: str | None = None) -> TokenPair | None:
    """Retrieve and decrypt a credential. Returns None if not connected."""
    return get_gateway().get_token_for_team(user_id, provider, team_id)


def is_connected(user_id: str, provider: str) -> bool:
    return get_gateway().is_connected(user_id, provider)


def list_providers(user_id: str) -> dict[str, bool]:
    return get_gateway().list_providers(user_id)


def delete(user_id: str, provider: str, *, team_id: str | None = None) -> bool:
    """Delete a credential. Returns True if deleted."""
    return delete_credential(user_id, provider, team_id)


__all__ = [
    "CredentialRecord",
    "ProviderTokenGateway",
    "TokenPair",
    "delete",
    "generate_key",
    "get",
    "get_cipher",
    "get_gateway",
    "is_connected",
    "list_providers",
    "put",
    "reset_gateway",
]
