"""
Provider Token Gateway: the one accessor integration call sites use for tokens.

Two read patterns exist across the integrations:

* ``get_token(user, provider)`` for single-workspace providers (Notion, Gmail,
  Drive, Calendar, Todoist);
* ``get_token_for_team(user, provider, team)`` for providers a user can
  install into several workspaces (Slack, ClickUp).

Refresh is a per-provider extension point. A provider without a registered
refresher fails with RefreshNotImplementedError instead of handing back a
stale token.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from flowmate.errors import RefreshNotImplementedError
from flowmate.vault import dal
from flowmate.vault.crypto import TokenCipher, get_cipher
from flowmate.vault.models import TokenPair

logger = logging.getLogger(__name__)

Refresher = Callable[[str], Awaitable[str]]


def _default_refreshers() -> dict[str, Refresher]:
    from flowmate.notion import refresh_access_token

    return {"notion": refresh_access_token}


class ProviderTokenGateway:
    """Typed token access over the credential store."""

    def __init__(
        self,
        cipher: TokenCipher | None = None,
        refreshers: dict[str, Refresher] | None = None,
    ) -> None:
        # Resolved up front so a bad FLOWMATE_ENCRYPTION_KEY fails at startup
        self._cipher = cipher if cipher is not None else get_cipher()
        self._refreshers: dict[str, Refresher] = (
            dict(refreshers) if refreshers is not None else _default_refreshers()
        )

    # ── Reads ──

    def get_token(self, user_id: str, provider: str) -> TokenPair | None:
        """Token pair for a single-workspace provider, or None if not connected."""
        return dal.get_credential(user_id, provider, None, cipher=self._cipher)

    def get_token_for_team(
        self, user_id: str, provider: str, team_id: str | None
    ) -> TokenPair | None:
        """Token pair for one workspace of a multi-workspace provider."""
        return dal.get_credential(user_id, provider, team_id, cipher=self._cipher)

    def is_connected(self, user_id: str, provider: str, team_id: str | None = None) -> bool:
        """Advisory connectivity check. Never raises.

        Without a team_id, a user who only has team-scoped installs of the
        provider still counts as connected.
        """
        try:
            pair = self.get_token_for_team(user_id, provider, team_id)
            if pair is not None:
                return bool(pair.access_token)
            if team_id is None:
                return bool(dal.list_providers(user_id).get(provider, False))
            return False
        except Exception as e:
            logger.warning("Connectivity check failed for %s/%s: %s", user_id, provider, e)
            return False

    def list_providers(self, user_id: str) -> dict[str, bool]:
        return dal.list_providers(user_id)

    # ── Writes ──

    def store_token(
        self,
        user_id: str,
        provider: str,
        access_token: str,
        refresh_token: str | None = None,
        *,
        team_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Persist tokens issued by an OAuth callback (or a refresh)."""
        dal.put_credential(
            user_id,
            provider,
            team_id,
            access_token,
            refresh_token,
            metadata,
            cipher=self._cipher,
        )
        logger.info("Stored %s token for user %s (team=%s)", provider, user_id, team_id)

    # ── Refresh ──

    def register_refresher(self, provider: str, refresher: Refresher) -> None:
        self._refreshers[provider] = refresher

    def supports_refresh(self, provider: str) -> bool:
        return provider in self._refreshers

    async def refresh(self, provider: str, refresh_token: str) -> str:
        """Exchange a refresh token for a new access token."""
        refresher = self._refreshers.get(provider)
        if refresher is None:
            raise RefreshNotImplementedError(provider)
        return await refresher(refresh_token)

    async def refresh_and_store(
        self, user_id: str, provider: str, team_id: str | None = None
    ) -> TokenPair | None:
        """Refresh a stored credential in place. Returns the new pair, or None if not connected.

        Metadata is carried over from the existing record.
        """
        if not self.supports_refresh(provider):
            raise RefreshNotImplementedError(provider)

        current = self.get_token_for_team(user_id, provider, team_id)
        if current is None:
            return None
        if not current.refresh_token:
            logger.warning("No refresh token stored for %s/%s", user_id, provider)
            return current

        new_access = await self.refresh(provider, current.refresh_token)
        record = dal.get_record(user_id, provider, team_id)
        self.store_token(
            user_id,
            provider,
            new_access,
            current.refresh_token,
            team_id=team_id,
            metadata=record.metadata if record else None,
        )
        return TokenPair(access_token=new_access, refresh_token=current.refresh_token)
