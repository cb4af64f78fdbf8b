"""
Credential Store: CRUD over the user_integrations table.

The only code that reads or writes stored credentials. Rows are keyed by
(user_id, provider, team_id); team_id is NULL for single-workspace providers
and the unique constraint treats NULLs as equal, so (u, p, NULL) is one row.

Uses psycopg2 directly (same pattern as flowmate.audit.logger).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from psycopg2.extras import Json

from flowmate.db.connection import get_connection
from flowmate.vault.crypto import TokenCipher, get_cipher
from flowmate.vault.models import CredentialRecord, TokenPair

logger = logging.getLogger(__name__)


def put_credential(
    user_id: str,
    provider: str,
    team_id: str | None,
    access_token: str,
    refresh_token: str | None = None,
    metadata: dict[str, Any] | None = None,
    *,
    cipher: TokenCipher | None = None,
) -> None:
    """Encrypt both tokens and upsert the row.

    Both envelopes are computed before the statement runs and written by a
    single INSERT ... ON CONFLICT, so concurrent puts for the same key are
    last-write-wins and never leave a half-written row. Metadata is replaced
    in full, not merged.
    """
    cipher = cipher or get_cipher()
    encrypted_access = cipher.encrypt(access_token)
    encrypted_refresh = cipher.encrypt(refresh_token) if refresh_token else None
    now = datetime.now(UTC)

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO user_integrations
                    (user_id, provider, team_id, access_token, refresh_token,
                     metadata, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (user_id, provider, team_id)
                DO UPDATE SET access_token = EXCLUDED.access_token,
                              refresh_token = EXCLUDED.refresh_token,
                              metadata = EXCLUDED.metadata,
                              updated_at = EXCLUDED.updated_at
                """,
                (
                    str(user_id),
                    provider,
                    team_id,
                    encrypted_access,
                    encrypted_refresh,
                    Json(metadata or {}),
                    now,
                    now,
                ),
            )
    logger.debug("Stored %s credential for user %s (team=%s)", provider, user_id, team_id)


def get_credential(
    user_id: str,
    provider: str,
    team_id: str | None = None,
    *,
    cipher: TokenCipher | None = None,
) -> TokenPair | None:
    """Retrieve and decrypt a credential. Returns None if not found.

    A stored row that fails to decrypt raises DecryptionError; that is
    corruption (or a rotated key), not "not connected".
    """
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT access_token, refresh_token FROM user_integrations
                WHERE user_id = %s AND provider = %s AND team_id IS NOT DISTINCT FROM %s
                """,
                (str(user_id), provider, team_id),
            )
            row = cur.fetchone()
    if not row:
        return None

    cipher = cipher or get_cipher()
    return TokenPair(
        access_token=cipher.decrypt(row[0]),
        refresh_token=cipher.decrypt(row[1]) if row[1] else None,
    )


def get_record(
    user_id: str,
    provider: str,
    team_id: str | None = None,
) -> CredentialRecord | None:
    """Load a credential's metadata without decrypting anything."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT user_id, provider, team_id, refresh_token IS NOT NULL,
                       metadata, created_at, updated_at
                FROM user_integrations
                WHERE user_id = %s AND provider = %s AND team_id IS NOT DISTINCT FROM %s
                """,
                (str(user_id), provider, team_id),
            )
            row = cur.fetchone()
    if not row:
        return None
    return CredentialRecord(
        user_id=row[0],
        provider=row[1],
        team_id=row[2],
        has_refresh_token=row[3],
        metadata=row[4] or {},
        created_at=row[5],
        updated_at=row[6],
    )


def list_providers(user_id: str) -> dict[str, bool]:
    """Map provider -> connected for a user. Never decrypts."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT provider, bool_or(access_token IS NOT NULL AND access_token <> '')
                FROM user_integrations
                WHERE user_id = %s
                GROUP BY provider
                ORDER BY provider
                """,
                (str(user_id),),
            )
            return {row[0]: bool(row[1]) for row in cur.fetchall()}


def delete_credential(user_id: str, provider: str, team_id: str | None = None) -> bool:
    """Remove a credential (provider disconnect). Returns True if a row was deleted."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                DELETE FROM user_integrations
                WHERE user_id = %s AND provider = %s AND team_id IS NOT DISTINCT FROM %s
                """,
                (str(user_id), provider, team_id),
            )
            return cur.rowcount > 0


def count_credentials() -> int:
    """Count stored credentials across all users."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT count(*) FROM user_integrations")
            row = cur.fetchone()
            return row[0] if row else 0
