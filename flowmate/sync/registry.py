"""
Sync target registry: which (user, resource) pairs to reconcile, and where they left off.

Tables: sync_targets, notion_property_mappings, notion_automations.

The orchestrator talks to ``SyncTargetRegistry`` (async); the plain
functions underneath are blocking psycopg2 calls and are pushed to a worker
thread.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from psycopg2.extras import RealDictCursor

from flowmate.db.connection import get_connection
from flowmate.errors import ConfigFetchError
from flowmate.sync.models import ResourceType, SyncTarget, TargetConfig

logger = logging.getLogger(__name__)


def list_sync_targets() -> list[SyncTarget]:
    """All enabled targets, oldest checkpoint first (never-synced targets lead)."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        cur.execute(
            """
            SELECT user_id, resource_id, resource_type, workspace_id, last_sync
            FROM sync_targets
            WHERE enabled = TRUE
            ORDER BY last_sync ASC NULLS FIRST, user_id, resource_id
            """
        )
        rows = cur.fetchall()

    targets = []
    for r in rows:
        try:
            resource_type = ResourceType(r["resource_type"])
        except ValueError:
            logger.warning(
                "Skipping sync target %s with unknown resource type %r",
                r["resource_id"],
                r["resource_type"],
            )
            continue
        targets.append(
            SyncTarget(
                user_id=str(r["user_id"]),
                resource_id=r["resource_id"],
                resource_type=resource_type,
                workspace_id=r["workspace_id"],
                last_sync=r["last_sync"],
            )
        )
    return targets


def add_sync_target(
    user_id: str,
    resource_id: str,
    resource_type: ResourceType | str,
    workspace_id: str | None = None,
) -> None:
    """Opt a resource into syncing (upsert; re-enables a disabled target, keeps its checkpoint)."""
    with get_connection() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO sync_targets (user_id, resource_id, resource_type, workspace_id, enabled)
            VALUES (%s, %s, %s, %s, TRUE)
            ON CONFLICT (user_id, resource_id)
            DO UPDATE SET resource_type = EXCLUDED.resource_type,
                          workspace_id = EXCLUDED.workspace_id,
                          enabled = TRUE
            """,
            (str(user_id), resource_id, ResourceType(resource_type).value, workspace_id),
        )


def disable_sync_target(user_id: str, resource_id: str) -> bool:
    """Stop syncing a resource. Returns True if a target was disabled."""
    with get_connection() as conn:
        cur = conn.cursor()
        cur.execute(
            "UPDATE sync_targets SET enabled = FALSE WHERE user_id = %s AND resource_id = %s",
            (str(user_id), resource_id),
        )
        return cur.rowcount > 0


def update_checkpoint(target: SyncTarget, checkpoint: datetime) -> None:
    """Advance a target's checkpoint. Never moves it backwards."""
    with get_connection() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE sync_targets
            SET last_sync = GREATEST(COALESCE(last_sync, %s), %s)
            WHERE user_id = %s AND resource_id = %s
            """,
            (checkpoint, checkpoint, target.user_id, target.resource_id),
        )


def get_target_config(target: SyncTarget) -> TargetConfig:
    """Property mapping + automations for a target. Raises ConfigFetchError."""
    try:
        with get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT mapping FROM notion_property_mappings
                WHERE user_id = %s AND database_id = %s
                  AND workspace_id IS NOT DISTINCT FROM %s
                """,
                (target.user_id, target.resource_id, target.workspace_id),
            )
            row = cur.fetchone()
            mapping = row[0] if row and row[0] else {}

            cur.execute(
                """
                SELECT id, trigger, action FROM notion_automations
                WHERE user_id = %s AND workspace_id IS NOT DISTINCT FROM %s AND enabled = TRUE
                ORDER BY id
                """,
                (target.user_id, target.workspace_id),
            )
            automations = [
                {"id": r[0], "trigger": r[1], "action": r[2]} for r in cur.fetchall()
            ]
    except Exception as e:
        raise ConfigFetchError(f"Config fetch failed for {target.key}: {e}") from e
    return TargetConfig(property_mapping=mapping, automations=automations)


class SyncTargetRegistry:
    """Async facade the orchestrator depends on."""

    async def list_sync_targets(self) -> list[SyncTarget]:
        return await asyncio.to_thread(list_sync_targets)

    async def update_checkpoint(self, target: SyncTarget, checkpoint: datetime) -> None:
        await asyncio.to_thread(update_checkpoint, target, checkpoint)

    async def fetch_config(self, target: SyncTarget) -> TargetConfig:
        return await asyncio.to_thread(get_target_config, target)
