"""
Local mirror of synced remote objects (synced_objects table).

Default implementation of the local-object lookup the orchestrator needs,
plus idempotent write-back of remote winners. Business entities (tasks,
workflows) that want their own mapping can supply a different lookup.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from psycopg2.extras import Json

from flowmate.db.connection import get_connection
from flowmate.sync.models import ChangeRecord, SyncTarget

logger = logging.getLogger(__name__)


def get_local_object(resource_id: str, remote_id: str) -> dict[str, Any] | None:
    """Local version of a remote object, or None if never seen."""
    with get_connection() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT remote_id, data, last_edited_time
            FROM synced_objects
            WHERE resource_id = %s AND remote_id = %s
            """,
            (resource_id, remote_id),
        )
        row = cur.fetchone()
    if row is None:
        return None
    return {"id": row[0], "data": row[1] or {}, "last_edited_time": row[2]}


def upsert_local_object(target: SyncTarget, change: ChangeRecord) -> None:
    """Store the remote version locally. Safe to repeat (at-least-once delivery)."""
    with get_connection() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO synced_objects
                (user_id, resource_id, remote_id, data, last_edited_time, synced_at)
            VALUES (%s, %s, %s, %s, %s, NOW())
            ON CONFLICT (resource_id, remote_id)
            DO UPDATE SET data = EXCLUDED.data,
                          last_edited_time = EXCLUDED.last_edited_time,
                          synced_at = NOW()
            WHERE synced_objects.last_edited_time IS NULL
               OR synced_objects.last_edited_time <= EXCLUDED.last_edited_time
            """,
            (
                target.user_id,
                target.resource_id,
                change.remote_id,
                Json(change.data),
                change.last_edited_time,
            ),
        )


class LocalMirror:
    """Async facade: ``get`` is the lookup, ``apply`` the write-back."""

    async def get(self, resource_id: str, remote_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(get_local_object, resource_id, remote_id)

    async def apply(self, target: SyncTarget, change: ChangeRecord) -> None:
        await asyncio.to_thread(upsert_local_object, target, change)
