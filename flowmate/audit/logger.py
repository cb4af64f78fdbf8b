"""
FlowMate Audit Log: structured, persisted trail of sync events.

Event types:
  - sync.changes_detected, sync.conflict_resolved, sync.new_from_remote
  - sync.permission_denied, sync.failed, sync.config_unavailable
  - sync.pushed, sync.push_failed, sync.apply_failed

Usage:
    from flowmate.audit.logger import log_sync_event
    log_sync_event("42", "conflict_resolved", {"resource_id": "...", "winner": "remote"})
"""

from __future__ import annotations

import logging

from psycopg2.extras import Json

from flowmate.db.connection import get_connection

logger = logging.getLogger(__name__)


def log_event(
    event_type: str,
    action: str,
    *,
    category: str | None = None,
    actor: str = "flowmate",
    details: dict | None = None,
    target: str | None = None,
    status: str = "ok",
) -> dict | None:
    """Log a structured audit event.

    Returns {"id": int, "timestamp": str} on success, None on failure.
    Failures are logged but never raise; audit must not break callers.
    """
    try:
        with get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO audit_log
                    (event_type, category, actor, action, details, target, status)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING id, timestamp
                """,
                (
                    event_type,
                    category,
                    actor,
                    action,
                    Json(details) if details else None,
                    target,
                    status,
                ),
            )
            row = cur.fetchone()
        return {"id": row[0], "timestamp": row[1].isoformat()}
    except Exception as e:
        logger.warning("Audit log_event failed: %s", e)
        return None


def log_sync_event(user_id: str, action: str, details: dict | None = None) -> dict | None:
    """Audit sink for the sync engine: ``sync.<action>`` attributed to the user."""
    details = details or {}
    logger.info("[sync] %s user=%s %s", action, user_id, details)
    resource_id = details.get("resource_id")
    status = "error" if action in ("failed", "push_failed", "apply_failed") else "ok"
    if action == "permission_denied":
        status = "denied"
    return log_event(
        f"sync.{action}",
        action.replace("_", " "),
        category="sync",
        actor=str(user_id),
        details=details,
        target=f"resource:{resource_id}" if resource_id else None,
        status=status,
    )


def query_log(
    limit: int = 50,
    event_type: str | None = None,
    actor: str | None = None,
    target: str | None = None,
    since: str | None = None,
    status: str | None = None,
) -> list[dict]:
    """Query audit log with filters."""
    try:
        query = (
            "SELECT id, timestamp, event_type, category, actor, action, "
            "details, target, status "
            "FROM audit_log WHERE 1=1"
        )
        params: list = []

        if event_type:
            query += " AND event_type = %s"
            params.append(event_type)
        if actor:
            query += " AND actor = %s"
            params.append(actor)
        if target:
            query += " AND target LIKE %s"
            params.append(f"%{target}%")
        if since:
            query += " AND timestamp >= %s"
            params.append(since)
        if status:
            query += " AND status = %s"
            params.append(status)

        query += " ORDER BY timestamp DESC LIMIT %s"
        params.append(limit)

        with get_connection() as conn:
            cur = conn.cursor()
            cur.execute(query, params)
            rows = cur.fetchall()

        return [
            {
                "id": r[0],
                "timestamp": r[1].isoformat(),
                "event_type": r[2],
                "category": r[3],
                "actor": r[4],
                "action": r[5],
                "details": r[6],
                "target": r[7],
                "status": r[8],
            }
            for r in rows
        ]
    except Exception as e:
        logger.warning("Audit query_log failed: %s", e)
        return []
