"""
Sync Orchestrator: one reconciliation pass over every registered sync target.

Per target:
    fetch config (best effort) -> page through the poller (bounded retry)
    -> resolve each change against its local version -> write back / push
    -> advance the checkpoint

Targets are isolated from each other: whatever goes wrong inside one target
is logged and audited, and the pass moves on. ``run_pass`` itself does not
raise.

The checkpoint write is the last thing that happens for a target, and only
after every page was consumed and every write-back landed. A crash or
cancellation before that point means the target is re-polled from its old
checkpoint next pass: pages may be processed twice, never skipped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from flowmate.config import SyncConfig, get_config
from flowmate.errors import TransientSyncError
from flowmate.sync.conflicts import resolve
from flowmate.sync.models import (
    ChangeRecord,
    PassReport,
    SyncTarget,
    TargetConfig,
    TargetOutcome,
    TargetStatus,
    Winner,
)
from flowmate.sync.push import apply_property_mapping
from flowmate.sync.retry import is_permission_error, with_retry

logger = logging.getLogger(__name__)

LocalLookup = Callable[[str, str], Awaitable[Any]]
ConfigSource = Callable[[SyncTarget], Awaitable[TargetConfig]]
Applier = Callable[[SyncTarget, ChangeRecord], Awaitable[None]]
AuditSink = Callable[[str, str, dict], Any]


class _Cancelled(Exception):
    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SyncOrchestrator:
    """Drives sync passes. All collaborators are injected.

    Args:
        poller: object with ``async poll(user_id, resource_id, resource_type,
            cursor, since, page_size) -> PollResult``.
        registry: object with ``async list_sync_targets()`` and
            ``async update_checkpoint(target, checkpoint)``.
        local_lookup: ``async (resource_id, remote_id) -> object | None``.
        config_source: ``async (target) -> TargetConfig``; empty config if None.
        audit: ``(user_id, action, details)`` sink. Errors from it are swallowed.
        applier: ``async (target, change)`` writing a remote winner locally.
            None = no write-back.
        pusher: object with ``async push_change(user_id, change) -> PushResult``
            for local winners. None = no push.
    """

    def __init__(
        self,
        poller: Any,
        registry: Any,
        *,
        local_lookup: LocalLookup,
        config_source: ConfigSource | None = None,
        audit: AuditSink | None = None,
        applier: Applier | None = None,
        pusher: Any = None,
        config: SyncConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.poller = poller
        self.registry = registry
        self.local_lookup = local_lookup
        self.config_source = config_source
        self.audit = audit
        self.applier = applier
        self.pusher = pusher
        self.config = config or get_config().sync
        self.clock = clock

    async def run_pass(self, cancel_event: asyncio.Event | None = None) -> PassReport:
        """Attempt every target once. Never raises."""
        report = PassReport(started_at=self.clock())
        logger.info("Starting sync pass")

        try:
            targets = await self.registry.list_sync_targets()
        except Exception as e:
            logger.error("Could not enumerate sync targets: %s", e)
            report.finished_at = self.clock()
            return report

        for target in targets:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Sync pass cancelled before %s", target.key)
                break
            report.outcomes.append(await self._run_target(target, cancel_event))

        report.finished_at = self.clock()
        logger.info(
            "Sync pass complete: %d targets, %d synced, %d denied, %d failed, %d changes",
            len(report.outcomes),
            len(report.by_status(TargetStatus.SYNCED)),
            len(report.by_status(TargetStatus.PERMISSION_DENIED)),
            len(report.by_status(TargetStatus.FAILED)),
            report.total_changes,
        )
        return report

    async def _run_target(
        self, target: SyncTarget, cancel_event: asyncio.Event | None
    ) -> TargetOutcome:
        try:
            return await self.sync_target(target, cancel_event)
        except _Cancelled:
            logger.info("Sync of %s cancelled, checkpoint left at %s", target.key, target.last_sync)
            return TargetOutcome(target=target, status=TargetStatus.CANCELLED)
        except Exception as e:
            logger.error("Error syncing %s: %s", target.key, e, exc_info=True)
            await self._audit(
                target.user_id,
                "failed",
                {"resource_id": target.resource_id, "error": str(e)},
            )
            return TargetOutcome(target=target, status=TargetStatus.FAILED, error=str(e))

    async def sync_target(
        self, target: SyncTarget, cancel_event: asyncio.Event | None = None
    ) -> TargetOutcome:
        """Sync one target. Raises on unrecovered non-permission errors."""
        # Taken before the first poll and pulled back by the overlap: Notion
        # rounds last_edited_time down to the minute, so an edit made during
        # this pass may carry a stamp earlier than the pass start.
        checkpoint = self.clock() - timedelta(milliseconds=self.config.checkpoint_overlap_ms)
        target_config = await self._fetch_config(target)

        try:
            changes = await self._collect_changes(target, cancel_event)
        except Exception as e:
            if not is_permission_error(e):
                raise
            logger.warning(
                "Skipping %s due to permission error (reconnect required): %s", target.key, e
            )
            await self._audit(
                target.user_id,
                "permission_denied",
                {"resource_id": target.resource_id, "error": str(e)},
            )
            return TargetOutcome(
                target=target,
                status=TargetStatus.PERMISSION_DENIED,
                error=str(e),
                reconnect_required=True,
            )

        failed_writes = 0
        if changes:
            logger.info("Detected %d changes in %s", len(changes), target.key)
            await self._audit(
                target.user_id,
                "changes_detected",
                {
                    "resource_id": target.resource_id,
                    "count": len(changes),
                    "automations": len(target_config.automations),
                },
            )
            for change in changes:
                self._check_cancelled(cancel_event)
                if not await self._reconcile(target, change, target_config):
                    failed_writes += 1

        if failed_writes:
            return TargetOutcome(
                target=target,
                status=TargetStatus.FAILED,
                changes=len(changes),
                error=f"{failed_writes} write-back(s) failed",
            )

        self._check_cancelled(cancel_event)
        await self.registry.update_checkpoint(target, checkpoint)
        return TargetOutcome(target=target, status=TargetStatus.SYNCED, changes=len(changes))

    # ── Steps ──

    async def _fetch_config(self, target: SyncTarget) -> TargetConfig:
        if self.config_source is None:
            return TargetConfig()
        try:
            return await self.config_source(target)
        except Exception as e:
            logger.warning(
                "No target config for %s, continuing with empty config: %s", target.key, e
            )
            await self._audit(
                target.user_id,
                "config_unavailable",
                {"resource_id": target.resource_id, "error": str(e)},
            )
            return TargetConfig()

    async def _collect_changes(
        self, target: SyncTarget, cancel_event: asyncio.Event | None
    ) -> list[ChangeRecord]:
        """Page until the poller reports no next cursor."""
        all_changes: list[ChangeRecord] = []
        cursor: str | None = None
        while True:
            self._check_cancelled(cancel_event)
            result = await with_retry(
                lambda: self.poller.poll(
                    target.user_id,
                    target.resource_id,
                    target.resource_type,
                    cursor,
                    target.last_sync,
                    self.config.page_size,
                ),
                max_retries=self.config.max_retries,
                retry_delay_ms=self.config.retry_delay_ms,
                label=target.key,
            )
            all_changes.extend(result.changes)
            if not result.next_cursor:
                return all_changes
            if result.next_cursor == cursor:
                raise TransientSyncError(f"Cursor did not advance for {target.key}: {cursor}")
            cursor = result.next_cursor

    async def _reconcile(
        self, target: SyncTarget, change: ChangeRecord, target_config: TargetConfig
    ) -> bool:
        """Decide and apply one change. Returns False if its write-back failed."""
        local = await self.local_lookup(target.resource_id, change.remote_id)
        if local is None:
            await self._audit(
                target.user_id,
                "new_from_remote",
                {"resource_id": target.resource_id, "object_id": change.remote_id},
            )
            return await self._apply(target, change)

        decision = resolve(local, change)
        await self._audit(
            target.user_id,
            "conflict_resolved",
            {
                "resource_id": target.resource_id,
                "object_id": change.remote_id,
                "winner": decision.winner.value,
            },
        )
        if decision.winner is Winner.REMOTE:
            return await self._apply(target, change)
        return await self._push(target, change, local, target_config)

    async def _apply(self, target: SyncTarget, change: ChangeRecord) -> bool:
        if self.applier is None:
            return True
        try:
            await self.applier(target, change)
            return True
        except Exception as e:
            logger.error("Write-back of %s failed: %s", change.remote_id, e)
            await self._audit(
                target.user_id,
                "apply_failed",
                {
                    "resource_id": target.resource_id,
                    "object_id": change.remote_id,
                    "error": str(e),
                },
            )
            return False

    async def _push(
        self,
        target: SyncTarget,
        change: ChangeRecord,
        local: Any,
        target_config: TargetConfig,
    ) -> bool:
        if self.pusher is None:
            return True
        data = local.get("data") if isinstance(local, dict) else getattr(local, "data", None)
        properties = (data or {}).get("properties") or {}
        result = await self.pusher.push_change(
            target.user_id,
            {
                "type": "page",
                "action": "update",
                "data": {
                    "page_id": change.remote_id,
                    "properties": apply_property_mapping(
                        properties, target_config.property_mapping
                    ),
                },
            },
        )
        details = {"resource_id": target.resource_id, "object_id": change.remote_id}
        if result.success:
            await self._audit(target.user_id, "pushed", details)
            return True
        await self._audit(target.user_id, "push_failed", {**details, "error": result.error})
        return False

    # ── Helpers ──

    async def _audit(self, user_id: str, action: str, details: dict) -> None:
        if self.audit is None:
            return
        try:
            await asyncio.to_thread(self.audit, user_id, action, details)
        except Exception as e:
            logger.warning("Audit sink failed for %s: %s", action, e)

    @staticmethod
    def _check_cancelled(cancel_event: asyncio.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise _Cancelled()


def build_orchestrator(config: SyncConfig | None = None) -> SyncOrchestrator:
    """Production wiring: Postgres registry + local mirror, Notion poller + pusher."""
    from flowmate.audit.logger import log_sync_event
    from flowmate.sync.local_store import LocalMirror
    from flowmate.sync.poller import NotionChangePoller
    from flowmate.sync.push import NotionChangePusher
    from flowmate.sync.registry import SyncTargetRegistry
    from flowmate.vault import get_gateway

    # Raises KeyConfigError for a malformed FLOWMATE_ENCRYPTION_KEY
    gateway = get_gateway()
    registry = SyncTargetRegistry()
    mirror = LocalMirror()
    return SyncOrchestrator(
        NotionChangePoller(gateway),
        registry,
        local_lookup=mirror.get,
        config_source=registry.fetch_config,
        audit=log_sync_event,
        applier=mirror.apply,
        pusher=NotionChangePusher(gateway),
        config=config,
    )
