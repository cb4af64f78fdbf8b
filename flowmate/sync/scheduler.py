"""
Interval Scheduler: APScheduler wrapper that triggers sync passes.

The orchestrator knows nothing about scheduling; anything that can call
``run_pass()`` (cron, a queue worker, this class) can drive it.
max_instances=1 keeps a slow pass from overlapping the next one in-process.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from flowmate.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

JOB_ID = "sync:pass"


class SyncScheduler:
    """Runs ``orchestrator.run_pass`` every ``interval_ms``."""

    def __init__(self, orchestrator: SyncOrchestrator, interval_ms: int) -> None:
        self.orchestrator = orchestrator
        self.interval_ms = interval_ms
        self.scheduler = AsyncIOScheduler(timezone=UTC)
        self._cancel = asyncio.Event()

    def start(self, *, run_now: bool = True) -> None:
        """Register the interval job and start the scheduler (needs a running loop)."""
        extra = {}
        # next_run_time=None would add the job paused, so only pass it to fire immediately
        if run_now:
            extra["next_run_time"] = datetime.now(UTC)
        self.scheduler.add_job(
            self._run_pass,
            trigger=IntervalTrigger(seconds=self.interval_ms / 1000, timezone=UTC),
            id=JOB_ID,
            name="sync pass",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
            **extra,
        )
        self.scheduler.start()
        logger.info("Sync scheduler started (every %dms)", self.interval_ms)

    async def _run_pass(self) -> None:
        logger.info("Scheduler triggering sync pass")
        await self.orchestrator.run_pass(cancel_event=self._cancel)

    async def stop(self) -> None:
        """Stop triggering passes and signal an in-flight pass to wind down."""
        self._cancel.set()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")

    async def serve_forever(self) -> None:
        """Start and block until cancelled."""
        self.start()
        try:
            while True:
                await asyncio.sleep(60)
        finally:
            await self.stop()
