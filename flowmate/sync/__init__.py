"""Poll / reconcile / push sync engine."""

from flowmate.sync.conflicts import pick_winner, resolve
from flowmate.sync.models import (
    ChangeRecord,
    PassReport,
    PollResult,
    ResourceType,
    SyncTarget,
    TargetConfig,
    TargetOutcome,
    TargetStatus,
    Winner,
)
from flowmate.sync.orchestrator import SyncOrchestrator, build_orchestrator

__all__ = [
    "ChangeRecord",
    "PassReport",
    "PollResult",
    "ResourceType",
    "SyncOrchestrator",
    "SyncTarget",
    "TargetConfig",
    "TargetOutcome",
    "TargetStatus",
    "Winner",
    "build_orchestrator",
    "pick_winner",
    "resolve",
]
