"""
Data models for the sync engine.

Plain dataclasses, matching the frozen-dataclass pattern in flowmate.config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class ResourceType(StrEnum):
    DATABASE = "database"  # collection: paginated, filtered by last edit
    PAGE = "page"  # single item


class Winner(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"


class TargetStatus(StrEnum):
    SYNCED = "synced"
    PERMISSION_DENIED = "permission_denied"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SyncTarget:
    """One (user, remote resource) pair opted into periodic reconciliation."""

    user_id: str
    resource_id: str
    resource_type: ResourceType
    last_sync: datetime | None = None  # None = never synced, backfill everything
    workspace_id: str | None = None

    @property
    def key(self) -> str:
        return f"{self.user_id}:{self.resource_type}:{self.resource_id}"


@dataclass(frozen=True)
class ChangeRecord:
    """A remote object modified after the checkpoint."""

    remote_id: str
    last_edited_time: datetime | None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_notion(cls, obj: dict[str, Any]) -> ChangeRecord:
        from flowmate.sync.conflicts import parse_timestamp

        raw = obj.get("last_edited_time")
        return cls(
            remote_id=obj.get("id", ""),
            last_edited_time=parse_timestamp(raw) if raw else None,
            data=obj,
        )


@dataclass(frozen=True)
class PollResult:
    changes: list[ChangeRecord]
    next_cursor: str | None = None


@dataclass
class TargetConfig:
    """Per-target settings fetched at the start of each target's sync."""

    property_mapping: dict[str, Any] = field(default_factory=dict)
    automations: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ConflictDecision:
    winner: Winner
    chosen: Any


@dataclass(frozen=True)
class PushResult:
    success: bool
    result: Any = None
    error: str | None = None


@dataclass
class TargetOutcome:
    target: SyncTarget
    status: TargetStatus
    changes: int = 0
    error: str | None = None
    reconnect_required: bool = False


@dataclass
class PassReport:
    started_at: datetime
    finished_at: datetime | None = None
    outcomes: list[TargetOutcome] = field(default_factory=list)

    def by_status(self, status: TargetStatus) -> list[TargetOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def total_changes(self) -> int:
        return sum(o.changes for o in self.outcomes)
