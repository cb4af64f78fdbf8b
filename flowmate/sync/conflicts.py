"""
Conflict Resolver: last-writer-wins between a local and a remote version.

Rules:
    newer last-modified timestamp wins;
    exact tie → remote wins;
    missing or unparseable timestamp → oldest possible.

``resolve`` never raises, for any pair of inputs.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from flowmate.sync.models import ConflictDecision, Winner

OLDEST = datetime.min.replace(tzinfo=UTC)

_TIMESTAMP_FIELDS = ("last_edited_time", "updated_time")


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce datetimes, ISO-8601 strings and epoch numbers to aware UTC datetimes."""
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=UTC)
        if isinstance(value, int | float):
            # Millisecond epochs show up from JS-origin payloads
            seconds = value / 1000 if value > 10_000_000_000 else value
            return datetime.fromtimestamp(seconds, tz=UTC)
        if isinstance(value, str) and value.strip():
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    except (ValueError, OverflowError, OSError):
        return None
    return None


def timestamp_of(obj: Any) -> datetime:
    """Last-modified time of a dict or object, OLDEST when absent."""
    if obj is None:
        return OLDEST
    for name in _TIMESTAMP_FIELDS:
        raw = obj.get(name) if isinstance(obj, dict) else getattr(obj, name, None)
        if raw is None:
            continue
        parsed = parse_timestamp(raw)
        if parsed is not None:
            return parsed
    return OLDEST


def resolve(local: Any, remote: Any) -> ConflictDecision:
    """Pick the winning version. Local only wins when strictly newer."""
    if timestamp_of(local) > timestamp_of(remote):
        return ConflictDecision(winner=Winner.LOCAL, chosen=local)
    return ConflictDecision(winner=Winner.REMOTE, chosen=remote)


def pick_winner(local: Any, remote: Any) -> Any:
    """Shortcut returning the winning object itself."""
    return resolve(local, remote).chosen
