"""
Centralized configuration for FlowMate.

All configuration is loaded from environment variables with sensible defaults.

Usage:
    from flowmate.config import get_config
    cfg = get_config()
    print(cfg.db.name)              # "flowmate"
    print(cfg.sync.page_size)       # 50
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection parameters."""

    host: str = ""  # empty = Unix socket (peer auth); set to 127.0.0.1 for TCP
    port: int = 5432
    name: str = "flowmate"
    user: str = "flowmate"
    password: str = ""

    @property
    def dsn(self) -> str:
        """Return a psycopg2-compatible DSN string."""
        parts = [f"dbname={self.name}"]
        if self.host:
            parts.append(f"host={self.host}")
        parts.append(f"port={self.port}")
        if self.user:
            parts.append(f"user={self.user}")
        if self.password:
            parts.append(f"password={self.password}")
        return " ".join(parts)

    @property
    def dict(self) -> dict[str, str | int]:
        """Return a psycopg2.connect() kwargs dict."""
        d: dict[str, str | int] = {
            "dbname": self.name,
            "port": self.port,
        }
        if self.host:
            d["host"] = self.host
        if self.user:
            d["user"] = self.user
        if self.password:
            d["password"] = self.password
        return d


@dataclass(frozen=True)
class SyncConfig:
    """Sync engine cadence, retry and paging."""

    polling_interval_ms: int = 60_000
    max_retries: int = 3
    retry_delay_ms: int = 2_000
    page_size: int = 50
    # Notion stamps last_edited_time to the minute; the stored checkpoint
    # trails the pass start by this much so mid-pass edits are re-polled.
    checkpoint_overlap_ms: int = 60_000


@dataclass(frozen=True)
class NotionConfig:
    """Notion OAuth app + API parameters."""

    client_id: str = ""
    client_secret: str = ""
    api_url: str = "https://api.notion.com/v1"
    api_version: str = "2022-06-28"
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class Config:
    """Top-level FlowMate configuration."""

    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    notion: NotionConfig = field(default_factory=NotionConfig)

    # 64 hex chars (32 bytes). Empty = ephemeral key, see flowmate.vault.crypto
    encryption_key: str = ""


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _positive_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "")
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    db = DatabaseConfig(
        host=os.environ.get("FLOWMATE_DB_HOST", ""),
        port=int(os.environ.get("FLOWMATE_DB_PORT", "5432")),
        name=os.environ.get("FLOWMATE_DB_NAME", "flowmate"),
        user=os.environ.get("FLOWMATE_DB_USER", os.environ.get("USER", "flowmate")),
        password=os.environ.get("FLOWMATE_DB_PASSWORD", ""),
    )

    sync_cfg = SyncConfig(
        polling_interval_ms=_positive_int("FLOWMATE_SYNC_POLL_INTERVAL_MS", 60_000),
        max_retries=_positive_int("FLOWMATE_SYNC_MAX_RETRIES", 3),
        retry_delay_ms=_positive_int("FLOWMATE_SYNC_RETRY_DELAY_MS", 2_000),
        page_size=_positive_int("FLOWMATE_SYNC_PAGE_SIZE", 50),
        checkpoint_overlap_ms=_positive_int(
            "FLOWMATE_SYNC_CHECKPOINT_OVERLAP_MS", 60_000, minimum=0
        ),
    )

    notion_cfg = NotionConfig(
        client_id=os.environ.get("NOTION_CLIENT_ID", ""),
        client_secret=os.environ.get("NOTION_CLIENT_SECRET", ""),
        api_url=os.environ.get("NOTION_API_URL", "https://api.notion.com/v1").rstrip("/"),
        api_version=os.environ.get("NOTION_VERSION", "2022-06-28"),
        timeout_seconds=float(os.environ.get("NOTION_TIMEOUT_SECONDS", "30")),
    )

    return Config(
        db=db,
        sync=sync_cfg,
        notion=notion_cfg,
        encryption_key=os.environ.get("FLOWMATE_ENCRYPTION_KEY", "").strip(),
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
