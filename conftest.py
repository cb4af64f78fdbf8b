"""
Root-level shared test fixtures.

Inherited by the vault and sync suites and by tests/.
"""

from __future__ import annotations

import pytest

from flowmate.config import reset_config
from flowmate.db.connection import reset_connection_factory
from flowmate.vault import reset_gateway
from flowmate.vault.crypto import reset_cipher_cache


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove FlowMate env vars and cached singletons that leak between tests."""
    for key in [
        "FLOWMATE_DB_HOST",
        "FLOWMATE_DB_PORT",
        "FLOWMATE_DB_NAME",
        "FLOWMATE_DB_USER",
        "FLOWMATE_DB_PASSWORD",
        "FLOWMATE_ENCRYPTION_KEY",
        "FLOWMATE_SYNC_POLL_INTERVAL_MS",
        "FLOWMATE_SYNC_MAX_RETRIES",
        "FLOWMATE_SYNC_RETRY_DELAY_MS",
        "FLOWMATE_SYNC_PAGE_SIZE",
        "FLOWMATE_SYNC_CHECKPOINT_OVERLAP_MS",
        "NOTION_CLIENT_ID",
        "NOTION_CLIENT_SECRET",
    ]:
        monkeypatch.delenv(key, raising=False)
    reset_config()
    reset_cipher_cache()
    reset_gateway()
    yield
    reset_connection_factory()
    reset_config()
    reset_cipher_cache()
    reset_gateway()
