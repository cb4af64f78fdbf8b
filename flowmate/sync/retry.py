"""
Bounded retry and error classification for remote polling.

Permission failures (revoked scopes, unshared pages) are steady-state and
are never retried. Notion reports them with structured status codes; the
substring check is a fallback for errors that only carry message text.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from flowmate.errors import NotionAPIError, ProviderPermissionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PERMISSION_MARKERS = ("permission", "unauthorized", "forbidden", "restricted")


def is_permission_error(exc: BaseException) -> bool:
    """True when an error means "access denied", not "try again"."""
    if isinstance(exc, ProviderPermissionError):
        return True
    if isinstance(exc, NotionAPIError):
        if exc.is_permission:
            return True
    elif isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code in (401, 403):
            return True
    message = str(exc).lower()
    return any(marker in message for marker in PERMISSION_MARKERS)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    retry_delay_ms: int,
    label: str = "",
) -> T:
    """Await ``fn()`` up to ``max_retries`` times in total, sleeping between attempts.

    Permission errors propagate immediately. The last error propagates once
    attempts are exhausted.
    """
    attempts = max(1, max_retries)
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except Exception as e:
            if is_permission_error(e) or attempt >= attempts:
                raise
            logger.warning(
                "Retrying %s after error (attempt %d/%d): %s",
                label or "call",
                attempt,
                attempts,
                e,
            )
            await asyncio.sleep(retry_delay_ms / 1000)
