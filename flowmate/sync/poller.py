"""
Change Poller: one page of "what changed since the checkpoint" from Notion.

Single attempt per call: retry and backoff belong to the orchestrator, so a
test can count exactly one network call per ``poll``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from flowmate.config import NotionConfig
from flowmate.errors import ProviderPermissionError
from flowmate.notion import NotionClient
from flowmate.sync.conflicts import parse_timestamp
from flowmate.sync.models import ChangeRecord, PollResult, ResourceType
from flowmate.vault.gateway import ProviderTokenGateway

logger = logging.getLogger(__name__)

PROVIDER = "notion"


def _changed_after(change: ChangeRecord, since: datetime) -> bool:
    return change.last_edited_time is not None and change.last_edited_time > since


class NotionChangePoller:
    """Polls Notion databases and pages using the user's stored token."""

    def __init__(
        self,
        gateway: ProviderTokenGateway | None = None,
        *,
        client_factory: Callable[[str], NotionClient] | None = None,
        notion_config: NotionConfig | None = None,
    ) -> None:
        self.gateway = gateway or ProviderTokenGateway()
        self._client_factory = client_factory or (
            lambda token: NotionClient(token, config=notion_config)
        )

    async def poll(
        self,
        user_id: str,
        resource_id: str,
        resource_type: ResourceType | str,
        cursor: str | None = None,
        since: datetime | str | None = None,
        page_size: int = 50,
    ) -> PollResult:
        """Fetch one page of changes.

        Databases are filtered to objects edited after ``since`` (all objects
        when ``since`` is None) and paginated with Notion's cursor. A page
        resource yields itself when edited after ``since``, nothing otherwise.
        """
        resource_type = ResourceType(resource_type)
        since_dt = parse_timestamp(since) if since is not None else None
        logger.debug(
            "Polling Notion %s %s for user %s (cursor=%s, since=%s)",
            resource_type,
            resource_id,
            user_id,
            cursor,
            since_dt,
        )

        tokens = await asyncio.to_thread(self.gateway.get_token, user_id, PROVIDER)
        if tokens is None:
            raise ProviderPermissionError(f"Notion not connected for user {user_id}: unauthorized")

        async with self._client_factory(tokens.access_token) as notion:
            if resource_type is ResourceType.DATABASE:
                query_filter = None
                if since_dt is not None:
                    query_filter = {
                        "timestamp": "last_edited_time",
                        "last_edited_time": {"after": since_dt.isoformat()},
                    }
                resp = await notion.query_database(
                    resource_id,
                    filter=query_filter,
                    start_cursor=cursor,
                    page_size=page_size,
                )
                changes = [ChangeRecord.from_notion(obj) for obj in resp.get("results") or []]
                if since_dt is not None:
                    # Notion's filter is minute-granular; re-check exactly
                    changes = [c for c in changes if _changed_after(c, since_dt)]
                next_cursor = resp.get("next_cursor") if resp.get("has_more") else None
                return PollResult(changes=changes, next_cursor=next_cursor)

            page = ChangeRecord.from_notion(await notion.get_page(resource_id))
            if since_dt is None or _changed_after(page, since_dt):
                return PollResult(changes=[page])
            return PollResult(changes=[])
