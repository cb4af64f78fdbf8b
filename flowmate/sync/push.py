"""
Change-Push: apply a local create/update/delete to Notion.

A change is ``{"type": "page" | "database" | "block", "action": "create" |
"update" | "delete", "data": {...}}``. Failures come back as
``PushResult(success=False, error=...)`` rather than raising, so one bad push
does not take down the rest of a target.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from flowmate.errors import ProviderPermissionError
from flowmate.notion import NotionClient
from flowmate.sync.models import PushResult
from flowmate.vault.gateway import ProviderTokenGateway

logger = logging.getLogger(__name__)


def apply_property_mapping(
    properties: dict[str, Any], mapping: dict[str, str] | None
) -> dict[str, Any]:
    """Rename local field names to Notion property names. Unmapped keys pass through."""
    if not mapping:
        return dict(properties)
    return {mapping.get(key, key): value for key, value in properties.items()}


async def _dispatch(notion: NotionClient, kind: str, action: str, data: dict[str, Any]) -> Any:
    if kind == "page":
        if action == "create":
            return await notion.create_page(data["parent"], data["properties"], data.get("children"))
        if action == "update":
            return await notion.update_page(data["page_id"], data["properties"])
        if action == "delete":
            return await notion.archive_page(data["page_id"])
        raise ValueError(f"Unknown page action: {action}")
    if kind == "database":
        if action == "create":
            return await notion.create_database(data["parent"], data["title"], data["properties"])
        if action == "update":
            return await notion.update_database(data["database_id"], data["properties"])
        if action == "delete":
            return await notion.delete_block(data["database_id"])
        raise ValueError(f"Unknown database action: {action}")
    if kind == "block":
        if action == "create":
            return await notion.append_block_children(data["parent_id"], [data["block"]])
        if action == "update":
            return await notion.update_block(data["block_id"], data["block"])
        if action == "delete":
            return await notion.delete_block(data["block_id"])
        raise ValueError(f"Unknown block action: {action}")
    raise ValueError(f"Unknown change type: {kind}")


class NotionChangePusher:
    def __init__(
        self,
        gateway: ProviderTokenGateway | None = None,
        *,
        client_factory: Callable[[str], NotionClient] | None = None,
    ) -> None:
        self.gateway = gateway or ProviderTokenGateway()
        self._client_factory = client_factory or NotionClient

    async def push_change(self, user_id: str, change: dict[str, Any]) -> PushResult:
        kind, action = change.get("type"), change.get("action")
        logger.info("Pushing %s %s to Notion for user %s", kind, action, user_id)
        try:
            tokens = await asyncio.to_thread(self.gateway.get_token, user_id, "notion")
            if tokens is None:
                raise ProviderPermissionError(f"Notion not connected for user {user_id}")
            async with self._client_factory(tokens.access_token) as notion:
                result = await _dispatch(notion, kind, action, change.get("data") or {})
            return PushResult(success=True, result=result)
        except Exception as e:
            logger.error("Failed to push %s %s for user %s: %s", kind, action, user_id, e)
            return PushResult(success=False, error=str(e))
