"""
Minimal async Notion REST client: only the calls the vault and sync engine need.

Usage:
    async with NotionClient(token) as notion:
        page = await notion.get_page(page_id)
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from flowmate.config import NotionConfig, get_config
from flowmate.errors import NotionAPIError

logger = logging.getLogger(__name__)


def _raise_for_status(resp: httpx.Response) -> None:
    if resp.status_code < 400:
        return
    code, message = "", resp.text[:500]
    try:
        body = resp.json()
        code = body.get("code", "")
        message = body.get("message", message)
    except ValueError:
        pass
    raise NotionAPIError(resp.status_code, code, message)


class NotionClient:
    """Bearer-token Notion client. Owns its httpx client unless one is passed in."""

    def __init__(
        self,
        token: str,
        *,
        config: NotionConfig | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or get_config().notion
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=self.config.timeout_seconds)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Notion-Version": self.config.api_version,
            "Content-Type": "application/json",
        }

    async def __aenter__(self) -> NotionClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _request(
        self, method: str, path: str, json: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        resp = await self._http.request(
            method, f"{self.config.api_url}{path}", json=json, headers=self._headers
        )
        _raise_for_status(resp)
        return resp.json()

    # ── Reads ──

    async def query_database(
        self,
        database_id: str,
        *,
        filter: dict[str, Any] | None = None,
        start_cursor: str | None = None,
        page_size: int = 50,
    ) -> dict[str, Any]:
        """One page of a database query. Response has results, has_more, next_cursor."""
        body: dict[str, Any] = {"page_size": min(page_size, 100)}
        if filter:
            body["filter"] = filter
        if start_cursor:
            body["start_cursor"] = start_cursor
        return await self._request("POST", f"/databases/{database_id}/query", body)

    async def get_page(self, page_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/pages/{page_id}")

    # ── Writes ──

    async def create_page(
        self,
        parent: dict[str, Any],
        properties: dict[str, Any],
        children: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"parent": parent, "properties": properties}
        if children:
            body["children"] = children
        return await self._request("POST", "/pages", body)

    async def update_page(self, page_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/pages/{page_id}", {"properties": properties})

    async def archive_page(self, page_id: str) -> dict[str, Any]:
        """Notion has no hard delete for pages; archiving is the delete."""
        return await self._request("PATCH", f"/pages/{page_id}", {"archived": True})

    async def create_database(
        self,
        parent: dict[str, Any],
        title: str,
        properties: dict[str, Any],
    ) -> dict[str, Any]:
        body = {
            "parent": parent,
            "title": [{"type": "text", "text": {"content": title}}],
            "properties": properties,
        }
        return await self._request("POST", "/databases", body)

    async def update_database(
        self, database_id: str, properties: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._request(
            "PATCH", f"/databases/{database_id}", {"properties": properties}
        )

    async def append_block_children(
        self, parent_id: str, children: list[dict[str, Any]]
    ) -> dict[str, Any]:
        return await self._request(
            "PATCH", f"/blocks/{parent_id}/children", {"children": children}
        )

    async def update_block(self, block_id: str, block: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/blocks/{block_id}", block)

    async def delete_block(self, block_id: str) -> dict[str, Any]:
        """Also deletes databases, which Notion models as blocks."""
        return await self._request("DELETE", f"/blocks/{block_id}")


async def refresh_access_token(
    refresh_token: str,
    *,
    config: NotionConfig | None = None,
    http: httpx.AsyncClient | None = None,
) -> str:
    """Exchange a Notion refresh token for a new access token."""
    cfg = config or get_config().notion
    if not cfg.client_id or not cfg.client_secret:
        raise NotionAPIError(401, "unauthorized", "NOTION_CLIENT_ID/NOTION_CLIENT_SECRET not set")

    client = http or httpx.AsyncClient(timeout=cfg.timeout_seconds)
    try:
        resp = await client.post(
            f"{cfg.api_url}/oauth/token",
            json={"grant_type": "refresh_token", "refresh_token": refresh_token},
            auth=(cfg.client_id, cfg.client_secret),
        )
        _raise_for_status(resp)
        token: str = resp.json()["access_token"]
        logger.info("Refreshed Notion access token")
        return token
    finally:
        if http is None:
            await client.aclose()
