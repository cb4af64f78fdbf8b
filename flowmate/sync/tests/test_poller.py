"""Tests for the Notion change poller: HTTP is served by httpx.MockTransport."""

import json
from datetime import UTC, datetime
from unittest.mock import MagicMock

import httpx
import pytest

from flowmate.config import NotionConfig
from flowmate.errors import NotionAPIError, ProviderPermissionError
from flowmate.notion import NotionClient
from flowmate.sync.poller import NotionChangePoller
from flowmate.vault.models import TokenPair

SINCE = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)


def _page(page_id, edited):
    return {"object": "page", "id": page_id, "last_edited_time": edited, "properties": {}}


def _poller(handler, token="ntn_test"):
    requests = []

    def recording(request):
        requests.append(request)
        return handler(request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    gateway = MagicMock()
    gateway.get_token.return_value = TokenPair(access_token=token) if token else None
    poller = NotionChangePoller(
        gateway,
        client_factory=lambda t: NotionClient(t, config=NotionConfig(), http=http),
    )
    return poller, gateway, requests


class TestDatabasePoll:
    @pytest.mark.asyncio
    async def test_first_sync_has_no_filter(self):
        poller, _, requests = _poller(
            lambda r: httpx.Response(
                200,
                json={"results": [_page("p1", "2024-05-01T09:00:00.000Z")], "has_more": False},
            )
        )
        result = await poller.poll("u1", "db1", "database")

        assert [c.remote_id for c in result.changes] == ["p1"]
        assert result.next_cursor is None
        body = json.loads(requests[0].content)
        assert "filter" not in body
        assert body["page_size"] == 50
        assert requests[0].url.path == "/v1/databases/db1/query"
        assert requests[0].headers["Authorization"] == "Bearer ntn_test"

    @pytest.mark.asyncio
    async def test_incremental_filter_and_cursor(self):
        poller, gateway, requests = _poller(
            lambda r: httpx.Response(
                200,
                json={
                    "results": [_page("p2", "2024-05-01T10:01:00.000Z")],
                    "has_more": True,
                    "next_cursor": "cur-2",
                },
            )
        )
        result = await poller.poll("u1", "db1", "database", cursor="cur-1", since=SINCE)

        body = json.loads(requests[0].content)
        assert body["filter"] == {
            "timestamp": "last_edited_time",
            "last_edited_time": {"after": SINCE.isoformat()},
        }
        assert body["start_cursor"] == "cur-1"
        assert result.next_cursor == "cur-2"
        gateway.get_token.assert_called_once_with("u1", "notion")

    @pytest.mark.asyncio
    async def test_drops_objects_not_after_since(self):
        poller, _, _ = _poller(
            lambda r: httpx.Response(
                200,
                json={
                    "results": [
                        _page("same", "2024-05-01T10:00:00.000Z"),
                        _page("newer", "2024-05-01T10:00:01.000Z"),
                    ],
                    "has_more": False,
                },
            )
        )
        result = await poller.poll("u1", "db1", "database", since="2024-05-01T10:00:00Z")
        assert [c.remote_id for c in result.changes] == ["newer"]

    @pytest.mark.asyncio
    async def test_cursor_ignored_without_has_more(self):
        poller, _, _ = _poller(
            lambda r: httpx.Response(
                200, json={"results": [], "has_more": False, "next_cursor": "stale"}
            )
        )
        result = await poller.poll("u1", "db1", "database")
        assert result.changes == []
        assert result.next_cursor is None

    @pytest.mark.asyncio
    async def test_exactly_one_request(self):
        poller, _, requests = _poller(lambda r: httpx.Response(500, json={"message": "boom"}))
        with pytest.raises(NotionAPIError):
            await poller.poll("u1", "db1", "database")
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_permission_error_surfaces(self):
        poller, _, _ = _poller(
            lambda r: httpx.Response(
                403, json={"code": "restricted_resource", "message": "Not shared"}
            )
        )
        with pytest.raises(NotionAPIError) as exc_info:
            await poller.poll("u1", "db1", "database")
        assert exc_info.value.is_permission


class TestPagePoll:
    @pytest.mark.asyncio
    async def test_changed_page(self):
        poller, _, requests = _poller(
            lambda r: httpx.Response(200, json=_page("pg1", "2024-05-01T11:00:00.000Z"))
        )
        result = await poller.poll("u1", "pg1", "page", since=SINCE)
        assert [c.remote_id for c in result.changes] == ["pg1"]
        assert requests[0].method == "GET"
        assert requests[0].url.path == "/v1/pages/pg1"

    @pytest.mark.asyncio
    async def test_unchanged_page(self):
        poller, _, _ = _poller(
            lambda r: httpx.Response(200, json=_page("pg1", "2024-05-01T09:00:00.000Z"))
        )
        result = await poller.poll("u1", "pg1", "page", since=SINCE)
        assert result.changes == []
        assert result.next_cursor is None

    @pytest.mark.asyncio
    async def test_first_sync_returns_page(self):
        poller, _, _ = _poller(
            lambda r: httpx.Response(200, json=_page("pg1", "2020-01-01T00:00:00.000Z"))
        )
        result = await poller.poll("u1", "pg1", "page")
        assert len(result.changes) == 1


class TestPollerErrors:
    @pytest.mark.asyncio
    async def test_not_connected(self):
        poller, _, requests = _poller(lambda r: httpx.Response(200, json={}), token=None)
        with pytest.raises(ProviderPermissionError):
            await poller.poll("u1", "db1", "database")
        assert requests == []

    @pytest.mark.asyncio
    async def test_unknown_resource_type(self):
        poller, _, _ = _poller(lambda r: httpx.Response(200, json={}))
        with pytest.raises(ValueError):
            await poller.poll("u1", "x", "workspace")
