"""Tests for the Notion client, retry policy and block tree fetching."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from lotion.errors import NotionAPIError, RateLimitError
from lotion.models import BlockType
from lotion.notion import NotionClient, fetch_block_tree, with_retry


def _response(
    status_code: int = 200,
    *,
    json: dict | None = None,
    text: str | None = None,
    method: str = "GET",
    url: str = "https://api.notion.com/v1/users/me",
) -> httpx.Response:
    kwargs: dict = {"json": json} if json is not None else {"text": text or ""}
    return httpx.Response(
        status_code=status_code,
        request=httpx.Request(method, url),
        **kwargs,
    )


def _rate_limited() -> httpx.Response:
    return _response(429, json={"object": "error", "code": "rate_limited", "message": "Slow down"})


def _page(page_id: str, edited: str = "2025-01-01T00:00:00.000Z") -> dict:
    return {
        "object": "page",
        "id": page_id,
        "url": f"https://www.notion.so/{page_id}",
        "last_edited_time": edited,
        "properties": {},
    }


def _paragraph(block_id: str, text: str, has_children: bool = False) -> dict:
    return {
        "object": "block",
        "id": block_id,
        "type": "paragraph",
        "has_children": has_children,
        "paragraph": {"rich_text": [{"plain_text": text, "annotations": {}}]},
    }


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_retries_rate_limit_with_exponential_backoff(self):
        request_mock = AsyncMock(
            side_effect=[_rate_limited(), _rate_limited(), _response(200, json={"ok": True})]
        )
        sleep_mock = AsyncMock()
        client = NotionClient("secret")
        with (
            patch("lotion.notion.httpx.AsyncClient.request", new=request_mock),
            patch("lotion.notion.asyncio.sleep", new=sleep_mock),
        ):
            data = await client.verify_connection()

        assert data == {"ok": True}
        assert request_mock.await_count == 3
        assert [c.args[0] for c in sleep_mock.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_raises_rate_limit_error_after_budget(self):
        request_mock = AsyncMock(side_effect=[_rate_limited() for _ in range(4)])
        sleep_mock = AsyncMock()
        client = NotionClient("secret")
        with (
            patch("lotion.notion.httpx.AsyncClient.request", new=request_mock),
            patch("lotion.notion.asyncio.sleep", new=sleep_mock),
        ):
            with pytest.raises(RateLimitError) as excinfo:
                await client.verify_connection()

        assert excinfo.value.status_code == 429
        assert excinfo.value.attempts == 4
        assert request_mock.await_count == 4
        assert [c.args[0] for c in sleep_mock.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_rate_limited_code_without_429_is_retried(self):
        calls = 0

        async def fn():
            nonlocal calls
            calls += 1
            if calls == 1:
                response = _response(400, json={"code": "rate_limited", "message": "busy"})
                response.raise_for_status()
            return "done"

        with patch("lotion.notion.asyncio.sleep", new=AsyncMock()) as sleep_mock:
            assert await with_retry(fn, retries=3, initial_backoff=0.5) == "done"

        assert calls == 2
        assert sleep_mock.await_args_list[0].args[0] == 0.5

    @pytest.mark.asyncio
    async def test_does_not_retry_other_http_errors(self):
        request_mock = AsyncMock(
            side_effect=[
                _response(404, json={"object": "error", "code": "object_not_found", "message": "Not found"})
            ]
        )
        sleep_mock = AsyncMock()
        client = NotionClient("secret")
        with (
            patch("lotion.notion.httpx.AsyncClient.request", new=request_mock),
            patch("lotion.notion.asyncio.sleep", new=sleep_mock),
        ):
            with pytest.raises(NotionAPIError, match="404: Not found") as excinfo:
                await client.retrieve_page("missing")

        assert excinfo.value.code == "object_not_found"
        assert not isinstance(excinfo.value, RateLimitError)
        assert request_mock.await_count == 1
        assert sleep_mock.await_count == 0

    @pytest.mark.asyncio
    async def test_non_json_error_body_becomes_message(self):
        request_mock = AsyncMock(side_effect=[_response(502, text="bad gateway")])
        client = NotionClient("secret")
        with patch("lotion.notion.httpx.AsyncClient.request", new=request_mock):
            with pytest.raises(NotionAPIError, match="502: bad gateway"):
                await client.verify_connection()

    @pytest.mark.asyncio
    async def test_unclassified_errors_propagate(self):
        fn = AsyncMock(side_effect=httpx.ConnectError("offline"))
        sleep_mock = AsyncMock()
        with patch("lotion.notion.asyncio.sleep", new=sleep_mock):
            with pytest.raises(httpx.ConnectError):
                await with_retry(fn)

        assert fn.await_count == 1
        assert sleep_mock.await_count == 0

    @pytest.mark.asyncio
    async def test_zero_retries_fails_on_first_rate_limit(self):
        fn = AsyncMock(
            side_effect=httpx.HTTPStatusError(
                "429", request=httpx.Request("GET", "https://x"), response=_rate_limited()
            )
        )
        with patch("lotion.notion.asyncio.sleep", new=AsyncMock()) as sleep_mock:
            with pytest.raises(RateLimitError):
                await with_retry(fn, retries=0)

        assert sleep_mock.await_count == 0


class TestNotionClient:
    @pytest.mark.asyncio
    async def test_sends_auth_and_version_headers(self):
        request_mock = AsyncMock(return_value=_response(200, json={"object": "user"}))
        client = NotionClient("secret_abc")
        with patch("lotion.notion.httpx.AsyncClient.request", new=request_mock):
            await client.verify_connection()

        args, kwargs = request_mock.await_args
        assert args == ("GET", "https://api.notion.com/v1/users/me")
        assert kwargs["headers"]["Authorization"] == "Bearer secret_abc"
        assert kwargs["headers"]["Notion-Version"] == "2022-06-28"

    @pytest.mark.asyncio
    async def test_query_database_paginates_and_keeps_pages_only(self):
        url = "https://api.notion.com/v1/databases/db1/query"
        request_mock = AsyncMock(
            side_effect=[
                _response(
                    200,
                    json={"results": [_page("p1"), {"object": "database", "id": "d"}], "has_more": True, "next_cursor": "c1"},
                    method="POST",
                    url=url,
                ),
                _response(
                    200,
                    json={"results": [_page("p2")], "has_more": False, "next_cursor": None},
                    method="POST",
                    url=url,
                ),
            ]
        )
        client = NotionClient("secret")
        with patch("lotion.notion.httpx.AsyncClient.request", new=request_mock):
            pages = await client.query_database("db1")

        assert [p.id for p in pages] == ["p1", "p2"]
        first_body = request_mock.await_args_list[0].kwargs["json"]
        second_body = request_mock.await_args_list[1].kwargs["json"]
        assert first_body == {"page_size": 100}
        assert second_body == {"page_size": 100, "start_cursor": "c1"}

    @pytest.mark.asyncio
    async def test_query_database_filters_by_edit_time(self):
        request_mock = AsyncMock(
            return_value=_response(200, json={"results": [], "has_more": False}, method="POST")
        )
        client = NotionClient("secret")
        with patch("lotion.notion.httpx.AsyncClient.request", new=request_mock):
            await client.query_database("db1", edited_after="2025-01-01T00:00:00.000Z")

        body = request_mock.await_args.kwargs["json"]
        assert body["filter"] == {
            "timestamp": "last_edited_time",
            "last_edited_time": {"after": "2025-01-01T00:00:00.000Z"},
        }

    @pytest.mark.asyncio
    async def test_search_databases_parses_titles(self):
        request_mock = AsyncMock(
            return_value=_response(
                200,
                json={
                    "results": [
                        {"object": "database", "id": "db1", "title": [{"plain_text": "Tasks"}]},
                        {"object": "database", "id": "db2", "title": []},
                    ],
                    "has_more": False,
                },
                method="POST",
            )
        )
        client = NotionClient("secret")
        with patch("lotion.notion.httpx.AsyncClient.request", new=request_mock):
            databases = await client.search_databases()

        assert [(d.id, d.title) for d in databases] == [("db1", "Tasks"), ("db2", "")]
        assert request_mock.await_args.kwargs["json"]["filter"] == {
            "property": "object",
            "value": "database",
        }

    @pytest.mark.asyncio
    async def test_list_block_children_passes_cursor_as_query_param(self):
        request_mock = AsyncMock(return_value=_response(200, json={"results": []}))
        client = NotionClient("secret")
        with patch("lotion.notion.httpx.AsyncClient.request", new=request_mock):
            await client.list_block_children("blk", start_cursor="next")

        args, kwargs = request_mock.await_args
        assert args[1].endswith("/blocks/blk/children")
        assert kwargs["params"] == {"page_size": 100, "start_cursor": "next"}
        assert kwargs["json"] is None


class FakeBlockClient:
    def __init__(self, pages: dict[str, list[dict]]):
        self.pages = pages
        self.calls: list[tuple[str, str | None]] = []

    async def list_block_children(self, block_id, start_cursor=None):
        self.calls.append((block_id, start_cursor))
        return self.pages[f"{block_id}:{start_cursor}"]


class TestFetchBlockTree:
    @pytest.mark.asyncio
    async def test_follows_cursors_and_recurses_into_children(self):
        client = FakeBlockClient(
            {
                "root:None": {
                    "results": [_paragraph("a", "first", has_children=True)],
                    "has_more": True,
                    "next_cursor": "c2",
                },
                "root:c2": {
                    "results": [_paragraph("b", "second")],
                    "has_more": False,
                    "next_cursor": None,
                },
                "a:None": {
                    "results": [_paragraph("a1", "nested")],
                    "has_more": False,
                    "next_cursor": None,
                },
            }
        )

        nodes = await fetch_block_tree(client, "root")

        assert [n.id for n in nodes] == ["a", "b"]
        assert nodes[0].type is BlockType.PARAGRAPH
        assert [c.id for c in nodes[0].children] == ["a1"]
        assert nodes[1].children == ()
        assert client.calls == [("root", None), ("a", None), ("root", "c2")]

    @pytest.mark.asyncio
    async def test_skips_partial_block_objects(self):
        client = FakeBlockClient(
            {
                "root:None": {
                    "results": [{"object": "block", "id": "partial"}, _paragraph("ok", "text")],
                    "has_more": False,
                }
            }
        )

        nodes = await fetch_block_tree(client, "root")

        assert [n.id for n in nodes] == ["ok"]
