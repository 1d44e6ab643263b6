"""Async Notion API client, retry policy and block tree fetching."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

from lotion.errors import NotionAPIError, RateLimitError
from lotion.models import BlockNode, NotionDatabase, NotionPage

NOTION_API_BASE = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
PAGE_SIZE = 100
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _error_detail(response: httpx.Response) -> tuple[str | None, str]:
    """Return the Notion error code and message carried by an error response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        return body.get("code"), body.get("message") or response.reason_phrase
    detail = response.text.strip()
    if len(detail) > 1000:
        detail = detail[:1000] + "...(truncated)"
    return None, detail or response.reason_phrase


def _is_rate_limited(response: httpx.Response, code: str | None) -> bool:
    return response.status_code == 429 or code == "rate_limited"


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int = MAX_RETRIES,
    initial_backoff: float = INITIAL_BACKOFF_SECONDS,
) -> T:
    """Await ``fn()``, retrying with exponential backoff while Notion rate limits.

    Rate limited responses are retried up to ``retries`` times, sleeping
    ``initial_backoff * 2**attempt`` seconds in between, then surface as
    :class:`RateLimitError`. Any other HTTP error becomes a
    :class:`NotionAPIError` without retrying. Other exceptions propagate
    unchanged.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except httpx.HTTPStatusError as exc:
            response = exc.response
            code, message = _error_detail(response)
            if not _is_rate_limited(response, code):
                raise NotionAPIError(
                    f"Notion API error {response.status_code}: {message}",
                    status_code=response.status_code,
                    code=code,
                ) from exc
            if attempt >= retries:
                raise RateLimitError(attempts=attempt + 1) from exc
            delay = initial_backoff * (2**attempt)
            logger.warning(
                "Rate limited by Notion, retry %d/%d in %.1fs",
                attempt + 1,
                retries,
                delay,
            )
            await asyncio.sleep(delay)
            attempt += 1


class NotionClient:
    """Thin async Notion API client for read-only sync use-cases."""

    def __init__(
        self,
        token: str,
        *,
        api_base: str = NOTION_API_BASE,
        notion_version: str = NOTION_VERSION,
        max_retries: int = MAX_RETRIES,
        backoff_base_seconds: float = INITIAL_BACKOFF_SECONDS,
    ) -> None:
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.notion_version = notion_version
        self.max_retries = max_retries
        self.backoff_base_seconds = backoff_base_seconds

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Notion-Version": self.notion_version,
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        timeout: float = 60.0,
    ) -> dict[str, Any]:
        url = f"{self.api_base}{path}"
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.request(
                method,
                url,
                headers=self._headers,
                json=json_payload,
                params=params,
            )
        response.raise_for_status()
        if response.content:
            return response.json()
        return {}

    async def _call(
        self,
        method: str,
        path: str,
        *,
        json_payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return await with_retry(
            lambda: self._request(method, path, json_payload=json_payload, params=params),
            retries=self.max_retries,
            initial_backoff=self.backoff_base_seconds,
        )

    async def _paginate(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            body: dict[str, Any] = {**(payload or {}), "page_size": PAGE_SIZE}
            if cursor:
                body["start_cursor"] = cursor
            if method == "GET":
                data = await self._call(method, path, params=body)
            else:
                data = await self._call(method, path, json_payload=body)
            results.extend(data.get("results", []))
            cursor = data.get("next_cursor")
            if not data.get("has_more") or not cursor:
                break
            logger.debug("Fetched %d results from %s so far", len(results), path)
        return results

    async def verify_connection(self) -> dict[str, Any]:
        """Return the bot user behind the token, failing when it is rejected."""
        return await self._call("GET", "/users/me")

    async def list_block_children(
        self,
        block_id: str,
        start_cursor: str | None = None,
    ) -> dict[str, Any]:
        """Fetch one page of a block's children."""
        params: dict[str, Any] = {"page_size": PAGE_SIZE}
        if start_cursor:
            params["start_cursor"] = start_cursor
        return await self._call("GET", f"/blocks/{block_id}/children", params=params)

    async def query_database(
        self,
        database_id: str,
        *,
        edited_after: str | None = None,
    ) -> list[NotionPage]:
        """Return every page in a database, optionally edited after a timestamp."""
        payload: dict[str, Any] = {}
        if edited_after:
            payload["filter"] = {
                "timestamp": "last_edited_time",
                "last_edited_time": {"after": edited_after},
            }
        results = await self._paginate("POST", f"/databases/{database_id}/query", payload)
        return [NotionPage.from_api(r) for r in results if r.get("object") == "page"]

    async def retrieve_page(self, page_id: str) -> NotionPage:
        data = await self._call("GET", f"/pages/{page_id}")
        return NotionPage.from_api(data)

    async def search_databases(self) -> list[NotionDatabase]:
        """Return every database shared with the integration."""
        results = await self._paginate(
            "POST",
            "/search",
            {"filter": {"property": "object", "value": "database"}},
        )
        return [NotionDatabase.from_api(r) for r in results if r.get("object") == "database"]


async def fetch_block_tree(client: NotionClient, block_id: str) -> list[BlockNode]:
    """Fetch all child blocks of ``block_id``, descending into every nested block.

    Children are fetched before their parent node is built, so every returned
    node already carries its complete subtree.
    """
    nodes: list[BlockNode] = []
    cursor: str | None = None
    while True:
        data = await client.list_block_children(block_id, start_cursor=cursor)
        for block in data.get("results", []):
            if "type" not in block:
                continue
            children: tuple[BlockNode, ...] = ()
            if block.get("has_children"):
                children = tuple(await fetch_block_tree(client, block["id"]))
            nodes.append(BlockNode.from_api(block, children))
        cursor = data.get("next_cursor")
        if not data.get("has_more") or not cursor:
            break
    return nodes
