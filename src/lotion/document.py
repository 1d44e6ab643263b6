"""Front matter and full document assembly for a Notion page."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

import yaml

from lotion.markdown import page_body_to_markdown
from lotion.models import NotionPage, PropertyType
from lotion.notion import NotionClient
from lotion.properties import extract_title, serialize_property

FRONTMATTER_DELIMITER = "---"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2025-01-15T12:00:00.000Z."""
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_snake_case(name: str) -> str:
    """Turn a property name into a front matter key.

    Example: "Due Date (UTC)" -> "due_date_utc"
    """
    key = name.strip().lower()
    key = re.sub(r"\s+", "_", key)
    key = re.sub(r"[^a-z0-9_]", "", key)
    key = re.sub(r"_+", "_", key)
    return key.strip("_")


def build_frontmatter(
    page: NotionPage,
    extra_fields: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> str:
    """Render the YAML metadata block that opens every synced file."""
    data: dict[str, Any] = {"title": extract_title(page.properties)}

    for name, prop in page.properties.items():
        if prop.get("type") == PropertyType.TITLE.value:
            continue
        value = serialize_property(prop)
        if value is not None:
            data[to_snake_case(name)] = value

    data["notion_id"] = page.id
    data["notion_url"] = page.url
    data["last_synced"] = _format_timestamp(now or _utc_now())
    data.update(extra_fields or {})

    body = yaml.safe_dump(
        data,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=float("inf"),
    )
    return f"{FRONTMATTER_DELIMITER}\n{body}{FRONTMATTER_DELIMITER}\n"


async def page_to_markdown(
    client: NotionClient,
    page: NotionPage,
    extra_fields: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> str:
    """Assemble front matter, title heading and body for one page."""
    title = extract_title(page.properties)
    body = await page_body_to_markdown(client, page.id)
    frontmatter = build_frontmatter(page, extra_fields, now)
    heading = f"# {title}\n\n" if title else ""
    return f"{frontmatter}\n{heading}{body}"
