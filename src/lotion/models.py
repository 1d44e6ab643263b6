"""Data models for lotion."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class TargetType(str, Enum):
    DATABASE = "database"
    PAGE = "page"


class BlockType(str, Enum):
    """Every block tag the Markdown renderer knows about."""

    PARAGRAPH = "paragraph"
    HEADING_1 = "heading_1"
    HEADING_2 = "heading_2"
    HEADING_3 = "heading_3"
    BULLETED_LIST_ITEM = "bulleted_list_item"
    NUMBERED_LIST_ITEM = "numbered_list_item"
    TO_DO = "to_do"
    TOGGLE = "toggle"
    QUOTE = "quote"
    CALLOUT = "callout"
    CODE = "code"
    DIVIDER = "divider"
    EQUATION = "equation"
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"
    PDF = "pdf"
    BOOKMARK = "bookmark"
    EMBED = "embed"
    LINK_PREVIEW = "link_preview"
    CHILD_PAGE = "child_page"
    CHILD_DATABASE = "child_database"
    TABLE = "table"
    TABLE_ROW = "table_row"
    COLUMN_LIST = "column_list"
    COLUMN = "column"
    SYNCED_BLOCK = "synced_block"
    BREADCRUMB = "breadcrumb"
    TABLE_OF_CONTENTS = "table_of_contents"
    TEMPLATE = "template"
    LINK_TO_PAGE = "link_to_page"
    UNSUPPORTED = "unsupported"

    @classmethod
    def parse(cls, tag: str | None) -> BlockType:
        """Map a raw block tag to a member, falling back to ``UNSUPPORTED``."""
        try:
            return cls(tag)
        except ValueError:
            logger.debug("Unsupported block type %r", tag)
            return cls.UNSUPPORTED


class PropertyType(str, Enum):
    """Every page property type the serializer knows about."""

    TITLE = "title"
    RICH_TEXT = "rich_text"
    SELECT = "select"
    STATUS = "status"
    MULTI_SELECT = "multi_select"
    DATE = "date"
    CHECKBOX = "checkbox"
    NUMBER = "number"
    PEOPLE = "people"
    RELATION = "relation"
    FILES = "files"
    URL = "url"
    EMAIL = "email"
    PHONE_NUMBER = "phone_number"
    FORMULA = "formula"
    ROLLUP = "rollup"
    CREATED_TIME = "created_time"
    LAST_EDITED_TIME = "last_edited_time"
    CREATED_BY = "created_by"
    LAST_EDITED_BY = "last_edited_by"
    UNIQUE_ID = "unique_id"
    VERIFICATION = "verification"


@dataclass(frozen=True)
class RichTextRun:
    """One span of text with uniform styling and an optional link."""

    plain_text: str
    bold: bool = False
    italic: bool = False
    strikethrough: bool = False
    code: bool = False
    href: str | None = None

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> RichTextRun:
        annotations = item.get("annotations") or {}
        href = item.get("href")
        if not href:
            link = (item.get("text") or {}).get("link") or {}
            href = link.get("url")
        return cls(
            plain_text=item.get("plain_text", ""),
            bold=bool(annotations.get("bold")),
            italic=bool(annotations.get("italic")),
            strikethrough=bool(annotations.get("strikethrough")),
            code=bool(annotations.get("code")),
            href=href or None,
        )


@dataclass(frozen=True)
class BlockNode:
    """A fetched block with its children already attached."""

    id: str
    type: BlockType
    payload: dict[str, Any] = field(default_factory=dict)
    has_children: bool = False
    children: tuple[BlockNode, ...] = ()
    raw_type: str = ""

    @classmethod
    def from_api(
        cls,
        block: dict[str, Any],
        children: tuple[BlockNode, ...] = (),
    ) -> BlockNode:
        raw_type = block.get("type", "")
        return cls(
            id=block["id"],
            type=BlockType.parse(raw_type),
            payload=block.get(raw_type) or {},
            has_children=bool(block.get("has_children")),
            children=children,
            raw_type=raw_type,
        )


@dataclass(frozen=True)
class NotionPage:
    id: str
    url: str
    last_edited_time: str
    properties: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_api(cls, page: dict[str, Any]) -> NotionPage:
        return cls(
            id=page["id"],
            url=page.get("url", ""),
            last_edited_time=page.get("last_edited_time", ""),
            properties=page.get("properties") or {},
        )


@dataclass(frozen=True)
class NotionDatabase:
    id: str
    title: str

    @classmethod
    def from_api(cls, database: dict[str, Any]) -> NotionDatabase:
        title = "".join(t.get("plain_text", "") for t in database.get("title") or [])
        return cls(id=database["id"], title=title.strip())


class LedgerEntry(BaseModel):
    """Change-detection record for one synced page."""

    last_edited_time: str
    local_path: str
