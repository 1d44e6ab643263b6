"""Notion block tree -> Markdown conversion."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from lotion.models import BlockNode, BlockType, RichTextRun
from lotion.notion import NotionClient, fetch_block_tree

logger = logging.getLogger(__name__)

INDENT = "  "
CHILD_PAGE_PREFIX = "📄"
CHILD_DATABASE_PREFIX = "🗄️"


# ---------------------------------------------------------------------------
# Rich text
# ---------------------------------------------------------------------------


def _render_run(run: RichTextRun) -> str:
    text = run.plain_text
    if run.code:
        text = f"`{text}`"
    if run.bold:
        text = f"**{text}**"
    if run.italic:
        text = f"_{text}_"
    if run.strikethrough:
        text = f"~~{text}~~"
    if run.href:
        text = f"[{text}]({run.href})"
    return text


def render_rich_text(items: Iterable[RichTextRun | dict[str, Any]]) -> str:
    """Render rich text runs as inline Markdown, one run at a time."""
    parts: list[str] = []
    for item in items:
        run = item if isinstance(item, RichTextRun) else RichTextRun.from_api(item)
        parts.append(_render_run(run))
    return "".join(parts)


def _text(block: BlockNode, key: str = "rich_text") -> str:
    return render_rich_text(block.payload.get(key) or [])


def _media_url(payload: dict[str, Any]) -> str:
    source = payload.get("type", "external")
    return (payload.get(source) or {}).get("url", "")


# ---------------------------------------------------------------------------
# Block handlers
#
# Each handler returns the Markdown for one block, or None when the block
# contributes nothing. List items, toggles, quotes and containers render
# their own children; render_blocks nests children only for _NESTS_CHILDREN.
# ---------------------------------------------------------------------------

BlockHandler = Callable[[BlockNode, int], "str | None"]


def _with_children(line: str, block: BlockNode, depth: int) -> str:
    if not block.children:
        return line
    nested = render_blocks(block.children, depth + 1)
    return f"{line}\n{nested}" if nested else line


def _paragraph(block: BlockNode, depth: int) -> str:
    text = _text(block)
    return f"{INDENT * depth}{text}" if text else ""


def _heading(marker: str) -> BlockHandler:
    def render(block: BlockNode, depth: int) -> str:
        return f"{marker} {_text(block)}"

    return render


def _bulleted(block: BlockNode, depth: int) -> str:
    return _with_children(f"{INDENT * depth}- {_text(block)}", block, depth)


def _numbered(block: BlockNode, depth: int) -> str:
    return _with_children(f"{INDENT * depth}1. {_text(block)}", block, depth)


def _to_do(block: BlockNode, depth: int) -> str:
    check = "[x]" if block.payload.get("checked") else "[ ]"
    return f"{INDENT * depth}- {check} {_text(block)}"


def _toggle(block: BlockNode, depth: int) -> str:
    return _with_children(f"{INDENT * depth}**{_text(block)}**", block, depth)


def _quote(block: BlockNode, depth: int) -> str:
    return _with_children(f"{INDENT * depth}> {_text(block)}", block, depth)


def _callout(block: BlockNode, depth: int) -> str:
    icon = block.payload.get("icon") or {}
    emoji = f"{icon['emoji']} " if icon.get("type") == "emoji" and icon.get("emoji") else ""
    return f"{INDENT * depth}> {emoji}{_text(block)}"


def _code(block: BlockNode, depth: int) -> str:
    language = block.payload.get("language") or ""
    return f"```{language}\n{_text(block)}\n```"


def _divider(block: BlockNode, depth: int) -> str:
    return "---"


def _equation(block: BlockNode, depth: int) -> str:
    return f"$${block.payload.get('expression', '')}$$"


def _image(block: BlockNode, depth: int) -> str:
    caption = _text(block, "caption") or "image"
    return f"{INDENT * depth}![{caption}]({_media_url(block.payload)})"


def _media_link(block: BlockNode, depth: int) -> str:
    url = _media_url(block.payload)
    return f"{INDENT * depth}[{url}]({url})"


def _url_link(block: BlockNode, depth: int) -> str:
    url = block.payload.get("url", "")
    return f"{INDENT * depth}[{url}]({url})"


def _child_page(block: BlockNode, depth: int) -> str:
    return f"{INDENT * depth}_{CHILD_PAGE_PREFIX} {block.payload.get('title', '')}_"


def _child_database(block: BlockNode, depth: int) -> str:
    return f"{INDENT * depth}_{CHILD_DATABASE_PREFIX} {block.payload.get('title', '')}_"


def _table(block: BlockNode, depth: int) -> str | None:
    rows = [child for child in block.children if child.type is BlockType.TABLE_ROW]
    if not rows:
        return None
    return render_table(rows, bool(block.payload.get("has_column_header")))


def _container(block: BlockNode, depth: int) -> str | None:
    if not block.children:
        return None
    return render_blocks(block.children, depth)


def _nothing(block: BlockNode, depth: int) -> None:
    return None


_HANDLERS: dict[BlockType, BlockHandler] = {
    BlockType.PARAGRAPH: _paragraph,
    BlockType.HEADING_1: _heading("#"),
    BlockType.HEADING_2: _heading("##"),
    BlockType.HEADING_3: _heading("###"),
    BlockType.BULLETED_LIST_ITEM: _bulleted,
    BlockType.NUMBERED_LIST_ITEM: _numbered,
    BlockType.TO_DO: _to_do,
    BlockType.TOGGLE: _toggle,
    BlockType.QUOTE: _quote,
    BlockType.CALLOUT: _callout,
    BlockType.CODE: _code,
    BlockType.DIVIDER: _divider,
    BlockType.EQUATION: _equation,
    BlockType.IMAGE: _image,
    BlockType.VIDEO: _media_link,
    BlockType.FILE: _media_link,
    BlockType.PDF: _media_link,
    BlockType.BOOKMARK: _url_link,
    BlockType.EMBED: _url_link,
    BlockType.LINK_PREVIEW: _url_link,
    BlockType.CHILD_PAGE: _child_page,
    BlockType.CHILD_DATABASE: _child_database,
    BlockType.TABLE: _table,
    BlockType.TABLE_ROW: _nothing,
    BlockType.COLUMN_LIST: _container,
    BlockType.COLUMN: _container,
    BlockType.SYNCED_BLOCK: _container,
    BlockType.BREADCRUMB: _nothing,
    BlockType.TABLE_OF_CONTENTS: _nothing,
    BlockType.TEMPLATE: _nothing,
    BlockType.LINK_TO_PAGE: _nothing,
    BlockType.UNSUPPORTED: _nothing,
}

# Blocks whose nested children are appended one level deeper by render_blocks.
_NESTS_CHILDREN = {
    BlockType.PARAGRAPH,
    BlockType.HEADING_1,
    BlockType.HEADING_2,
    BlockType.HEADING_3,
    BlockType.TO_DO,
}


def render_table(rows: Sequence[BlockNode], has_header: bool) -> str:
    """Render ``table_row`` blocks as a Markdown table."""
    parsed = [
        [render_rich_text(cell) for cell in row.payload.get("cells") or []]
        for row in rows
    ]
    if not parsed:
        return ""

    col_count = max(len(cells) for cells in parsed)

    def render_row(cells: list[str]) -> str:
        padded = cells + [""] * (col_count - len(cells))
        return "|" + "|".join(f" {cell} " for cell in padded) + "|"

    if not has_header:
        return "\n".join(render_row(cells) for cells in parsed)

    lines = [render_row(parsed[0])]
    lines.append("|" + "|".join(" --- " for _ in range(col_count)) + "|")
    lines.extend(render_row(cells) for cells in parsed[1:])
    return "\n".join(lines)


def render_blocks(blocks: Sequence[BlockNode], depth: int = 0) -> str:
    """Render a sequence of sibling blocks at the given nesting depth."""
    lines: list[str] = []
    for block in blocks:
        rendered = _HANDLERS[block.type](block, depth)
        if rendered:
            lines.append(rendered)
        if block.children and block.type in _NESTS_CHILDREN:
            lines.append(render_blocks(block.children, depth + 1))
    return "\n".join(line for line in lines if line)


async def page_body_to_markdown(client: NotionClient, page_id: str) -> str:
    """Fetch a page's blocks and render them, degrading to ``""`` on failure."""
    try:
        blocks = await fetch_block_tree(client, page_id)
        return render_blocks(blocks)
    except Exception as exc:
        logger.warning("Failed to convert page body for %s: %s", page_id, exc)
        return ""
