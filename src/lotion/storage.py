"""File naming, the sync ledger and Markdown file writing."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import tempfile
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from lotion.errors import FileSystemError
from lotion.models import LedgerEntry

MARKDOWN_EXT = ".md"
ID_PREFIX_LENGTH = 8
CONFLICT_SUFFIX_LENGTH = 4

_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\:*?"<>|]')

logger = logging.getLogger(__name__)


def slugify(title: str, page_id: str) -> str:
    """Generate a filesystem-safe Markdown filename for a page.

    ASCII titles become lowercase hyphenated slugs ("Hello World" ->
    "hello-world.md"). Other titles keep their text and only lose
    characters that are invalid in filenames. Empty titles fall back to the
    first characters of the page id.
    """
    if not title.strip():
        return f"{page_id[:ID_PREFIX_LENGTH]}{MARKDOWN_EXT}"

    if title.isascii():
        slug = re.sub(r"[^a-z0-9\s-]", "", title.lower()).strip()
        slug = re.sub(r"\s+", "-", slug)
        slug = re.sub(r"-+", "-", slug).strip("-")
        return f"{slug or page_id[:ID_PREFIX_LENGTH]}{MARKDOWN_EXT}"

    sanitized = _UNSAFE_FILENAME_CHARS.sub("-", title.strip())
    sanitized = re.sub(r"\.{2,}", ".", sanitized)
    return f"{sanitized}{MARKDOWN_EXT}"


def resolve_slug_conflict(filename: str, page_id: str) -> str:
    """Disambiguate a filename with the page id. Example: note.md -> note-abcd.md"""
    base = filename[: -len(MARKDOWN_EXT)] if filename.endswith(MARKDOWN_EXT) else filename
    return f"{base}-{page_id[:CONFLICT_SUFFIX_LENGTH]}{MARKDOWN_EXT}"


def ensure_dir(path: Path) -> None:
    """Create a directory and its parents if needed."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FileSystemError(f"Failed to create directory {path}") from exc


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


async def write_markdown(path: Path, content: str) -> None:
    """Write a Markdown file, replacing any existing content."""
    try:
        await asyncio.to_thread(_write_text, path, content)
    except OSError as exc:
        raise FileSystemError(f"Failed to write {path}") from exc


_LEDGER_ADAPTER = TypeAdapter(dict[str, LedgerEntry])


class SyncLedger:
    """Per-page change-detection state persisted as one JSON file.

    Maps Notion page ids to the ``last_edited_time`` seen at the last
    successful write and the local file path written.
    """

    def __init__(self, path: Path, entries: dict[str, LedgerEntry] | None = None) -> None:
        self.path = path
        self.entries: dict[str, LedgerEntry] = dict(entries or {})

    @classmethod
    def load(cls, path: Path) -> SyncLedger:
        """Read the ledger; missing or unreadable files yield an empty ledger."""
        if not path.exists():
            return cls(path)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable sync state %s: %s", path, exc)
            return cls(path)
        if not isinstance(raw, dict):
            logger.warning("Ignoring sync state %s: expected a JSON object", path)
            return cls(path)

        entries: dict[str, LedgerEntry] = {}
        for page_id, value in raw.items():
            try:
                entries[page_id] = LedgerEntry.model_validate(value)
            except ValidationError:
                logger.warning("Dropping invalid sync state entry for %s", page_id)
        return cls(path, entries)

    def save(self) -> None:
        """Atomically replace the ledger file with the in-memory state."""
        data = _LEDGER_ADAPTER.dump_json(self.entries, indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f"{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "wb") as fp:
                    fp.write(data)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise FileSystemError(f"Failed to save sync state {self.path}") from exc

    def has_changed(self, page_id: str, last_edited_time: str) -> bool:
        """True unless the stored timestamp is exactly ``last_edited_time``."""
        entry = self.entries.get(page_id)
        if entry is None:
            return True
        return entry.last_edited_time != last_edited_time

    def record(self, page_id: str, last_edited_time: str, local_path: Path | str) -> None:
        self.entries[page_id] = LedgerEntry(
            last_edited_time=last_edited_time,
            local_path=str(local_path),
        )

    def watermark(self) -> str | None:
        """Oldest recorded ``last_edited_time``, or None for an empty ledger."""
        if not self.entries:
            return None
        return min(entry.last_edited_time for entry in self.entries.values())

    def __len__(self) -> int:
        return len(self.entries)
