"""Incremental Notion -> local Markdown synchronization."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from lotion.config import Config, SyncTarget
from lotion.document import page_to_markdown
from lotion.errors import LotionError, SyncError
from lotion.models import NotionPage, TargetType
from lotion.notion import NotionClient
from lotion.properties import extract_title
from lotion.storage import (
    SyncLedger,
    ensure_dir,
    resolve_slug_conflict,
    slugify,
    write_markdown,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    target: str
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    aborted: str | None = None


def _check_target_name(config: Config, target: SyncTarget) -> None:
    root = config.output_dir.resolve()
    resolved = (root / target.name).resolve()
    if not resolved.is_relative_to(root):
        raise SyncError(f'Invalid target name: "{target.name}" escapes output directory')


async def _list_pages(
    client: NotionClient,
    target: SyncTarget,
    ledger: SyncLedger,
) -> list[NotionPage]:
    if target.type == TargetType.PAGE:
        return [await client.retrieve_page(target.id)]
    # One global watermark: unchanged pages edited after it are re-checked locally.
    return await client.query_database(target.id, edited_after=ledger.watermark())


def _claimed_filenames(ledger: SyncLedger, output_dir: Path) -> dict[str, str]:
    """Map filenames already written into ``output_dir`` to their page ids."""
    claimed: dict[str, str] = {}
    for page_id, entry in ledger.entries.items():
        path = Path(entry.local_path)
        if path.parent == output_dir:
            claimed[path.name] = page_id
    return claimed


async def sync_target(
    client: NotionClient,
    config: Config,
    target: SyncTarget,
    ledger: SyncLedger,
) -> SyncResult:
    """Mirror one target into ``output_dir/<target name>``.

    Pages whose ``last_edited_time`` matches the ledger are skipped. A failure
    on one page is counted and logged without affecting the others.
    """
    _check_target_name(config, target)
    output_dir = config.target_dir(target)
    ensure_dir(config.output_dir)
    ensure_dir(output_dir)

    result = SyncResult(target=target.name)
    logger.info('Syncing "%s" (%s: %s)', target.name, target.type.value, target.id)

    pages = await _list_pages(client, target, ledger)
    logger.info('Found %d pages in "%s"', len(pages), target.name)

    # Files of skipped pages stay claimed by their owners.
    claimed = _claimed_filenames(ledger, output_dir)
    semaphore = asyncio.Semaphore(config.concurrency)

    async def process(page: NotionPage) -> None:
        async with semaphore:
            try:
                if not ledger.has_changed(page.id, page.last_edited_time):
                    result.skipped += 1
                    return

                filename = slugify(extract_title(page.properties), page.id)
                if claimed.get(filename, page.id) != page.id:
                    filename = resolve_slug_conflict(filename, page.id)
                claimed[filename] = page.id

                file_path = output_dir / filename
                markdown = await page_to_markdown(client, page)
                await write_markdown(file_path, markdown)

                ledger.record(page.id, page.last_edited_time, file_path)
                result.updated += 1
                logger.info("  wrote %s", filename)
            except Exception as exc:
                result.errors += 1
                logger.error("  Failed to sync page %s: %s", page.id, exc)

    await asyncio.gather(*(process(page) for page in pages))
    return result


async def _sync_target_safely(
    client: NotionClient,
    config: Config,
    target: SyncTarget,
    ledger: SyncLedger,
) -> SyncResult:
    try:
        return await sync_target(client, config, target, ledger)
    except Exception as exc:
        logger.error('Sync of "%s" aborted: %s', target.name, exc)
        return SyncResult(target=target.name, aborted=str(exc))


async def sync_all(
    client: NotionClient,
    config: Config,
    only: str | None = None,
) -> list[SyncResult]:
    """Run one sync pass over every configured target (or just ``only``).

    The ledger is loaded once, shared by all targets and saved once after
    every target has finished.
    """
    targets = [t for t in config.targets if only is None or t.name == only]
    if not targets:
        if only:
            logger.warning('No target named "%s" found in config.', only)
        else:
            logger.warning("No sync targets configured. Run 'lotion init' to add targets.")
        return []

    ensure_dir(config.output_dir)
    ledger = SyncLedger.load(config.state_path)
    logger.debug("Loaded sync state with %d entries", len(ledger))

    results = await asyncio.gather(
        *(_sync_target_safely(client, config, target, ledger) for target in targets)
    )

    ledger.save()

    for r in results:
        if r.aborted:
            continue
        logger.info(
            '"%s": %d updated, %d skipped, %d errors',
            r.target,
            r.updated,
            r.skipped,
            r.errors,
        )
    return list(results)


def summarize(results: list[SyncResult]) -> dict[str, int]:
    """Total counts across targets."""
    return {
        "updated": sum(r.updated for r in results),
        "skipped": sum(r.skipped for r in results),
        "errors": sum(r.errors for r in results),
        "aborted": sum(1 for r in results if r.aborted),
    }


async def watch(
    client: NotionClient,
    config: Config,
    interval: float,
    stop_event: asyncio.Event,
    on_pass: Callable[[list[SyncResult]], None] | None = None,
) -> int:
    """Repeat sync passes every ``interval`` seconds until ``stop_event`` is set.

    The next pass is scheduled only after the previous one completes, and the
    stop event is only checked between passes. Returns the number of passes run.
    """
    passes = 0
    while not stop_event.is_set():
        logger.info("Starting sync pass %d", passes + 1)
        try:
            results = await sync_all(client, config)
        except LotionError as exc:
            logger.error("Sync error: %s", exc)
        else:
            if on_pass is not None:
                on_pass(results)
        passes += 1

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
    return passes
