"""CLI entry point for lotion."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="LOTION_CONFIG",
    default=None,
    help="Path to the config file (default ~/.lotion.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """lotion - mirror Notion databases and pages into local Markdown files."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _load_config_or_exit(obj: dict, **overrides: object):
    from lotion.config import load_config
    from lotion.errors import ConfigError

    try:
        return load_config(obj.get("config_path"), **overrides)
    except ConfigError as e:
        console.print(f"[red]✗ Config error:[/red] {e}")
        raise SystemExit(1) from e


def _make_client(config):
    from lotion.notion import NotionClient

    return NotionClient(
        config.notion_api_key,
        max_retries=config.max_retries,
        backoff_base_seconds=config.backoff_base_seconds,
    )


def _print_results(results) -> None:
    from lotion.sync import summarize

    table = Table(title="Sync results")
    table.add_column("Target", style="cyan", no_wrap=True)
    table.add_column("Updated", justify="right", style="green")
    table.add_column("Skipped", justify="right")
    table.add_column("Errors", justify="right", style="red")
    table.add_column("Note")

    for r in results:
        table.add_row(
            r.target,
            str(r.updated),
            str(r.skipped),
            str(r.errors),
            f"aborted: {r.aborted}" if r.aborted else "",
        )

    console.print(table)
    totals = summarize(results)
    console.print(
        "[dim]Done: {updated} updated, {skipped} skipped, {errors} errors[/dim]".format(**totals)
    )


@main.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Interactive setup: API key, database selection, output directory."""
    asyncio.run(_init(ctx.obj))


async def _init(obj: dict) -> None:
    import httpx

    from lotion.config import Config, SyncTarget, get_config_path, load_config, save_config
    from lotion.errors import ConfigError, LotionError
    from lotion.models import TargetType
    from lotion.notion import NotionClient

    config_path = obj.get("config_path") or get_config_path()
    existing: Config | None = None
    if config_path.exists():
        try:
            existing = load_config(config_path)
            console.print("[yellow]Existing config found. Values will be used as defaults.[/yellow]")
        except ConfigError:
            existing = None

    console.print("[bold]Welcome to lotion![/bold] Let's set things up.")
    api_key = click.prompt("Notion API key", hide_input=True)

    console.print("Testing connection...")
    client = NotionClient(api_key)
    try:
        databases = await client.search_databases()
    except (LotionError, httpx.HTTPError) as e:
        console.print(f"[red]✗ Failed to connect:[/red] {e}")
        raise SystemExit(1) from e
    console.print(f"[green]✓ Connected![/green] Found {len(databases)} database(s).")

    output_dir = click.prompt(
        "Output directory",
        default=str(existing.output_dir) if existing else "~/lotion-data",
    )
    sync_interval = click.prompt(
        "Sync interval (seconds)",
        default=existing.sync_interval if existing else 60,
        type=click.IntRange(min=1),
    )

    targets = list(existing.targets) if existing else []
    known_ids = {t.id for t in targets}
    for number, db in enumerate(databases, start=1):
        console.print(f"  {number}. {db.title or db.id}")
    if databases:
        picked = click.prompt(
            "Databases to sync (comma-separated numbers, blank for none)",
            default="",
            show_default=False,
        )
        for part in picked.split(","):
            part = part.strip()
            if not part:
                continue
            if not part.isdigit() or not 1 <= int(part) <= len(databases):
                console.print(f"[yellow]Ignoring invalid choice {part!r}[/yellow]")
                continue
            db = databases[int(part) - 1]
            if db.id in known_ids:
                continue
            targets.append(SyncTarget(type=TargetType.DATABASE, id=db.id, name=db.title or db.id))
            known_ids.add(db.id)

    config = Config(
        notion_api_key=api_key,
        output_dir=Path(output_dir).expanduser(),
        sync_interval=sync_interval,
        targets=targets,
    )
    saved = save_config(config, config_path)
    console.print(f"[green]✓ Config saved:[/green] {saved}")


@main.command()
@click.option("--only", help="Sync only the target with this name.")
@click.pass_context
def sync(ctx: click.Context, only: str | None) -> None:
    """Sync all configured targets once."""
    asyncio.run(_sync(ctx.obj, only))


async def _sync(obj: dict, only: str | None) -> None:
    from lotion.errors import LotionError
    from lotion.sync import sync_all

    config = _load_config_or_exit(obj)
    client = _make_client(config)

    try:
        await client.verify_connection()
    except Exception as e:
        console.print(f"[red]✗ Could not connect to Notion:[/red] {e}")
        raise SystemExit(1) from e

    try:
        results = await sync_all(client, config, only=only)
    except LotionError as e:
        console.print(f"[red]✗ Sync failed:[/red] {e}")
        raise SystemExit(1) from e

    if results:
        _print_results(results)


@main.command()
@click.option("--interval", type=click.IntRange(min=1), help="Polling interval in seconds.")
@click.pass_context
def watch(ctx: click.Context, interval: int | None) -> None:
    """Continuously sync at a fixed interval until interrupted."""
    asyncio.run(_watch(ctx.obj, interval))


async def _watch(obj: dict, interval: int | None) -> None:
    from lotion.sync import watch as watch_loop

    config = _load_config_or_exit(obj)
    client = _make_client(config)

    try:
        await client.verify_connection()
    except Exception as e:
        console.print(f"[red]✗ Could not connect to Notion:[/red] {e}")
        raise SystemExit(1) from e

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    seconds = interval or config.sync_interval
    console.print(
        f"Watch mode started. Syncing every [bold]{seconds}s[/bold]. Press Ctrl+C to stop."
    )
    await watch_loop(client, config, seconds, stop_event, on_pass=_print_results)
    console.print("Watch mode stopped.")


@main.command("targets")
@click.pass_context
def list_targets(ctx: click.Context) -> None:
    """List configured sync targets."""
    config = _load_config_or_exit(ctx.obj)

    if not config.targets:
        console.print("[dim]No sync targets configured.[/dim]")
        return

    table = Table(title=f"Targets -> {config.output_dir}")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("ID")
    for t in config.targets:
        table.add_row(t.name, t.type.value, t.id)
    console.print(table)
