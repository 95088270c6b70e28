"""Command-line entry points for the news automation pipeline."""

import dataclasses
import json
import logging
import time
from datetime import date, datetime
from pathlib import Path
from typing import Any, List, Optional

import typer
from pydantic import BaseModel, ValidationError
from rich import print as rprint
from rich.table import Table

from .config import get_settings
from .models import ProcessedItem, RawItem
from .processor import Processor
from .scheduler import PublishCycleResult, build_scheduler

app = typer.Typer(help="Crawl news feeds, queue the relevant items and publish daily articles.")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _collect_item_paths(inputs: List[Path]) -> List[Path]:
    paths: List[Path] = []
    for path in inputs:
        if path.is_dir():
            paths.extend(sorted(p for p in path.iterdir() if p.suffix.lower() == ".json"))
        else:
            paths.append(path)
    return paths


def _load_raw_items(path: Path) -> List[RawItem]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = [data]
    return [RawItem(**entry) for entry in data]


def _to_plain(value: Any) -> Any:
    """
    Convert models, dataclasses and date-like objects into JSON-serializable primitives.
    """
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if dataclasses.is_dataclass(value):
        return _to_plain(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_plain(item) for item in value]
    return value


def _write_output(out_path: Path, json_payload: Any) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(
        json.dumps(json_payload, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )


def _items_table(items: List[ProcessedItem], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Score", justify="right")
    table.add_column("Category")
    table.add_column("Sentiment")
    table.add_column("Source")
    table.add_column("Title")
    for item in items:
        table.add_row(
            f"{item.relevance_score:.0f}",
            item.category,
            item.sentiment,
            item.source,
            item.title,
        )
    return table


def _print_publish_result(result: PublishCycleResult) -> None:
    for article in result.published:
        marker = " [yellow](featured)[/yellow]" if article.is_featured else ""
        rprint(f"[green]Published #{article.id}: {article.title}[/green]{marker}")
    rprint(
        f"[cyan]Publish complete: {len(result.published)} published, "
        f"{result.failed} failed.[/cyan]"
    )


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    _configure_logging(verbose)


@app.command("run")
def run_command():
    """
    Start the scheduler and keep it running until interrupted (Ctrl-C).
    """
    scheduler = build_scheduler()
    scheduler.start()
    rprint(f"[green]Scheduler running; next publish at {scheduler.next_publish_at}[/green]")
    try:
        while scheduler.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        rprint("[cyan]Stopping...[/cyan]")
    finally:
        scheduler.stop()
        scheduler.wait_until_idle(timeout=30)


@app.command("fetch")
def fetch_command():
    """
    Run one fetch cycle and show what was queued.
    """
    scheduler = build_scheduler()
    result = scheduler.run_manual_fetch_cycle()
    rprint(_items_table(scheduler.queue.snapshot(), "Queued items"))
    rprint(
        f"[cyan]Fetched {result.fetched}, processed {result.processed}, "
        f"queued {result.queued}.[/cyan]"
    )


@app.command("once")
def once_command(
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        "-o",
        help="Optional path to write the fetch and publish results as JSON.",
    ),
):
    """
    Run one fetch cycle followed immediately by one publish cycle.
    """
    scheduler = build_scheduler()
    fetched = scheduler.run_manual_fetch_cycle()
    rprint(f"[cyan]Queued {fetched.queued} of {fetched.fetched} fetched items.[/cyan]")
    result = scheduler.run_publish_cycle()
    _print_publish_result(result)
    if out:
        _write_output(out, _to_plain({"fetch": fetched, "publish": result}))
        rprint(f"[cyan]Wrote output to {out}[/cyan]")
    if result.failed:
        raise typer.Exit(code=1)


@app.command("process")
def process_command(
    inputs: List[Path] = typer.Argument(
        ...,
        help="One or more raw item JSON files (object or list) or directories of them.",
    ),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        "-o",
        help="Optional path to write the processed items as JSON. Defaults to stdout.",
    ),
):
    """
    Score, categorize and deduplicate raw items offline (no network, no queue).
    """
    paths = _collect_item_paths(inputs)
    if not paths:
        raise typer.BadParameter("No JSON item files found.")

    raw_items: List[RawItem] = []
    for path in paths:
        try:
            raw_items.extend(_load_raw_items(path))
        except (OSError, ValueError, ValidationError) as exc:
            rprint(f"[red]Failed {path}: {exc}[/red]")
            raise typer.Exit(code=1) from exc

    processor = Processor.from_settings(get_settings())
    items = processor.deduplicate(processor.process_all(raw_items))
    payload = _to_plain(items)

    if out:
        _write_output(out, payload)
        rprint(f"[cyan]Wrote {len(items)} items to {out}[/cyan]")
    else:
        typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def main():
    app()


if __name__ == "__main__":
    main()
