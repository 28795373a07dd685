"""CLI for page capture and tender extraction."""
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from errors import TrainingError
from improvement.apply import load_current_instructions
from improvement.review import ConsoleReviewer
from schemas.enums import RAW_KEYS, TENDER_FIELDS
from settings import configure_logging, load_settings
from training.store import ExampleStore

from .capture import PageCapture
from .extractor import VisionExtractor
from .learn import run_learning

logger = logging.getLogger(__name__)

console = Console()


def build_extractor(settings, store: ExampleStore) -> VisionExtractor:
    """Vision extractor primed with the currently installed instructions."""
    version, text = load_current_instructions(store)
    logger.info(f"Using extraction instructions v{version}")
    return VisionExtractor(settings.api_key, settings.model, instructions=text)


def show_records(records) -> None:
    table = Table(title=f"Extracted rows ({len(records)})")
    for name in TENDER_FIELDS:
        table.add_column(RAW_KEYS[name])
    table.add_column("conf", justify="right")
    table.add_column("errors", style="red")

    for record in records:
        cells = ["" if getattr(record.tender, n) is None else str(getattr(record.tender, n)) for n in TENDER_FIELDS]
        table.add_row(*cells, f"{record.overall_confidence:.3f}", "; ".join(record.errors.values()))

    console.print(table)


@click.group()
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file overriding environment settings"
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, config: Optional[Path], verbose: bool):
    """Capture tender listings and extract rows with the vision model."""
    configure_logging(verbose)
    ctx.obj = load_settings(config)


@cli.command()
@click.option("--pages", type=int, default=None, help="Pages to capture (default: BATCH_SIZE)")
@click.option("--no-review", is_flag=True, help="Store examples without prompting for review")
@click.option("--headed", is_flag=True, help="Show the browser window")
@click.pass_obj
def learn(settings, pages: Optional[int], no_review: bool, headed: bool):
    """
    Run one learning session.

    Captures listing pages, extracts tender rows, stores them as training
    examples, asks for review and writes the training report.
    """
    if not settings.website_url:
        click.echo("Error: GOV_WEBSITE_URL is not set", err=True)
        sys.exit(1)
    if pages is not None:
        settings = settings.model_copy(update={"batch_size": pages})

    store = ExampleStore(settings.training_dir)
    reviewer = None if no_review else ConsoleReviewer(console)

    async def _run():
        async with PageCapture(settings.storage_dir, headless=not headed) as capture:
            extractor = build_extractor(settings, store)
            return await run_learning(settings, capture, extractor, store, reviewer)

    try:
        run = asyncio.run(_run())
    except (TrainingError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo()
    click.echo(f"Session:     {run.session.id}")
    click.echo(f"Pages:       {len(run.captures)} captured, {run.failed_pages} failed")
    click.echo(f"Examples:    {len(run.examples)} stored, {len(run.validated)} validated")
    click.echo(f"Accuracy:    {run.metrics.accuracy}%")
    for line in run.report.recommendations:
        click.echo(f"  - {line}")


@cli.command()
@click.argument(
    "pdf",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option("--json", "as_json", is_flag=True, help="Print scored records as JSON")
@click.pass_obj
def extract(settings, pdf: Path, as_json: bool):
    """Extract and score tender rows from one PDF without storing them."""
    store = ExampleStore(settings.training_dir)
    try:
        extractor = build_extractor(settings, store)
        candidates = asyncio.run(extractor.extract(pdf))
    except (TrainingError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    records = [c.score() for c in candidates]
    if as_json:
        click.echo(json.dumps([r.model_dump(mode="json") for r in records], indent=2, ensure_ascii=False))
    elif records:
        show_records(records)
    else:
        click.echo("No tender rows found.")


if __name__ == "__main__":
    cli()
