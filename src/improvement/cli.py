"""CLI for the improvement loop."""
import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.syntax import Syntax

from agents.extractor import VisionExtractor
from errors import TrainingError
from settings import configure_logging, load_settings
from training.store import ExampleStore
from verifier.accuracy import analyze_field_errors, current_examples
from verifier.report import build_training_report, format_analysis, write_report

from .apply import load_current_instructions, rollback_instructions
from .controller import IterationController, RoundStatus
from .review import ConsoleReviewer, review_pending, show_round_comparison

console = Console()


def build_controller(settings, store: ExampleStore) -> IterationController:
    _, text = load_current_instructions(store)
    extractor = VisionExtractor(settings.api_key, settings.model, instructions=text)
    return IterationController(
        store,
        extractor,
        reextract_limit=settings.reextract_limit,
        request_delay=settings.request_delay,
    )


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
    """Improvement loop: refine extraction instructions from validated failures."""
    configure_logging(verbose)
    ctx.obj = load_settings(config)


@cli.command()
@click.option("--rounds", type=int, default=1, help="Rounds to run while below the target accuracy")
@click.pass_obj
def train(settings, rounds: int):
    """
    Run training rounds on the validated examples.

    1. Select examples failing the critical fields
    2. Refine the extraction instructions for their failure patterns
    3. Re-extract the failing documents with the new instructions
    4. Record accuracy before/after as an iteration of the latest session
    """
    store = ExampleStore(settings.training_dir)
    try:
        store.initialize()
        session = store.latest_session() or store.start_session()
        controller = build_controller(settings, store)

        for number in range(1, rounds + 1):
            click.echo(f"\n[Round {number}/{rounds}]")
            result = asyncio.run(controller.run_round(session.id))
            if result.status == RoundStatus.NO_IMPROVEMENT_NEEDED:
                click.echo(f"No failing examples at {result.accuracy_after}%. No improvement needed.")
                break
            show_round_comparison(result)
            if result.accuracy_after >= settings.target_accuracy:
                click.echo(f"Target accuracy {settings.target_accuracy}% reached.")
                break

        report = build_training_report(store, settings.target_accuracy)
        write_report(store, report)
        field_report = analyze_field_errors(current_examples(store.list_validated()))
    except (TrainingError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo()
    click.echo(format_analysis(
        report.extraction_accuracy_percentage,
        field_report,
        report.failure_patterns,
        report.recommendations,
    ))


@cli.command()
@click.option("--limit", type=int, default=None, help="Examples to review beyond the flagged ones")
@click.pass_obj
def review(settings, limit: Optional[int]):
    """Review pending examples and attach ground truth."""
    store = ExampleStore(settings.training_dir)
    try:
        validated = review_pending(
            store,
            ConsoleReviewer(console),
            limit if limit is not None else settings.review_limit,
            settings.confidence_threshold,
        )
    except TrainingError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"\n{len(validated)} examples validated. {len(store.list_unvalidated())} still pending.")


@cli.command()
@click.pass_obj
def instructions(settings):
    """Show the current extraction instructions."""
    store = ExampleStore(settings.training_dir)
    version, text = load_current_instructions(store)
    console.print(f"[bold]Extraction instructions v{version}[/bold]\n")
    console.print(Syntax(text, "markdown", theme="monokai", line_numbers=False))


@cli.command()
@click.argument("iteration", type=int)
@click.pass_obj
def rollback(settings, iteration: int):
    """
    Restore the instructions in place before ITERATION changed them.

    Example: improvement rollback 3
    """
    store = ExampleStore(settings.training_dir)
    restored = rollback_instructions(store, iteration)
    if restored is None:
        click.echo(f"No instruction snapshots found for iteration {iteration}")
        sys.exit(1)
    click.echo(f"Restored extraction instructions v{restored}")
    click.echo("\nYou may want to re-run training:")
    click.echo("  python3 -m improvement train")


if __name__ == "__main__":
    cli()
