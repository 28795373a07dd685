"""CLI entry point for extraction accuracy analysis."""
import json
import sys
import webbrowser
from pathlib import Path
from typing import Optional

import click

from errors import TrainingError
from settings import configure_logging, load_settings
from training.store import ExampleStore

from .accuracy import analyze_field_errors, current_examples
from .report import build_training_report, format_analysis, save_html, write_report


def load_validated(store: ExampleStore):
    return current_examples(store.list_validated())


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
    """Measure extraction accuracy against validated ground truth."""
    configure_logging(verbose)
    ctx.obj = load_settings(config)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_obj
def analyze(settings, as_json: bool):
    """
    Analyze validated examples and write report.json.

    Prints per-field error rates, perfect extractions, critical-field
    accuracy, failure patterns and recommendations.
    """
    store = ExampleStore(settings.training_dir)
    try:
        validated = load_validated(store)
        if not validated:
            click.echo("No validated examples found. Run: python3 -m improvement review")
        report = build_training_report(store, settings.target_accuracy)
        path = write_report(store, report)
    except TrainingError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(report.model_dump(mode="json"), indent=2, ensure_ascii=False))
        return

    click.echo(f"Validation Analysis ({report.validated_examples} validated, "
               f"{report.unvalidated_examples} pending)")
    click.echo("=" * 60)
    click.echo(format_analysis(
        report.extraction_accuracy_percentage,
        analyze_field_errors(validated),
        report.failure_patterns,
        report.recommendations,
    ))
    click.echo()
    click.echo(f"Report saved to: {path}")


@cli.command()
@click.option(
    "--html",
    "html_path",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Output path for the HTML report"
)
@click.option("--open", "open_browser", is_flag=True, help="Open the report in a browser")
@click.pass_obj
def report(settings, html_path: Path, open_browser: bool):
    """Render the training report as HTML."""
    store = ExampleStore(settings.training_dir)
    try:
        training_report = build_training_report(store, settings.target_accuracy)
        field_report = analyze_field_errors(load_validated(store))
    except TrainingError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    output = save_html(training_report, html_path, field_report)
    click.echo(f"HTML report saved to: {output}")

    if open_browser:
        webbrowser.open(f"file://{output.resolve()}")


if __name__ == "__main__":
    cli()
