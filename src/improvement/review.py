"""Human review of extracted tenders with Rich UI."""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from errors import FieldValidationError
from schemas.enums import RAW_KEYS, TENDER_FIELDS, ReviewAction
from schemas.tender import ScoredRecord, Tender
from schemas.training import Example
from training.store import ExampleStore
from verifier.fields import FIELD_RULES

from .controller import RoundResult

logger = logging.getLogger(__name__)

console = Console()


@dataclass
class Review:
    """Reviewer decision. `record` is set only for EDIT."""
    action: ReviewAction
    record: Optional[Tender] = None


def _parse_seq(value: str) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return None


class ConsoleReviewer:
    """Presents each candidate in a panel and asks accept / skip / edit."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def show(self, record: ScoredRecord, flagged: bool = False) -> None:
        lines = []
        for name in TENDER_FIELDS:
            value = getattr(record.tender, name)
            conf = record.field_confidence.get(name)
            conf_str = f" [dim]({conf:.2f})[/dim]" if conf is not None else ""
            shown = "[red]-[/red]" if value is None else str(value)
            lines.append(f"[bold]{RAW_KEYS[name]}[/bold]: {shown}{conf_str}")
        for name, message in record.errors.items():
            lines.append(f"[red]{name}: {message}[/red]")

        title = f"Confidence {record.overall_confidence:.1%}"
        if flagged:
            title += " [yellow](low confidence)[/yellow]"
        self.console.print()
        self.console.print(Panel.fit("\n".join(lines), title=title))

    def _ask_field(self, name: str, current):
        """Ask until the answer passes the field's format rule. Blank clears."""
        default = "" if current is None else str(current)
        while True:
            answer = Prompt.ask(f"  {RAW_KEYS[name]}", default=default, console=self.console).strip()
            if not answer:
                return None
            value = _parse_seq(answer) if name == "seq" else answer
            try:
                accepted, _ = FIELD_RULES[name](value)
            except FieldValidationError as e:
                self.console.print(f"[red]{e}[/red]")
                default = ""
                continue
            return accepted

    def edit(self, tender: Tender) -> Tender:
        """Field-by-field edit. Enter keeps the current value."""
        return Tender(**{name: self._ask_field(name, getattr(tender, name)) for name in TENDER_FIELDS})

    def review(self, record: ScoredRecord, flagged: bool = False) -> Review:
        self.show(record, flagged)
        choice = Prompt.ask(
            "Correct? [y] accept  [n] skip  [e] edit",
            choices=["y", "n", "e"],
            default="y",
            console=self.console,
        )
        if choice == "y":
            return Review(ReviewAction.ACCEPT)
        if choice == "e":
            return Review(ReviewAction.EDIT, self.edit(record.tender))
        return Review(ReviewAction.SKIP)


class ScriptedReviewer:
    """Replays a fixed list of decisions; skips once the script runs out."""

    def __init__(self, decisions: Iterable[Review]):
        self.decisions = list(decisions)
        self.seen: List[ScoredRecord] = []

    def review(self, record: ScoredRecord, flagged: bool = False) -> Review:
        self.seen.append(record)
        if not self.decisions:
            return Review(ReviewAction.SKIP)
        return self.decisions.pop(0)


def order_for_review(examples: Sequence[Example], threshold: float) -> List[Example]:
    """Low-confidence examples first, each group in creation order."""
    flagged = [e for e in examples if e.confidence < threshold]
    rest = [e for e in examples if e.confidence >= threshold]
    return flagged + rest


def review_pending(
    store: ExampleStore,
    reviewer,
    limit: int = 5,
    threshold: float = 0.85,
) -> List[Example]:
    """
    Walk unvalidated examples through the reviewer and attach ground truth.

    Examples below the confidence threshold are always presented. The limit
    only bounds how many of the remaining examples are shown in one run.

    Returns:
        The examples that became validated
    """
    pending = order_for_review(store.list_unvalidated(), threshold)
    flagged_count = sum(1 for e in pending if e.confidence < threshold)
    queue = pending[:max(flagged_count, limit)]
    logger.info(f"Reviewing {len(queue)} of {len(pending)} pending examples ({flagged_count} flagged)")

    validated = []
    for example in queue:
        decision = reviewer.review(example.extraction, flagged=example.confidence < threshold)
        if decision.action == ReviewAction.ACCEPT:
            ground_truth = example.extraction.tender
        elif decision.action == ReviewAction.EDIT and decision.record is not None:
            ground_truth = decision.record
        else:
            logger.debug(f"Skipped example {example.id}")
            continue
        validated.append(store.attach_validation(example.id, ground_truth))

    return validated


def show_round_comparison(result: RoundResult) -> None:
    """Display before/after table for one training round."""
    number = result.iteration.iteration_number if result.iteration else "-"
    table = Table(title=f"Training Round (Iteration {number})")

    table.add_column("Metric", style="cyan")
    table.add_column("Before", justify="right")
    table.add_column("After", justify="right")
    table.add_column("Delta", justify="right")

    delta = result.delta
    if delta > 0:
        delta_str = f"[green]+{delta:.2f}[/green]"
    elif delta < 0:
        delta_str = f"[red]{delta:.2f}[/red]"
    else:
        delta_str = f"[dim]{delta:.2f}[/dim]"
    table.add_row("Accuracy %", f"{result.accuracy_before:.2f}", f"{result.accuracy_after:.2f}", delta_str)

    table.add_row("Failures", str(result.failures), "", "")
    table.add_row("Re-extracted", "", str(result.reprocessed), "")
    table.add_row("Confidence improved", "", str(result.improved), "")
    table.add_row("Fixed", "", str(result.fixed), "")
    table.add_row("Skipped", "", str(result.skipped), "")

    console.print()
    console.print(table)
    if result.patterns:
        console.print(f"Patterns: {', '.join(p.value for p in result.patterns)}")
    if result.instructions_version:
        console.print(f"Instructions: v{result.instructions_version}")
