"""Training report: store snapshot, accuracy and recommendations."""
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import BaseModel, Field

from schemas.training import MetricsSnapshot, Session
from training.store import ExampleStore

from .accuracy import (
    FieldErrorReport,
    analyze_field_errors,
    classify_failure_patterns,
    compute_accuracy,
    current_examples,
    ordered_patterns,
    select_failures,
)

HIGH_ERROR_RATE = 5.0
DEFAULT_TARGET_ACCURACY = 95.0

ADVICE = [
    "Consider refining the extraction instructions (improvement train)",
    "Add more training examples with manual corrections",
    "Run learn again for the next iteration",
]


class TrainingReport(BaseModel):
    """Snapshot of the store after an analysis run."""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    total_examples: int
    validated_examples: int
    unvalidated_examples: int
    extraction_accuracy_percentage: float
    perfect_extractions: int
    learning_sessions: int
    latest_session: Optional[Session] = None
    latest_metrics: Optional[MetricsSnapshot] = None
    average_confidence: float
    field_error_rates: Dict[str, float] = Field(default_factory=dict)
    failure_patterns: List[str] = Field(default_factory=list)
    target_accuracy: float = DEFAULT_TARGET_ACCURACY
    recommendations: List[str] = Field(default_factory=list)

    @property
    def target_met(self) -> bool:
        return self.extraction_accuracy_percentage >= self.target_accuracy


def build_recommendations(
    accuracy: float,
    field_report: FieldErrorReport,
    target_accuracy: float = DEFAULT_TARGET_ACCURACY,
) -> List[str]:
    """Recommendation lines for the given accuracy and field error rates."""
    if field_report.total and accuracy >= target_accuracy:
        return [f"Extraction quality meets target ({accuracy}% >= {target_accuracy}%)"]

    lines = []
    noisy = [
        f"{name} ({stats.rate:.2f}% errors)"
        for name, stats in field_report.fields.items()
        if stats.rate > HIGH_ERROR_RATE
    ]
    if noisy:
        lines.append("Fields above 5% error rate need improvement: " + ", ".join(noisy))
    lines.extend(ADVICE)
    return lines


def build_training_report(
    store: ExampleStore,
    target_accuracy: float = DEFAULT_TARGET_ACCURACY,
) -> TrainingReport:
    """Aggregate store state into a report. Reads only; writes nothing."""
    examples = store.list_examples()
    validated = current_examples([e for e in examples if e.validated])
    unvalidated = [e for e in examples if not e.validated]
    sessions = store.list_sessions()

    accuracy = compute_accuracy(validated)
    field_report = analyze_field_errors(validated)
    patterns = ordered_patterns(classify_failure_patterns(select_failures(validated)))

    average_confidence = (
        round(sum(e.confidence for e in validated) / len(validated), 3) if validated else 0.0
    )

    return TrainingReport(
        total_examples=len(examples),
        validated_examples=len([e for e in examples if e.validated]),
        unvalidated_examples=len(unvalidated),
        extraction_accuracy_percentage=accuracy,
        perfect_extractions=field_report.perfect_extractions,
        learning_sessions=len(sessions),
        latest_session=sessions[-1] if sessions else None,
        latest_metrics=store.latest_metrics(),
        average_confidence=average_confidence,
        field_error_rates=field_report.rates(),
        failure_patterns=[p.value for p in patterns],
        target_accuracy=target_accuracy,
        recommendations=build_recommendations(accuracy, field_report, target_accuracy),
    )


def write_report(store: ExampleStore, report: TrainingReport) -> Path:
    """Overwrite the store's report.json with this report."""
    return store.save_report(report.model_dump(mode="json"))


def format_analysis(
    accuracy: float,
    field_report: FieldErrorReport,
    patterns: List[str],
    recommendations: List[str],
) -> str:
    """
    Format an analysis as plain text for logs and the end-of-round summary.

    Args:
        accuracy: Critical-field accuracy in percent
        field_report: Output of analyze_field_errors()
        patterns: Failure pattern tags present
        recommendations: Output of build_recommendations()
    """
    lines = []
    lines.append("## Summary")
    lines.append("")
    lines.append(f"- Total validated: {field_report.total}")
    lines.append(
        f"- Perfect extractions: {field_report.perfect_extractions} ({field_report.perfect_rate:.2f}%)"
    )
    lines.append(f"- Extraction accuracy: {accuracy}%")
    lines.append("")

    lines.append("## Field Error Rates")
    lines.append("")
    for stats in field_report.fields.values():
        mark = "ok" if stats.errors == 0 else "!!"
        lines.append(f"[{mark}] {stats.format_line()}")
        for detail in stats.examples:
            lines.append(f"     - {detail}")
    lines.append("")

    lines.append("## Failure Patterns")
    lines.append("")
    lines.append(", ".join(patterns) if patterns else "(none)")
    lines.append("")

    lines.append("## Recommendations")
    lines.append("")
    for rec in recommendations:
        lines.append(f"- {rec}")

    return "\n".join(lines)


def render_html(
    report: TrainingReport,
    field_report: Optional[FieldErrorReport] = None,
    template_dir: Optional[Path] = None,
) -> str:
    """Render the report with the bundled Jinja2 template."""
    if template_dir is None:
        template_dir = Path(__file__).parent / "templates"

    env = Environment(
        loader=FileSystemLoader(template_dir),
        autoescape=select_autoescape(["html", "xml"]),
    )
    template = env.get_template("training-report.html.j2")
    context: Dict[str, Any] = {
        "report": report,
        "field_report": field_report.to_dict() if field_report else None,
    }
    return template.render(**context)


def save_html(
    report: TrainingReport,
    output_path: Path,
    field_report: Optional[FieldErrorReport] = None,
) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_html(report, field_report))
    return output_path
