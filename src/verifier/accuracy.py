"""Accuracy, per-field error rates and failure-pattern classification.

Two notions of correctness are reported side by side:

- accuracy: share of examples whose critical fields (seq, code, status) all
  match ground truth exactly. Drives the training target.
- perfect extractions: examples where every field matches. Reporting only.
"""
from dataclasses import dataclass, field as dc_field
from typing import Dict, List, Sequence, Set

from schemas.enums import FIELD_PATTERNS, TENDER_FIELDS, FailurePattern
from schemas.training import Example

from .compare import FieldDiscrepancy, compare_tenders, critical_fields_match

MAX_ERROR_EXAMPLES = 2


def current_examples(examples: Sequence[Example]) -> List[Example]:
    """Drop examples that a later re-extraction in the same list supersedes."""
    superseded = {e.supersedes for e in examples if e.supersedes}
    return [e for e in examples if e.id not in superseded]


def is_correct(example: Example) -> bool:
    return critical_fields_match(example.ground_truth, example.extraction.tender)


def compute_accuracy(examples: Sequence[Example]) -> float:
    """Percentage of validated examples with all critical fields correct.

    Unvalidated examples are ignored. No validated examples means 0.0.
    """
    validated = [e for e in examples if e.validated]
    if not validated:
        return 0.0
    correct = sum(1 for e in validated if is_correct(e))
    return round(correct / len(validated) * 100, 2)


def select_failures(examples: Sequence[Example]) -> List[Example]:
    """Validated examples that miss at least one critical field."""
    return [e for e in examples if e.validated and not is_correct(e)]


@dataclass
class FieldErrorStats:
    field: str
    errors: int
    total: int
    examples: List[str] = dc_field(default_factory=list)

    @property
    def rate(self) -> float:
        """Error rate in percent, 0.0 when there is nothing to compare."""
        return round(self.errors / self.total * 100, 2) if self.total else 0.0

    def format_line(self) -> str:
        return f"{self.field}: {self.rate:.2f}% ({self.errors}/{self.total})"


@dataclass
class FieldErrorReport:
    total: int
    perfect_extractions: int
    fields: Dict[str, FieldErrorStats]
    errors_by_type: Dict[str, int]

    @property
    def perfect_rate(self) -> float:
        return round(self.perfect_extractions / self.total * 100, 2) if self.total else 0.0

    def rates(self) -> Dict[str, float]:
        return {name: stats.rate for name, stats in self.fields.items()}

    def to_dict(self) -> Dict:
        return {
            "total": self.total,
            "perfect_extractions": self.perfect_extractions,
            "perfect_rate": self.perfect_rate,
            "errors_by_type": dict(self.errors_by_type),
            "fields": {
                name: {
                    "errors": stats.errors,
                    "total": stats.total,
                    "rate": stats.rate,
                    "examples": list(stats.examples),
                }
                for name, stats in self.fields.items()
            },
        }


def analyze_field_errors(
    examples: Sequence[Example],
    max_examples: int = MAX_ERROR_EXAMPLES,
) -> FieldErrorReport:
    """
    Compare every field of every validated example against ground truth.

    Args:
        examples: Examples to analyze (unvalidated ones are skipped)
        max_examples: Mismatch descriptions kept per field

    Returns:
        FieldErrorReport with per-field counts and rates, error-type counts
        and the number of examples where all fields match
    """
    validated = [e for e in examples if e.validated]
    stats = {name: FieldErrorStats(name, 0, len(validated)) for name in TENDER_FIELDS}
    errors_by_type = {"omission": 0, "hallucination": 0, "wrong_value": 0, "format_error": 0}
    perfect = 0

    for example in validated:
        discrepancies = compare_tenders(example.ground_truth, example.extraction.tender)
        if not discrepancies:
            perfect += 1
        for d in discrepancies:
            entry = stats[d.field]
            entry.errors += 1
            if len(entry.examples) < max_examples:
                entry.examples.append(d.describe())
            errors_by_type[d.error_type] += 1

    return FieldErrorReport(
        total=len(validated),
        perfect_extractions=perfect,
        fields=stats,
        errors_by_type=errors_by_type,
    )


def example_discrepancies(example: Example) -> List[FieldDiscrepancy]:
    if not example.validated:
        return []
    return compare_tenders(example.ground_truth, example.extraction.tender)


def classify_failure_patterns(examples: Sequence[Example]) -> Set[FailurePattern]:
    """Failure pattern tags present across the given examples.

    A tag is present when at least one example mismatches a field mapped to it.
    """
    patterns: Set[FailurePattern] = set()
    for example in examples:
        for d in example_discrepancies(example):
            patterns.add(FIELD_PATTERNS[d.field])
    return patterns


def ordered_patterns(patterns: Set[FailurePattern]) -> List[FailurePattern]:
    """Patterns in canonical enum order."""
    return [p for p in FailurePattern if p in patterns]
