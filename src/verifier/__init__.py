"""Tender verifier - score extractions and measure accuracy against ground truth."""
from .fields import score_record, normalize_date, field_similarity
from .compare import compare_tenders, FieldDiscrepancy
from .accuracy import compute_accuracy, analyze_field_errors, classify_failure_patterns
from .report import TrainingReport, build_training_report, write_report

__all__ = [
    "score_record",
    "normalize_date",
    "field_similarity",
    "compare_tenders",
    "FieldDiscrepancy",
    "compute_accuracy",
    "analyze_field_errors",
    "classify_failure_patterns",
    "TrainingReport",
    "build_training_report",
    "write_report",
]
