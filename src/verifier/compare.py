"""Field-level comparison of extracted tenders against ground truth."""
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

from schemas.enums import CRITICAL_FIELDS, TENDER_FIELDS
from schemas.tender import Tender


@dataclass
class FieldDiscrepancy:
    """Represents a single field-level discrepancy."""
    field: str
    expected: Any
    actual: Any
    error_type: str  # omission, hallucination, format_error, wrong_value

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def describe(self) -> str:
        return f"Expected: {self.expected}, Got: {self.actual}"


def categorize_error(expected: Any, actual: Any) -> str:
    """
    Categorize the error type for a field discrepancy.

    Error types:
    - omission: ground truth has a value the extraction lacks
    - hallucination: extraction has a value the ground truth lacks
    - format_error: both present but of different types
    - wrong_value: same type, different value
    """
    if expected is not None and actual is None:
        return "omission"
    if expected is None and actual is not None:
        return "hallucination"
    if type(expected) is not type(actual):
        return "format_error"
    return "wrong_value"


def compare_tenders(
    ground_truth: Tender,
    extracted: Tender,
    fields: Iterable[str] = TENDER_FIELDS,
) -> List[FieldDiscrepancy]:
    """
    Compare an extracted tender against ground truth, exact equality per field.

    Returns:
        One FieldDiscrepancy per mismatching field, in field order
    """
    discrepancies = []
    for field in fields:
        expected = getattr(ground_truth, field)
        actual = getattr(extracted, field)
        if expected != actual:
            discrepancies.append(FieldDiscrepancy(
                field=field,
                expected=expected,
                actual=actual,
                error_type=categorize_error(expected, actual),
            ))
    return discrepancies


def critical_fields_match(ground_truth: Optional[Tender], extracted: Tender) -> bool:
    """True when every critical field equals its ground truth."""
    if ground_truth is None:
        return False
    return not compare_tenders(ground_truth, extracted, CRITICAL_FIELDS)


def summarize_errors(discrepancies: List[FieldDiscrepancy]) -> Dict[str, List[str]]:
    """Group discrepancies by error type, listing the affected fields."""
    result: Dict[str, List[str]] = {
        "omission": [],
        "hallucination": [],
        "format_error": [],
        "wrong_value": [],
    }
    for d in discrepancies:
        result[d.error_type].append(d.field)
    return result
