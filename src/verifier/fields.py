"""Per-field format rules and confidence scoring for tender candidates."""
import json
import re
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from errors import FieldValidationError
from schemas.enums import (
    CODE_LENGTH,
    MIN_CATEGORY_LENGTH,
    MIN_DESCRIPTION_LENGTH,
    RAW_KEYS,
    TENDER_FIELDS,
    TenderStatus,
)
from schemas.tender import ScoredRecord, Tender

DATE_INPUT_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y")
CANONICAL_DATE_FORMAT = "%Y-%m-%d"

_CODE_PATTERN = re.compile(rf"^\d{{{CODE_LENGTH}}}$")


def clean_text(text: str) -> str:
    """Trim, drop line breaks and collapse internal whitespace."""
    text = text.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")
    return re.sub(r"\s+", " ", text).strip()


def normalize_date(value: Any) -> Optional[str]:
    """Normalize a date string to YYYY-MM-DD.

    Accepts ISO, DD/MM/YYYY, DD-MM-YYYY and DD.MM.YYYY input. Returns None for
    anything else, including impossible calendar dates like 31/02/2024.
    """
    if not isinstance(value, str):
        return None
    value = value.strip()
    for fmt in DATE_INPUT_FORMATS:
        try:
            return datetime.strptime(value, fmt).strftime(CANONICAL_DATE_FORMAT)
        except ValueError:
            continue
    return None


def is_valid_code(value: Any) -> bool:
    return isinstance(value, str) and bool(_CODE_PATTERN.match(value))


def is_valid_status(value: Any) -> bool:
    return value in (TenderStatus.ACTIVE.value, TenderStatus.INACTIVE.value)


# ---------------------------------------------------------------------------
# Field rules: each returns (accepted value, confidence) or raises
# FieldValidationError. They are pure so each can be tested on its own.
# ---------------------------------------------------------------------------

def check_seq(value: Any) -> Tuple[int, float]:
    # bool is an int subclass; "true" is not a row number
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise FieldValidationError("seq", "invalid sequence number")
    return value, 1.0


def check_date(value: Any) -> Tuple[str, float]:
    normalized = normalize_date(value)
    if normalized is None:
        raise FieldValidationError("date", "invalid date format")
    return normalized, 1.0


def check_reference(value: Any) -> Tuple[str, float]:
    if not isinstance(value, str) or not clean_text(value):
        raise FieldValidationError("reference", "missing reference")
    # OCR can swap look-alike characters in free-form codes
    return clean_text(value), 0.9


def check_category(value: Any) -> Tuple[str, float]:
    if not isinstance(value, str) or len(clean_text(value)) < MIN_CATEGORY_LENGTH:
        raise FieldValidationError("category", "category too short")
    return clean_text(value), 0.95


def check_code(value: Any) -> Tuple[str, float]:
    if not is_valid_code(value):
        raise FieldValidationError("code", "invalid fixed-length code")
    return value, 1.0


def check_description(value: Any) -> Tuple[str, float]:
    if not isinstance(value, str) or len(clean_text(value)) < MIN_DESCRIPTION_LENGTH:
        raise FieldValidationError("description", "description too short")
    return clean_text(value), 0.9


def check_status(value: Any) -> Tuple[str, float]:
    if not is_valid_status(value):
        raise FieldValidationError("status", "invalid status")
    return value, 1.0


FIELD_RULES: Dict[str, Callable[[Any], Tuple[Any, float]]] = {
    "seq": check_seq,
    "date": check_date,
    "reference": check_reference,
    "category": check_category,
    "code": check_code,
    "description": check_description,
    "status": check_status,
}


def _lookup(raw: Dict[str, Any], field: str) -> Tuple[bool, Any]:
    """Find a field in a raw candidate by Python name or raw key."""
    if field in raw:
        return True, raw[field]
    raw_key = RAW_KEYS[field]
    if raw_key in raw:
        return True, raw[raw_key]
    return False, None


def score_record(raw: Dict[str, Any], raw_response: Optional[str] = None) -> ScoredRecord:
    """Validate a raw candidate and score each recognized field.

    Args:
        raw: Candidate dict keyed by raw keys (bil, tarikh, ...) or field names
        raw_response: Original response text, kept for later inspection

    Returns:
        ScoredRecord holding only the accepted fields, a confidence per
        recognized field and an error message per rejected field
    """
    accepted: Dict[str, Any] = {}
    confidence: Dict[str, float] = {}
    errors: Dict[str, str] = {}

    for field in TENDER_FIELDS:
        found, value = _lookup(raw, field)
        if not found:
            continue
        try:
            accepted[field], confidence[field] = FIELD_RULES[field](value)
        except FieldValidationError as e:
            confidence[field] = 0.0
            errors[field] = e.message

    warnings = []
    if errors:
        warnings.append(f"extraction had {len(errors)} validation errors")

    if raw_response is None:
        raw_response = json.dumps(raw, ensure_ascii=False, default=str)

    return ScoredRecord(
        tender=Tender(**accepted),
        field_confidence=confidence,
        errors=errors,
        warnings=warnings,
        raw_response=raw_response,
    )


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit insert, delete and substitute costs."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def field_similarity(extracted: Any, expected: Any) -> float:
    """Similarity in [0, 1] between an extracted value and its ground truth."""
    if extracted is None or expected is None:
        return 0.0
    if extracted == expected:
        return 1.0

    a = str(extracted).lower()
    b = str(expected).lower()
    if a == b:
        return 1.0
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return max(0.0, 1 - levenshtein_distance(a, b) / longest)


def record_similarity(extracted: Tender, expected: Tender) -> Dict[str, float]:
    """Per-field similarity between two tenders."""
    return {
        field: field_similarity(getattr(extracted, field), getattr(expected, field))
        for field in TENDER_FIELDS
    }
