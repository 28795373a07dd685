"""Shared enums and field constants for tender records."""
from enum import Enum


class TenderStatus(str, Enum):
    ACTIVE = "Aktif"
    INACTIVE = "Tidak Aktif"


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PAUSED = "paused"


class FailurePattern(str, Enum):
    """Canonical failure categories, in the order refinement clauses are emitted."""
    CODE_FORMAT = "code_format"
    STATUS_FORMAT = "status_format"
    TEXT_CONTENT = "text_content"
    DATE_FORMAT = "date_format"
    SEQUENCE_FORMAT = "sequence_format"
    REFERENCE_FORMAT = "reference_format"


class ReviewAction(str, Enum):
    ACCEPT = "accept"
    SKIP = "skip"
    EDIT = "edit"


# Python field name -> key the vision service is asked to return
RAW_KEYS = {
    "seq": "bil",
    "date": "tarikh",
    "reference": "daftar",
    "category": "bidang",
    "code": "kod_bidang",
    "description": "keterangan",
    "status": "status",
}

TENDER_FIELDS = tuple(RAW_KEYS)

# Exact match on these decides whether an example counts as correct
CRITICAL_FIELDS = ("seq", "code", "status")

FIELD_PATTERNS = {
    "code": FailurePattern.CODE_FORMAT,
    "status": FailurePattern.STATUS_FORMAT,
    "category": FailurePattern.TEXT_CONTENT,
    "description": FailurePattern.TEXT_CONTENT,
    "date": FailurePattern.DATE_FORMAT,
    "seq": FailurePattern.SEQUENCE_FORMAT,
    "reference": FailurePattern.REFERENCE_FORMAT,
}

CODE_LENGTH = 6
MIN_CATEGORY_LENGTH = 5
MIN_DESCRIPTION_LENGTH = 10
METRICS_HISTORY_LIMIT = 100
