"""Tender learning schemas - Pydantic models for records, examples and sessions."""
from .enums import (
    TenderStatus,
    SessionStatus,
    FailurePattern,
    ReviewAction,
    RAW_KEYS,
    TENDER_FIELDS,
    CRITICAL_FIELDS,
)
from .tender import Tender, ScoredRecord
from .training import Example, Iteration, Session, MetricsSnapshot

__all__ = [
    # Enums and field constants
    "TenderStatus",
    "SessionStatus",
    "FailurePattern",
    "ReviewAction",
    "RAW_KEYS",
    "TENDER_FIELDS",
    "CRITICAL_FIELDS",
    # Records
    "Tender",
    "ScoredRecord",
    # Store entities
    "Example",
    "Iteration",
    "Session",
    "MetricsSnapshot",
]
