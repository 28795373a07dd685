"""Pydantic models for the training-example store.

An Example is one extraction attempt of one tender row. It becomes validated
exactly when a ground-truth Tender is attached; `validated` is derived from
that attachment and never stored on its own.
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .enums import SessionStatus
from .tender import ScoredRecord, Tender


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Example(BaseModel):
    """A stored extraction attempt, optionally with human ground truth."""
    id: str
    sequence: int = Field(ge=1, description="Creation order within the store")
    source_url: str
    document_path: str
    screenshot_path: Optional[str] = None
    page_index: Optional[int] = None
    extraction: ScoredRecord
    ground_truth: Optional[Tender] = None
    iteration: int = Field(ge=1, description="Extraction attempt that produced this example")
    supersedes: Optional[str] = Field(default=None, description="Id of the example this re-extraction replaces")
    created_at: datetime = Field(default_factory=utc_now)
    validated_at: Optional[datetime] = None

    @computed_field
    @property
    def validated(self) -> bool:
        return self.ground_truth is not None

    @computed_field
    @property
    def confidence(self) -> float:
        return self.extraction.overall_confidence


class Iteration(BaseModel):
    """Immutable record of one training round."""
    model_config = ConfigDict(frozen=True)

    iteration_number: int = Field(ge=1)
    examples_processed: int = Field(ge=0)
    accuracy_before: float
    accuracy_after: float
    improvements: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def delta(self) -> float:
        return round(self.accuracy_after - self.accuracy_before, 2)


class Session(BaseModel):
    """One continuous learning run."""
    id: str
    started_at: datetime = Field(default_factory=utc_now)
    status: SessionStatus = SessionStatus.IN_PROGRESS
    examples_collected: int = 0
    validation_accuracy: float = 0.0
    iterations: List[Iteration] = Field(default_factory=list)


class MetricsSnapshot(BaseModel):
    """Point-in-time rollup of one capture/extraction run."""
    total_found: int = Field(ge=0)
    succeeded: int = Field(ge=0)
    failed: int = Field(ge=0)
    average_confidence: float = 0.0
    accuracy: float = 0.0
    processing_time_ms: int = 0
    timestamp: datetime = Field(default_factory=utc_now)
