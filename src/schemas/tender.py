"""Pydantic models for extracted tender records and their scores."""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

from .enums import TENDER_FIELDS


class Tender(BaseModel):
    """One row of the tender listing.

    Every field is optional: an extraction attempt keeps only the fields that
    passed validation, so an absent field means "rejected or not seen".
    """
    seq: Optional[int] = Field(default=None, description="BIL - item number")
    date: Optional[str] = Field(default=None, description="TARIKH - ISO date YYYY-MM-DD")
    reference: Optional[str] = Field(default=None, description="DAFTAR - registration code")
    category: Optional[str] = Field(default=None, description="BIDANG - category text")
    code: Optional[str] = Field(default=None, description="KOD BIDANG - 6-digit code")
    description: Optional[str] = Field(default=None, description="KETERANGAN - description")
    status: Optional[str] = Field(default=None, description="Aktif or Tidak Aktif")

    def present_fields(self) -> List[str]:
        return [name for name in TENDER_FIELDS if getattr(self, name) is not None]

    def is_complete(self) -> bool:
        return len(self.present_fields()) == len(TENDER_FIELDS)


class ScoredRecord(BaseModel):
    """A tender candidate after the record validator has scored it."""
    tender: Tender = Field(default_factory=Tender)
    field_confidence: Dict[str, float] = Field(default_factory=dict)
    errors: Dict[str, str] = Field(default_factory=dict, description="field -> error message")
    warnings: List[str] = Field(default_factory=list)
    raw_response: Optional[str] = Field(default=None, description="Raw candidate text from the vision service")

    @computed_field
    @property
    def overall_confidence(self) -> float:
        """Mean of the per-field confidences, 0.0 when nothing was scored."""
        if not self.field_confidence:
            return 0.0
        values = list(self.field_confidence.values())
        return round(sum(values) / len(values), 3)
