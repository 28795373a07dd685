"""Shared test fixtures and configuration."""
from pathlib import Path
from typing import List

import pytest

from agents.extractor import Extractor, RawCandidate
from errors import TransientExternalError
from schemas.tender import Tender
from training.store import ExampleStore
from verifier.fields import score_record


GOOD_ROW = {
    "bil": 1,
    "tarikh": "03/07/2024",
    "daftar": "PKK/2024/0001",
    "bidang": "PENERBITAN DAN PENYIARAN",
    "kod_bidang": "010302",
    "keterangan": "Perkhidmatan percetakan dan penerbitan bahan bacaan",
    "status": "Aktif",
}


def make_row(**overrides) -> dict:
    """Raw candidate as the vision service returns it."""
    row = dict(GOOD_ROW)
    row.update(overrides)
    return row


def make_tender(**overrides) -> Tender:
    return score_record(make_row(**overrides)).tender


def make_example(store: ExampleStore, ground_truth=None, iteration: int = 1, page: int = 1, **row_overrides):
    """Create an example from a raw row, validated when ground_truth is given."""
    example = store.create_example(
        source_url=f"https://tender.example.gov.my/senarai?page={page}",
        document_path=str(store.root / "docs" / f"page-{page}.pdf"),
        record=score_record(make_row(**row_overrides)),
        iteration=iteration,
        page_index=page,
    )
    if ground_truth is not None:
        example = store.attach_validation(example.id, ground_truth)
    return example


class FakeExtractor(Extractor):
    """Extractor double returning canned rows, or raising for listed paths."""

    def __init__(self, rows: List[dict] = None, failing: tuple = ()):
        super().__init__()
        self.rows = rows if rows is not None else [make_row()]
        self.failing = {str(p) for p in failing}
        self.calls: List[Path] = []
        self.installed: List[str] = []

    def install_instructions(self, text: str) -> None:
        super().install_instructions(text)
        self.installed.append(text)

    async def extract(self, document_path: Path) -> List[RawCandidate]:
        self.calls.append(Path(document_path))
        if str(document_path) in self.failing:
            raise TransientExternalError(f"rate limited on {document_path}")
        return [RawCandidate(data=dict(row), raw_text=str(row)) for row in self.rows]


@pytest.fixture
def project_root():
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def store(tmp_path):
    """Empty, initialized example store in a temp directory."""
    s = ExampleStore(tmp_path / "training_data")
    s.initialize()
    return s


@pytest.fixture
def good_row():
    return make_row()
