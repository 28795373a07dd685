"""Tests for an end-to-end learning run with fake collaborators."""
import asyncio
from pathlib import Path

from agents.capture import CaptureResult
from agents.learn import run_learning
from improvement.review import Review, ScriptedReviewer
from schemas.enums import ReviewAction, SessionStatus
from settings import Settings
from training.store import ExampleStore

from conftest import FakeExtractor, make_row


class FakeCapture:
    """Pretends every page renders; records the URLs it was asked for."""

    def __init__(self, storage_dir: Path, missing_pages=()):
        self.storage_dir = storage_dir
        self.missing_pages = set(missing_pages)
        self.urls = []

    async def capture_pages(self, url_for_page, total_pages, delay):
        results = []
        for page in range(1, total_pages + 1):
            self.urls.append(url_for_page(page))
            if page in self.missing_pages:
                continue
            results.append(CaptureResult(
                id=f"cap-{page}",
                document_path=self.storage_dir / f"page-{page}.pdf",
                source_url=url_for_page(page),
                page_index=page,
            ))
        return results


def make_settings(tmp_path, **overrides):
    values = dict(
        website_url="https://tender.example.gov.my/senarai",
        training_dir=tmp_path / "training_data",
        storage_dir=tmp_path / "pdfs",
        batch_size=3,
        request_delay_ms=0,
        review_limit=5,
    )
    values.update(overrides)
    return Settings(**values)


def learn(settings, capture, extractor, reviewer=None):
    store = ExampleStore(settings.training_dir)
    return store, asyncio.run(run_learning(settings, capture, extractor, store, reviewer))


class TestRunLearning:
    def test_stores_examples_and_report(self, tmp_path):
        settings = make_settings(tmp_path)
        capture = FakeCapture(settings.storage_dir)
        extractor = FakeExtractor(rows=[make_row(bil=1), make_row(bil=2, kod_bidang="123")])

        store, run = learn(settings, capture, extractor)

        assert capture.urls[0] == "https://tender.example.gov.my/senarai?page=1"
        assert len(extractor.calls) == 3
        assert len(run.examples) == 6
        assert all(e.iteration == 1 and not e.validated for e in run.examples)
        assert run.metrics.total_found == 6
        assert run.metrics.succeeded == 3
        assert run.metrics.failed == 3
        assert store.latest_metrics().total_found == 6
        assert run.session.status == SessionStatus.COMPLETED
        assert run.session.examples_collected == 6
        assert store.load_report()["total_examples"] == 6

    def test_failed_pages_skipped(self, tmp_path):
        settings = make_settings(tmp_path)
        capture = FakeCapture(settings.storage_dir, missing_pages={2})
        failing = (settings.storage_dir / "page-3.pdf",)
        extractor = FakeExtractor(failing=failing)

        _, run = learn(settings, capture, extractor)

        assert len(run.captures) == 2
        assert run.failed_pages == 1
        assert len(run.examples) == 1

    def test_review_validates(self, tmp_path):
        settings = make_settings(tmp_path, batch_size=1)
        reviewer = ScriptedReviewer([Review(ReviewAction.ACCEPT)])

        store, run = learn(settings, FakeCapture(settings.storage_dir), FakeExtractor(), reviewer)

        assert len(run.validated) == 1
        assert run.metrics.accuracy == 100.0
        assert run.session.validation_accuracy == 100.0
        assert store.next_iteration() == 2

    def test_second_run_uses_next_iteration(self, tmp_path):
        settings = make_settings(tmp_path, batch_size=1)
        reviewer = ScriptedReviewer([Review(ReviewAction.ACCEPT)])
        learn(settings, FakeCapture(settings.storage_dir), FakeExtractor(), reviewer)

        store, run = learn(settings, FakeCapture(settings.storage_dir), FakeExtractor())

        assert [e.iteration for e in run.examples] == [2]
        assert len(store.list_sessions()) == 2
