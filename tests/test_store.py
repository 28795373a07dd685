"""Tests for the file-backed example store."""
import json
import random

import pytest

from errors import FatalStorageError, NotFoundError
from schemas.training import Iteration, MetricsSnapshot
from training.store import ExampleStore
from verifier.fields import score_record

from conftest import make_example, make_row, make_tender


class TestInitialize:
    def test_layout(self, store):
        assert store.examples_dir.is_dir()
        assert store.validations_dir.is_dir()
        assert store.iterations_dir.is_dir()
        assert json.loads(store.metrics_path.read_text()) == []
        assert json.loads(store.sessions_path.read_text()) == []

    def test_idempotent(self, store):
        store.start_session()
        store.initialize()
        assert len(store.list_sessions()) == 1

    def test_empty_store_without_initialize(self, tmp_path):
        store = ExampleStore(tmp_path / "missing")
        assert store.list_examples() == []
        assert store.list_sessions() == []
        assert store.latest_metrics() is None
        assert store.next_iteration() == 1


class TestExamples:
    def test_create_unvalidated(self, store):
        example = make_example(store)
        assert not example.validated
        assert example.ground_truth is None
        assert example.sequence == 1
        assert (store.examples_dir / f"{example.id}.json").exists()

    def test_ids_unique(self, store):
        ids = {make_example(store).id for _ in range(20)}
        assert len(ids) == 20

    def test_get_unknown(self, store):
        with pytest.raises(NotFoundError):
            store.get_example("nope")

    def test_attach_validation(self, store):
        example = make_example(store)
        validated = store.attach_validation(example.id, make_tender())
        assert validated.validated
        assert validated.validated_at is not None
        assert (store.validations_dir / f"{example.id}_validation.json").exists()
        assert store.get_example(example.id).validated

    def test_attach_validation_unknown(self, store):
        with pytest.raises(NotFoundError):
            store.attach_validation("nope", make_tender())

    def test_attach_validation_last_write_wins(self, store):
        example = make_example(store)
        store.attach_validation(example.id, make_tender(kod_bidang="111111"))
        store.attach_validation(example.id, make_tender(kod_bidang="222222"))
        assert store.get_example(example.id).ground_truth.code == "222222"
        saved = json.loads((store.validations_dir / f"{example.id}_validation.json").read_text())
        assert saved["code"] == "222222"

    def test_list_unvalidated_creation_order(self, store):
        created = [make_example(store, bil=n) for n in range(1, 6)]
        store.attach_validation(created[2].id, make_tender())
        pending = store.list_unvalidated()
        assert [e.id for e in pending] == [created[i].id for i in (0, 1, 3, 4)]

    def test_list_validated_ordered_by_iteration(self, store):
        third = make_example(store, ground_truth=make_tender(), iteration=3)
        first = make_example(store, ground_truth=make_tender(), iteration=1)
        second = make_example(store, ground_truth=make_tender(), iteration=2)
        make_example(store, iteration=4)
        assert [e.id for e in store.list_validated()] == [first.id, second.id, third.id]
        assert [e.id for e in store.list_validated(iteration=2)] == [second.id]

    def test_next_iteration(self, store):
        assert store.next_iteration() == 1
        make_example(store, iteration=5)
        assert store.next_iteration() == 1
        make_example(store, ground_truth=make_tender(), iteration=2)
        assert store.next_iteration() == 3

    def test_next_iteration_counts_recorded_iterations(self, store):
        make_example(store, ground_truth=make_tender(), iteration=1)
        session = store.start_session()
        store.append_iteration(session.id, Iteration(
            iteration_number=4, examples_processed=1,
            accuracy_before=0.0, accuracy_after=0.0,
        ))
        assert store.next_iteration() == 5

    def test_validated_iff_ground_truth(self, store):
        rng = random.Random(7)
        for _ in range(30):
            example = make_example(store, bil=rng.randint(1, 50))
            if rng.random() < 0.5:
                store.attach_validation(example.id, make_tender(bil=rng.randint(1, 50)))
        for example in store.list_examples():
            assert example.validated == (example.ground_truth is not None)
            validation_file = store.validations_dir / f"{example.id}_validation.json"
            assert validation_file.exists() == example.validated

    def test_corrupt_example_is_fatal(self, store):
        example = make_example(store)
        (store.examples_dir / f"{example.id}.json").write_text("{not json")
        with pytest.raises(FatalStorageError):
            store.list_examples()

    def test_invalid_example_is_fatal(self, store):
        example = make_example(store)
        (store.examples_dir / f"{example.id}.json").write_text('{"id": 1}')
        with pytest.raises(FatalStorageError):
            store.get_example(example.id)

    def test_confidence_survives_round_trip(self, store):
        record = score_record(make_row(kod_bidang="12345"))
        example = store.create_example("u", "d.pdf", record, iteration=1)
        assert store.get_example(example.id).confidence == record.overall_confidence


class TestSessions:
    def test_start_and_get(self, store):
        session = store.start_session()
        assert store.get_session(session.id).id == session.id
        assert store.latest_session().id == session.id

    def test_get_unknown(self, store):
        with pytest.raises(NotFoundError):
            store.get_session("nope")

    def test_append_iteration(self, store):
        session = store.start_session()
        for n in (1, 2):
            store.append_iteration(session.id, Iteration(
                iteration_number=n, examples_processed=10,
                accuracy_before=80.0 + n, accuracy_after=85.0 + n,
            ))
        updated = store.get_session(session.id)
        assert [i.iteration_number for i in updated.iterations] == [1, 2]
        assert updated.validation_accuracy == 87.0

    def test_append_iteration_unknown(self, store):
        with pytest.raises(NotFoundError):
            store.append_iteration("nope", Iteration(
                iteration_number=1, examples_processed=0,
                accuracy_before=0.0, accuracy_after=0.0,
            ))

    def test_update_session_rejects_iterations(self, store):
        session = store.start_session()
        with pytest.raises(ValueError):
            store.update_session(session.id, iterations=[])

    def test_update_session(self, store):
        session = store.start_session()
        updated = store.update_session(session.id, examples_collected=12)
        assert updated.examples_collected == 12
        assert store.get_session(session.id).examples_collected == 12


class TestMetrics:
    def test_latest(self, store):
        assert store.latest_metrics() is None
        store.record_metrics(MetricsSnapshot(total_found=3, succeeded=2, failed=1))
        store.record_metrics(MetricsSnapshot(total_found=5, succeeded=5, failed=0))
        assert store.latest_metrics().total_found == 5

    def test_history_capped(self, store):
        for n in range(105):
            store.record_metrics(MetricsSnapshot(total_found=n, succeeded=n, failed=0))
        history = store.list_metrics()
        assert len(history) == 100
        assert history[0].total_found == 5
        assert history[-1].total_found == 104


class TestReport:
    def test_report_overwritten(self, store):
        store.save_report({"accuracy": 90})
        store.save_report({"accuracy": 95})
        assert store.load_report() == {"accuracy": 95}

    def test_no_report(self, store):
        assert store.load_report() is None

    def test_write_failure_is_fatal(self, store, monkeypatch):
        def refuse(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("training.store.os.replace", refuse)
        with pytest.raises(FatalStorageError):
            store.save_report({"accuracy": 95})
