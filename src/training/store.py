"""File-backed store for training examples, validations, sessions and metrics."""
import json
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError

from errors import FatalStorageError, NotFoundError
from schemas.enums import METRICS_HISTORY_LIMIT
from schemas.tender import ScoredRecord, Tender
from schemas.training import Example, Iteration, MetricsSnapshot, Session

logger = logging.getLogger(__name__)


@dataclass
class ExampleStore:
    """
    Owns every Example and Session of a training run.

    Directory structure:
        {root}/
            examples/{id}.json                 one file per extraction attempt
            validations/{id}_validation.json   ground truth, once reviewed
            iterations/iteration-NNN/          per-round artifacts
            instructions/extraction.md         current extraction instructions
            metrics.json                       last 100 metrics snapshots
            sessions.json                      sessions with their iterations
            report.json                        latest report, overwritten

    Every write goes through a temp file and an atomic rename. Write failures
    and unreadable records raise FatalStorageError; nothing is retried here.
    """
    root: Path

    def __post_init__(self):
        self.root = Path(self.root)

    @property
    def examples_dir(self) -> Path:
        return self.root / "examples"

    @property
    def validations_dir(self) -> Path:
        return self.root / "validations"

    @property
    def iterations_dir(self) -> Path:
        return self.root / "iterations"

    @property
    def instructions_dir(self) -> Path:
        return self.root / "instructions"

    @property
    def metrics_path(self) -> Path:
        return self.root / "metrics.json"

    @property
    def sessions_path(self) -> Path:
        return self.root / "sessions.json"

    @property
    def report_path(self) -> Path:
        return self.root / "report.json"

    def initialize(self) -> None:
        """Create the directory layout and empty list files."""
        try:
            for directory in (self.examples_dir, self.validations_dir,
                              self.iterations_dir, self.instructions_dir):
                directory.mkdir(parents=True, exist_ok=True)
            for path in (self.metrics_path, self.sessions_path):
                if not path.exists():
                    self._write_json(path, [])
        except OSError as e:
            raise FatalStorageError(f"Cannot initialize store at {self.root}: {e}") from e
        logger.info(f"Training store initialized at {self.root}")

    def get_iteration_dir(self, iteration: int) -> Path:
        return self.iterations_dir / f"iteration-{iteration:03d}"

    # ------------------------------------------------------------------
    # Low-level file helpers
    # ------------------------------------------------------------------

    def write_text(self, path: Path, text: str) -> None:
        """Atomically replace a file's contents inside the store."""
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(text)
            os.replace(tmp_path, path)
        except OSError as e:
            raise FatalStorageError(f"Failed to write {path}: {e}") from e

    def read_text(self, path: Path) -> str:
        try:
            return path.read_text()
        except OSError as e:
            raise FatalStorageError(f"Failed to read {path}: {e}") from e

    def _write_json(self, path: Path, data: Any) -> None:
        self.write_text(path, json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def _read_json(self, path: Path) -> Any:
        try:
            return json.loads(self.read_text(path))
        except json.JSONDecodeError as e:
            raise FatalStorageError(f"Corrupt store file {path}: {e}") from e

    def _example_path(self, example_id: str) -> Path:
        return self.examples_dir / f"{example_id}.json"

    def _validation_path(self, example_id: str) -> Path:
        return self.validations_dir / f"{example_id}_validation.json"

    def _save_example(self, example: Example) -> None:
        self._write_json(self._example_path(example.id), example.model_dump(mode="json"))

    def _load_example(self, path: Path) -> Example:
        data = self._read_json(path)
        try:
            return Example.model_validate(data)
        except ValidationError as e:
            raise FatalStorageError(f"Invalid example record {path}: {e}") from e

    # ------------------------------------------------------------------
    # Examples
    # ------------------------------------------------------------------

    def create_example(
        self,
        source_url: str,
        document_path: str,
        record: ScoredRecord,
        iteration: int,
        screenshot_path: Optional[str] = None,
        page_index: Optional[int] = None,
        supersedes: Optional[str] = None,
    ) -> Example:
        """Persist a new, unvalidated example under a fresh id."""
        example_id = str(uuid.uuid4())
        while self._example_path(example_id).exists():
            example_id = str(uuid.uuid4())

        sequence = len(list(self.examples_dir.glob("*.json"))) + 1
        example = Example(
            id=example_id,
            sequence=sequence,
            source_url=source_url,
            document_path=str(document_path),
            screenshot_path=screenshot_path,
            page_index=page_index,
            extraction=record,
            iteration=iteration,
            supersedes=supersedes,
        )
        self._save_example(example)
        logger.info(f"Training example saved: {example_id} (iteration {iteration})")
        return example

    def get_example(self, example_id: str) -> Example:
        path = self._example_path(example_id)
        if not path.exists():
            raise NotFoundError("Example", example_id)
        return self._load_example(path)

    def attach_validation(self, example_id: str, ground_truth: Tender) -> Example:
        """Attach human ground truth to an example. Last write wins."""
        example = self.get_example(example_id)
        validated = example.model_copy(update={
            "ground_truth": ground_truth,
            "validated_at": datetime.now(timezone.utc),
        })
        self._write_json(self._validation_path(example_id), ground_truth.model_dump(mode="json"))
        self._save_example(validated)
        logger.info(f"Example validated: {example_id}")
        return validated

    def list_examples(self) -> List[Example]:
        """All examples in creation order."""
        if not self.examples_dir.exists():
            return []
        examples = [self._load_example(p) for p in self.examples_dir.glob("*.json")]
        return sorted(examples, key=lambda e: (e.sequence, e.created_at, e.id))

    def list_unvalidated(self) -> List[Example]:
        return [e for e in self.list_examples() if not e.validated]

    def list_validated(self, iteration: Optional[int] = None) -> List[Example]:
        """Validated examples, optionally for one iteration, by iteration ascending."""
        examples = [
            e for e in self.list_examples()
            if e.validated and (iteration is None or e.iteration == iteration)
        ]
        # sorted() is stable, so creation order holds within an iteration
        return sorted(examples, key=lambda e: e.iteration)

    def next_iteration(self) -> int:
        """
        1 + the highest iteration seen, 1 when empty.

        Counts validated examples and the iterations recorded on sessions, so a
        round that stored no replacement examples still consumes its number.
        """
        numbers = [e.iteration for e in self.list_validated()]
        numbers += [i.iteration_number for s in self.list_sessions() for i in s.iterations]
        return max(numbers, default=0) + 1

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def list_sessions(self) -> List[Session]:
        if not self.sessions_path.exists():
            return []
        data = self._read_json(self.sessions_path)
        try:
            return [Session.model_validate(s) for s in data]
        except ValidationError as e:
            raise FatalStorageError(f"Invalid sessions file {self.sessions_path}: {e}") from e

    def _save_sessions(self, sessions: List[Session]) -> None:
        self._write_json(self.sessions_path, [s.model_dump(mode="json") for s in sessions])

    def start_session(self) -> Session:
        session = Session(id=str(uuid.uuid4()))
        sessions = self.list_sessions()
        sessions.append(session)
        self._save_sessions(sessions)
        logger.info(f"Learning session created: {session.id}")
        return session

    def get_session(self, session_id: str) -> Session:
        for session in self.list_sessions():
            if session.id == session_id:
                return session
        raise NotFoundError("Session", session_id)

    def latest_session(self) -> Optional[Session]:
        sessions = self.list_sessions()
        return sessions[-1] if sessions else None

    def update_session(self, session_id: str, **changes: Any) -> Session:
        """Update session bookkeeping fields (status, examples_collected)."""
        if "iterations" in changes:
            raise ValueError("Iterations are append-only; use append_iteration")
        sessions = self.list_sessions()
        for i, session in enumerate(sessions):
            if session.id == session_id:
                sessions[i] = session.model_copy(update=changes)
                self._save_sessions(sessions)
                return sessions[i]
        raise NotFoundError("Session", session_id)

    def append_iteration(self, session_id: str, iteration: Iteration) -> Session:
        sessions = self.list_sessions()
        for i, session in enumerate(sessions):
            if session.id == session_id:
                sessions[i] = session.model_copy(update={
                    "iterations": [*session.iterations, iteration],
                    "validation_accuracy": iteration.accuracy_after,
                })
                self._save_sessions(sessions)
                logger.info(
                    f"Iteration {iteration.iteration_number} added to session {session_id} "
                    f"(accuracy {iteration.accuracy_after}%)"
                )
                return sessions[i]
        raise NotFoundError("Session", session_id)

    # ------------------------------------------------------------------
    # Metrics and report
    # ------------------------------------------------------------------

    def list_metrics(self) -> List[MetricsSnapshot]:
        if not self.metrics_path.exists():
            return []
        data = self._read_json(self.metrics_path)
        try:
            return [MetricsSnapshot.model_validate(m) for m in data]
        except ValidationError as e:
            raise FatalStorageError(f"Invalid metrics file {self.metrics_path}: {e}") from e

    def record_metrics(self, snapshot: MetricsSnapshot) -> None:
        """Append a snapshot, keeping only the most recent entries."""
        history = self.list_metrics()
        history.append(snapshot)
        history = history[-METRICS_HISTORY_LIMIT:]
        self._write_json(self.metrics_path, [m.model_dump(mode="json") for m in history])
        logger.info(
            f"Metrics saved: accuracy {snapshot.accuracy}%, "
            f"{snapshot.succeeded}/{snapshot.total_found} succeeded"
        )

    def latest_metrics(self) -> Optional[MetricsSnapshot]:
        history = self.list_metrics()
        return history[-1] if history else None

    def save_report(self, report: Any) -> Path:
        """Overwrite report.json with the given JSON-serializable report."""
        self._write_json(self.report_path, report)
        return self.report_path

    def load_report(self) -> Optional[Any]:
        if self.report_path.exists():
            return self._read_json(self.report_path)
        return None

    def save_iteration_artifact(self, iteration: int, name: str, data: Any) -> Path:
        """Write a JSON artifact into an iteration's folder."""
        path = self.get_iteration_dir(iteration) / name
        self._write_json(path, data)
        return path
