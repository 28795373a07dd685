"""One training round: analyze failures, refine, re-extract, record.

State machine:

    Idle -> AnalyzingFailures -> Refining -> ReExtracting -> Recording -> Idle

A round with no failing examples goes straight back to Idle without touching
the extraction service or writing an iteration record. Whether to run another
round is the caller's decision.
"""
import asyncio
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

from errors import TransientExternalError
from schemas.enums import FailurePattern
from schemas.tender import ScoredRecord, Tender
from schemas.training import Example, Iteration
from telemetry import Telemetry
from training.store import ExampleStore
from verifier.accuracy import (
    classify_failure_patterns,
    compute_accuracy,
    current_examples,
    is_correct,
    ordered_patterns,
    select_failures,
)
from verifier.fields import record_similarity

from .apply import apply_instructions
from .refiner import refine

logger = logging.getLogger(__name__)

DEFAULT_REEXTRACT_LIMIT = 10


class ControllerState(str, Enum):
    IDLE = "idle"
    ANALYZING_FAILURES = "analyzing_failures"
    REFINING = "refining"
    RE_EXTRACTING = "re_extracting"
    RECORDING = "recording"


class RoundStatus(str, Enum):
    NO_IMPROVEMENT_NEEDED = "no_improvement_needed"
    COMPLETED = "completed"


@dataclass
class RoundResult:
    status: RoundStatus
    accuracy_before: float
    accuracy_after: float
    examples_considered: int
    failures: int = 0
    patterns: List[FailurePattern] = field(default_factory=list)
    reprocessed: int = 0
    improved: int = 0
    fixed: int = 0
    skipped: int = 0
    instructions_version: Optional[str] = None
    iteration: Optional[Iteration] = None

    @property
    def delta(self) -> float:
        return round(self.accuracy_after - self.accuracy_before, 2)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["patterns"] = [p.value for p in self.patterns]
        data["iteration"] = self.iteration.model_dump(mode="json") if self.iteration else None
        return data


def match_candidate(ground_truth: Tender, candidates: Sequence[ScoredRecord]) -> ScoredRecord:
    """
    Pick the re-extracted row that corresponds to a ground-truth tender.

    A row with the same sequence number wins; otherwise the row with the
    highest mean field similarity.
    """
    same_seq = [c for c in candidates if ground_truth.seq is not None and c.tender.seq == ground_truth.seq]
    pool = same_seq or list(candidates)

    def mean_similarity(candidate: ScoredRecord) -> float:
        scores = record_similarity(candidate.tender, ground_truth)
        return sum(scores.values()) / len(scores)

    return max(pool, key=mean_similarity)


class IterationController:
    """
    Runs one training round per call to run_round().

    Args:
        store: Example store, the only place round state is read from or written to
        extractor: Extraction collaborator with install_instructions() and async extract()
        reextract_limit: Most failing examples re-extracted in one round
        request_delay: Seconds between consecutive extraction calls
    """

    def __init__(
        self,
        store: ExampleStore,
        extractor,
        reextract_limit: int = DEFAULT_REEXTRACT_LIMIT,
        request_delay: float = 3.0,
        telemetry: Optional[Telemetry] = None,
    ):
        self.store = store
        self.extractor = extractor
        self.reextract_limit = reextract_limit
        self.request_delay = request_delay
        self.telemetry = telemetry or Telemetry()
        self.state = ControllerState.IDLE

    async def run_round(self, session_id: str) -> RoundResult:
        self.store.get_session(session_id)
        try:
            return await self._run_round(session_id)
        finally:
            self.state = ControllerState.IDLE

    async def _run_round(self, session_id: str) -> RoundResult:
        # --- AnalyzingFailures ---
        self.state = ControllerState.ANALYZING_FAILURES
        with self.telemetry.span("analyze"):
            validated = current_examples(self.store.list_validated())
            accuracy_before = compute_accuracy(validated)
            failures = select_failures(validated)
        logger.info(f"Current accuracy {accuracy_before}%, {len(failures)} failing examples")

        if not failures:
            logger.info("All critical fields match. No improvement needed.")
            return RoundResult(
                status=RoundStatus.NO_IMPROVEMENT_NEEDED,
                accuracy_before=accuracy_before,
                accuracy_after=accuracy_before,
                examples_considered=len(validated),
            )

        iteration_number = self.store.next_iteration()
        logger.info(f"Starting iteration {iteration_number}")

        # --- Refining ---
        self.state = ControllerState.REFINING
        with self.telemetry.span("refine"):
            patterns = ordered_patterns(classify_failure_patterns(failures))
            instructions = refine(patterns)
            old_version, new_version = apply_instructions(self.store, instructions, iteration_number)
            self.extractor.install_instructions(instructions.text)
        logger.info(f"Failure patterns: {', '.join(p.value for p in patterns)}")

        # --- ReExtracting ---
        self.state = ControllerState.RE_EXTRACTING
        result = RoundResult(
            status=RoundStatus.COMPLETED,
            accuracy_before=accuracy_before,
            accuracy_after=accuracy_before,
            examples_considered=len(validated),
            failures=len(failures),
            patterns=patterns,
            instructions_version=new_version,
        )
        with self.telemetry.span("re_extract"):
            for index, example in enumerate(failures[:self.reextract_limit]):
                if index > 0 and self.request_delay > 0:
                    await asyncio.sleep(self.request_delay)
                await self._reextract_one(example, iteration_number, result)

        # --- Recording ---
        self.state = ControllerState.RECORDING
        with self.telemetry.span("record"):
            result.accuracy_after = compute_accuracy(current_examples(self.store.list_validated()))
            improvements = [
                f"Improved prompt based on {len(failures)} failures",
                f"Instructions v{old_version} -> v{new_version} targeting: "
                + ", ".join(p.value for p in patterns),
                f"Reprocessed {result.reprocessed} examples with {result.improved} showing improvement",
            ]
            if result.fixed:
                improvements.append(f"{result.fixed} re-extractions now match all critical fields")
            if result.skipped:
                improvements.append(f"{result.skipped} re-extractions skipped after extraction failures")

            iteration = Iteration(
                iteration_number=iteration_number,
                examples_processed=len(validated),
                accuracy_before=accuracy_before,
                accuracy_after=result.accuracy_after,
                improvements=improvements,
            )
            self.store.append_iteration(session_id, iteration)
            result.iteration = iteration
            self._save_round(iteration_number, result)

        logger.info(
            f"Iteration {iteration_number}: accuracy {accuracy_before}% -> {result.accuracy_after}%"
        )
        return result

    async def _reextract_one(self, example: Example, iteration_number: int, result: RoundResult) -> None:
        logger.debug(f"Re-extracting example {example.id} from {example.document_path}")
        try:
            candidates = await self.extractor.extract(Path(example.document_path))
        except TransientExternalError as e:
            logger.error(f"Failed to reprocess example {example.id}: {e}")
            result.skipped += 1
            return

        if not candidates:
            logger.warning(f"Re-extraction of {example.id} returned no rows")
            result.skipped += 1
            return

        scored = match_candidate(example.ground_truth, [c.score() for c in candidates])
        if scored.overall_confidence > example.confidence:
            result.improved += 1
            logger.info(
                f"Improvement: {example.confidence:.3f} -> {scored.overall_confidence:.3f}"
            )

        replacement = self.store.create_example(
            source_url=example.source_url,
            document_path=example.document_path,
            record=scored,
            iteration=iteration_number,
            screenshot_path=example.screenshot_path,
            page_index=example.page_index,
            supersedes=example.id,
        )
        replacement = self.store.attach_validation(replacement.id, example.ground_truth)
        result.reprocessed += 1
        if is_correct(replacement):
            result.fixed += 1

    def _save_round(self, iteration_number: int, result: RoundResult) -> Path:
        data = result.to_dict()
        data["timing"] = self.telemetry.to_dict()
        return self.store.save_iteration_artifact(iteration_number, "round.json", data)
