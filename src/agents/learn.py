"""One learning run: capture, extract, store, review, measure, report."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from errors import TransientExternalError
from improvement.review import review_pending
from schemas.enums import SessionStatus
from schemas.training import Example, MetricsSnapshot, Session
from settings import Settings
from telemetry import Telemetry
from training.store import ExampleStore
from verifier.accuracy import compute_accuracy, current_examples
from verifier.report import TrainingReport, build_training_report, write_report

from .capture import CaptureResult

logger = logging.getLogger(__name__)


@dataclass
class LearningRun:
    session: Session
    captures: List[CaptureResult] = field(default_factory=list)
    examples: List[Example] = field(default_factory=list)
    validated: List[Example] = field(default_factory=list)
    failed_pages: int = 0
    metrics: Optional[MetricsSnapshot] = None
    report: Optional[TrainingReport] = None


async def extract_captures(
    captures: List[CaptureResult],
    extractor,
    store: ExampleStore,
    iteration: int,
    delay: float,
    run: LearningRun,
    telemetry: Telemetry,
) -> None:
    """Extract each captured page in turn and store every row as an example."""
    for index, capture in enumerate(captures):
        if index > 0 and delay > 0:
            await asyncio.sleep(delay)
        with telemetry.span(f"page-{capture.page_index}"):
            try:
                candidates = await extractor.extract(capture.document_path)
            except TransientExternalError as e:
                logger.error(f"Extraction failed for page {capture.page_index}: {e}")
                run.failed_pages += 1
                continue

        if not candidates:
            logger.warning(f"No tender rows found on page {capture.page_index}")
            run.failed_pages += 1
            continue

        for candidate in candidates:
            run.examples.append(store.create_example(
                source_url=capture.source_url,
                document_path=str(capture.document_path),
                record=candidate.score(),
                iteration=iteration,
                screenshot_path=str(capture.screenshot_path) if capture.screenshot_path else None,
                page_index=capture.page_index,
            ))
        logger.info(f"Page {capture.page_index}: {len(candidates)} rows stored")


async def run_learning(
    settings: Settings,
    capture,
    extractor,
    store: ExampleStore,
    reviewer=None,
) -> LearningRun:
    """
    Run one learning session end to end.

    Args:
        settings: Runtime configuration (batch size, delay, threshold, limits)
        capture: Page capture collaborator with async capture_pages()
        extractor: Extraction collaborator with async extract()
        store: Example store
        reviewer: Validation interface; None skips the review step

    Returns:
        LearningRun with the session, stored examples, metrics and report
    """
    telemetry = Telemetry()
    store.initialize()
    session = store.start_session()
    run = LearningRun(session=session)
    logger.info(f"Learning session {session.id} started")

    iteration = store.next_iteration()

    with telemetry.span("capture"):
        run.captures = await capture.capture_pages(
            settings.page_url, settings.batch_size, settings.request_delay
        )
    logger.info(f"Captured {len(run.captures)}/{settings.batch_size} pages")

    with telemetry.span("extract"):
        await extract_captures(
            run.captures, extractor, store, iteration, settings.request_delay, run, telemetry
        )

    if reviewer is not None:
        with telemetry.span("review"):
            run.validated = review_pending(
                store, reviewer, settings.review_limit, settings.confidence_threshold
            )
        logger.info(f"{len(run.validated)} examples validated")

    with telemetry.span("measure"):
        accuracy = compute_accuracy(current_examples(store.list_validated()))
        succeeded = [e for e in run.examples if e.confidence > settings.confidence_threshold]
        average = (
            round(sum(e.confidence for e in run.examples) / len(run.examples), 3)
            if run.examples else 0.0
        )
        run.metrics = MetricsSnapshot(
            total_found=len(run.examples),
            succeeded=len(succeeded),
            failed=len(run.examples) - len(succeeded),
            average_confidence=average,
            accuracy=accuracy,
            processing_time_ms=telemetry.elapsed_ms(),
        )
        store.record_metrics(run.metrics)

        run.session = store.update_session(
            session.id,
            status=SessionStatus.COMPLETED,
            examples_collected=len(run.examples),
            validation_accuracy=accuracy,
        )

        run.report = build_training_report(store, settings.target_accuracy)
        write_report(store, run.report)

    logger.debug(telemetry.summary())
    logger.info(
        f"Session {session.id} complete: {len(run.examples)} examples, "
        f"{len(run.validated)} validated, accuracy {accuracy}%"
    )
    return run
