"""Batch orchestration of image extraction, matching, and confirmation.

Pending jobs are processed one at a time in submission order: extraction,
evaluation, and, for ``auto_applied`` verdicts, an immediate commit. A
failure in one job is recorded on that job and never stops the batch.
Operator confirmations of review items fan out concurrently and report
which jobs succeeded and which failed.
"""

import asyncio
import mimetypes
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace

from dispatch_ocr.errors import InvalidUpload, NoExtraction
from dispatch_ocr.matching.commit import commit_match
from dispatch_ocr.matching.evaluator import MatchEvaluator
from dispatch_ocr.models import (
    ConfirmReport,
    DeliveryStatus,
    MatchConfidence,
    MatchResult,
    MatchStatus,
)
from dispatch_ocr.ocr.processor import ImageProcessor
from dispatch_ocr.store.base import DispatchStore
from dispatch_ocr.utils.config import AppConfig
from dispatch_ocr.utils.logger import get_logger

from .jobs import ImageJob, JobEvent, JobEventKind, JobState

logger = get_logger(__name__)

JobListener = Callable[[JobEvent], None]


@dataclass
class BatchSummary:
    """Aggregate counts for display."""

    total: int
    pending: int
    processing: int
    completed: int
    errors: int
    auto_applied: int
    needs_review: int
    no_match: int
    high_confidence_needs_review: int

    @property
    def total_processed(self) -> int:
        return self.completed


class BatchOrchestrator:
    """Drives a batch of image jobs through the OCR match pipeline.

    Args:
        processor: Extracts an ``OCRResult`` from image bytes.
        evaluator: Grades extractions against the dispatch store.
        actor: Identity recorded on committed payments.
        max_file_size_mb: Upper bound for accepted images.
    """

    def __init__(
        self,
        processor: ImageProcessor,
        evaluator: MatchEvaluator,
        actor: str = "ocr_auto",
        max_file_size_mb: int = 10,
    ) -> None:
        self.processor = processor
        self.evaluator = evaluator
        self.actor = actor
        self.max_file_size = max_file_size_mb * 1024 * 1024
        self.max_file_size_mb = max_file_size_mb
        self._jobs: dict[str, ImageJob] = {}
        self._selected: set[str] = set()
        self._confirming: set[str] = set()
        self._listeners: list[JobListener] = []

    @classmethod
    def from_config(cls, config: AppConfig, store: DispatchStore) -> "BatchOrchestrator":
        """Build an orchestrator wired to a dispatch store."""
        return cls(
            processor=ImageProcessor.from_config(config),
            evaluator=MatchEvaluator(store, config.matching),
            actor=config.matching.ocr_actor,
            max_file_size_mb=config.batch.max_file_size_mb,
        )

    @property
    def store(self) -> DispatchStore:
        return self.evaluator.store

    @property
    def jobs(self) -> list[ImageJob]:
        """Jobs in submission order."""
        return list(self._jobs.values())

    @property
    def selected(self) -> set[str]:
        return set(self._selected)

    def get(self, job_id: str) -> ImageJob:
        return self._jobs[job_id]

    def subscribe(self, listener: JobListener) -> Callable[[], None]:
        """Register a listener for job events.

        Returns:
            A callable that unregisters the listener.
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # Intake

    def add_image(
        self, data: bytes, filename: str, content_type: str | None = None
    ) -> ImageJob:
        """Accept an image into the batch as a pending job.

        Raises:
            InvalidUpload: If the file is too large or not an image.
        """
        if len(data) > self.max_file_size:
            raise InvalidUpload(
                f"{filename}: File size must be less than {self.max_file_size_mb}MB"
            )
        content_type = content_type or mimetypes.guess_type(filename)[0]
        if content_type and not content_type.startswith("image/"):
            raise InvalidUpload(f"{filename}: Must be a valid image file")

        job = ImageJob(filename=filename, data=data, content_type=content_type)
        self._jobs[job.job_id] = job
        logger.debug("Accepted %s as job %s", filename, job.job_id)
        self._emit(JobEventKind.ADDED, job)
        return job

    def add_images(
        self, files: Iterable[tuple[str, bytes, str | None]]
    ) -> tuple[list[ImageJob], list[str]]:
        """Accept several images, collecting rejections instead of raising.

        Args:
            files: ``(filename, data, content_type)`` triples.

        Returns:
            Accepted jobs and rejection messages.
        """
        accepted: list[ImageJob] = []
        errors: list[str] = []
        for filename, data, content_type in files:
            try:
                accepted.append(self.add_image(data, filename, content_type))
            except InvalidUpload as exc:
                logger.warning("Rejected upload: %s", exc)
                errors.append(str(exc))
        return accepted, errors

    def remove(self, job_id: str) -> None:
        """Discard a job from the batch.

        Raises:
            KeyError: If the job is not in the batch.
        """
        job = self._jobs.pop(job_id)
        self._selected.discard(job_id)
        self._emit(JobEventKind.REMOVED, job)

    def clear(self) -> None:
        for job_id in list(self._jobs):
            self.remove(job_id)

    # Selection

    def select(self, job_id: str) -> None:
        if job_id not in self._jobs:
            raise KeyError(job_id)
        self._selected.add(job_id)

    def deselect(self, job_id: str) -> None:
        self._selected.discard(job_id)

    def toggle_selection(self, job_id: str) -> None:
        if job_id in self._selected:
            self.deselect(job_id)
        else:
            self.select(job_id)

    # Processing

    async def process_pending(self) -> list[ImageJob]:
        """Process every pending job sequentially in submission order.

        Jobs already processing or in a terminal state are left alone, so
        calling this again only picks up newly added images.

        Returns:
            The jobs processed by this call.
        """
        processed: list[ImageJob] = []
        for job_id in list(self._jobs):
            job = self._jobs.get(job_id)
            if job is None or job.state != JobState.PENDING:
                continue
            await self._process_job(job)
            processed.append(job)

        logger.info("Processed %d jobs", len(processed))
        return processed

    async def _process_job(self, job: ImageJob) -> None:
        job.start()
        self._emit(JobEventKind.TRANSITION, job)

        try:
            extraction = await asyncio.to_thread(self.processor.extract, job.data)
            if extraction.tracking_id is None and extraction.amount is None:
                raise NoExtraction()

            result = await asyncio.to_thread(self.evaluator.evaluate, extraction)

            if result.status == MatchStatus.AUTO_APPLIED and result.dispatch:
                committed = await asyncio.to_thread(
                    commit_match, self.store, result.dispatch.id, extraction, self.actor
                )
                if committed:
                    self._mark_paid(result)
                    result.message = "High confidence match - payment applied"
                else:
                    result.status = MatchStatus.NEEDS_REVIEW
                    result.message = "Automatic update failed - confirm manually"
        except Exception as exc:
            logger.error("Failed to process %s: %s", job.filename, exc)
            job.fail(str(exc) or "Processing failed")
        else:
            job.complete(result)
            logger.info("Job %s (%s): %s", job.job_id, job.filename, result.status)

        self._emit(JobEventKind.TRANSITION, job)

    # Confirmation

    async def confirm(self, job_id: str) -> bool:
        """Commit one review item and mark it applied.

        Returns:
            ``True`` if the payment was stored; ``False`` if the job is not
            confirmable or the commit failed.

        Raises:
            KeyError: If the job is not in the batch.
        """
        return await self._confirm_job(self._jobs[job_id])

    async def confirm_selected(self, job_ids: Iterable[str] | None = None) -> ConfirmReport:
        """Commit the selected review items concurrently.

        Args:
            job_ids: Jobs to confirm. Defaults to the current selection.

        Returns:
            Which jobs succeeded and which failed.
        """
        ids = list(job_ids) if job_ids is not None else list(self._selected)
        report = await self._confirm_many(ids)
        self._selected.difference_update(report.succeeded)
        return report

    async def confirm_all_high_confidence(self) -> ConfirmReport:
        """Commit every high-confidence item still awaiting review."""
        ids = [
            job.job_id
            for job in self._jobs.values()
            if job.result is not None
            and job.result.status == MatchStatus.NEEDS_REVIEW
            and job.result.match_confidence == MatchConfidence.HIGH
        ]
        return await self._confirm_many(ids)

    async def _confirm_many(self, job_ids: list[str]) -> ConfirmReport:
        job_ids = list(dict.fromkeys(job_ids))
        jobs = [self._jobs.get(job_id) for job_id in job_ids]
        outcomes = await asyncio.gather(
            *(self._confirm_job(job) if job else _false() for job in jobs)
        )

        report = ConfirmReport()
        for job_id, ok in zip(job_ids, outcomes):
            (report.succeeded if ok else report.failed).append(job_id)
        logger.info(
            "Confirmed %d of %d jobs (%d failed)",
            report.success_count,
            len(job_ids),
            len(report.failed),
        )
        return report

    async def _confirm_job(self, job: ImageJob) -> bool:
        result = job.result
        if job.state != JobState.COMPLETED or result is None or not result.is_confirmable:
            logger.warning("Job %s is not awaiting confirmation", job.job_id)
            return False
        if job.job_id in self._confirming:
            logger.warning("Job %s is already being confirmed", job.job_id)
            return False

        # Claimed before the first await so overlapping confirmations commit once.
        self._confirming.add(job.job_id)
        try:
            ok = await asyncio.to_thread(
                commit_match, self.store, result.dispatch.id, result.extraction, self.actor
            )
        finally:
            self._confirming.discard(job.job_id)

        if ok:
            self._mark_paid(result)
            result.status = MatchStatus.AUTO_APPLIED
            result.message = "Payment confirmed by operator"
            self._emit(JobEventKind.CONFIRMED, job)
        return ok

    def _mark_paid(self, result: MatchResult) -> None:
        """Reflect a stored payment on the result's dispatch snapshot."""
        result.dispatch = replace(
            result.dispatch,
            payment_received=True,
            payment_received_by=self.actor,
            delivery_status=DeliveryStatus.DELIVERED,
            ocr_processed=True,
            ocr_confidence=result.extraction.confidence,
        )

    # Reporting

    def summary(self) -> BatchSummary:
        jobs = self._jobs.values()
        results = [j.result for j in jobs if j.state == JobState.COMPLETED and j.result]
        return BatchSummary(
            total=len(self._jobs),
            pending=sum(1 for j in jobs if j.state == JobState.PENDING),
            processing=sum(1 for j in jobs if j.state == JobState.PROCESSING),
            completed=len(results),
            errors=sum(1 for j in jobs if j.state == JobState.ERROR),
            auto_applied=sum(1 for r in results if r.status == MatchStatus.AUTO_APPLIED),
            needs_review=sum(1 for r in results if r.status == MatchStatus.NEEDS_REVIEW),
            no_match=sum(1 for r in results if r.status == MatchStatus.NO_MATCH),
            high_confidence_needs_review=sum(
                1
                for r in results
                if r.status == MatchStatus.NEEDS_REVIEW
                and r.match_confidence == MatchConfidence.HIGH
            ),
        )

    def _emit(self, kind: JobEventKind, job: ImageJob) -> None:
        event = JobEvent(kind=kind, job_id=job.job_id, state=job.state, job=job)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Job listener failed on %s event", kind)


async def _false() -> bool:
    return False
