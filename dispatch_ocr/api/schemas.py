"""Pydantic request/response schemas for the FastAPI endpoints."""

from pydantic import BaseModel

from dispatch_ocr.batch.jobs import ImageJob, JobState
from dispatch_ocr.batch.orchestrator import BatchSummary
from dispatch_ocr.models import (
    ConfirmReport,
    Dispatch,
    MatchConfidence,
    MatchResult,
    MatchStatus,
    OCRResult,
)


class ExtractionResponse(BaseModel):
    """Fields read from one image."""

    tracking_id: str | None
    amount: float | None
    confidence: float
    raw_text: str

    @classmethod
    def from_result(cls, result: OCRResult) -> "ExtractionResponse":
        return cls(
            tracking_id=result.tracking_id,
            amount=float(result.amount) if result.amount is not None else None,
            confidence=result.confidence,
            raw_text=result.raw_text,
        )


class DispatchResponse(BaseModel):
    """The dispatch fields shown next to a match."""

    id: str
    tracking_id: str
    amount: float
    payment_received: bool

    @classmethod
    def from_dispatch(cls, dispatch: Dispatch) -> "DispatchResponse":
        return cls(
            id=dispatch.id,
            tracking_id=dispatch.tracking_id,
            amount=float(dispatch.amount),
            payment_received=dispatch.payment_received,
        )


class MatchResultResponse(BaseModel):
    """Verdict for one image."""

    extraction: ExtractionResponse
    dispatch: DispatchResponse | None
    match_confidence: MatchConfidence
    amount_matches: bool
    status: MatchStatus
    message: str

    @classmethod
    def from_result(cls, result: MatchResult) -> "MatchResultResponse":
        return cls(
            extraction=ExtractionResponse.from_result(result.extraction),
            dispatch=(
                DispatchResponse.from_dispatch(result.dispatch)
                if result.dispatch
                else None
            ),
            match_confidence=result.match_confidence,
            amount_matches=result.amount_matches,
            status=result.status,
            message=result.message,
        )


class JobResponse(BaseModel):
    """One image job and its outcome."""

    job_id: str
    filename: str
    state: JobState
    result: MatchResultResponse | None = None
    error: str | None = None

    @classmethod
    def from_job(cls, job: ImageJob) -> "JobResponse":
        return cls(
            job_id=job.job_id,
            filename=job.filename,
            state=job.state,
            result=MatchResultResponse.from_result(job.result) if job.result else None,
            error=job.error,
        )


class SummaryResponse(BaseModel):
    """Aggregate counts for a batch."""

    total: int
    total_processed: int
    errors: int
    auto_applied: int
    needs_review: int
    no_match: int
    high_confidence_needs_review: int

    @classmethod
    def from_summary(cls, summary: BatchSummary) -> "SummaryResponse":
        return cls(
            total=summary.total,
            total_processed=summary.total_processed,
            errors=summary.errors,
            auto_applied=summary.auto_applied,
            needs_review=summary.needs_review,
            no_match=summary.no_match,
            high_confidence_needs_review=summary.high_confidence_needs_review,
        )


class BatchResponse(BaseModel):
    """A batch with all of its jobs."""

    batch_id: str
    jobs: list[JobResponse]
    summary: SummaryResponse
    rejected: list[str] = []


class ConfirmRequest(BaseModel):
    """Jobs to confirm; omitted means the batch's current selection."""

    job_ids: list[str] | None = None


class ConfirmResponse(BaseModel):
    """Per-job outcome of a confirmation."""

    succeeded: list[str]
    failed: list[str]
    success_count: int

    @classmethod
    def from_report(cls, report: ConfirmReport) -> "ConfirmResponse":
        return cls(
            succeeded=report.succeeded,
            failed=report.failed,
            success_count=report.success_count,
        )


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
