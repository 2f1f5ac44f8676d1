"""FastAPI application for dispatch payment reconciliation.

Provides REST endpoints to upload a batch of report images, inspect the
per-image verdicts, and confirm matches that need review. Batches live in
process memory for the lifetime of the server.
"""

import uuid
from typing import Annotated

from fastapi import Body, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from dispatch_ocr import __version__
from dispatch_ocr.batch.orchestrator import BatchOrchestrator
from dispatch_ocr.ocr.tesseract_engine import TesseractEngine
from dispatch_ocr.store.sqlite_store import SQLiteDispatchStore
from dispatch_ocr.utils.config import load_config
from dispatch_ocr.utils.logger import get_logger

from .schemas import (
    BatchResponse,
    ConfirmRequest,
    ConfirmResponse,
    HealthResponse,
    JobResponse,
    SummaryResponse,
)

logger = get_logger(__name__)

app = FastAPI(
    title="Dispatch Payment OCR API",
    description="Match delivery report images to dispatches and record payments",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_batches: dict[str, BatchOrchestrator] = {}


def _new_orchestrator() -> BatchOrchestrator:
    """Create an orchestrator bound to the configured dispatch database."""
    config = load_config()
    store = SQLiteDispatchStore(config.store.db_path)
    store.init_db()
    return BatchOrchestrator.from_config(config, store)


def _get_batch(batch_id: str) -> BatchOrchestrator:
    try:
        return _batches[batch_id]
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown batch: {batch_id}") from None


def _batch_response(
    batch_id: str, orchestrator: BatchOrchestrator, rejected: list[str] | None = None
) -> BatchResponse:
    return BatchResponse(
        batch_id=batch_id,
        jobs=[JobResponse.from_job(job) for job in orchestrator.jobs],
        summary=SummaryResponse.from_summary(orchestrator.summary()),
        rejected=rejected or [],
    )


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        tesseract_available=TesseractEngine().is_available(),
    )


@app.post("/batches", response_model=BatchResponse)
async def create_batch(
    files: Annotated[list[UploadFile], File(...)],
) -> BatchResponse:
    """Accept a batch of images and process it.

    Oversized or non-image files are reported in ``rejected``; every
    accepted image gets its own job, and per-image failures are recorded
    on the job rather than failing the request.
    """
    orchestrator = _new_orchestrator()
    uploads = [
        (file.filename or "image", await file.read(), file.content_type)
        for file in files
    ]
    _, rejected = orchestrator.add_images(uploads)
    if not orchestrator.jobs:
        raise HTTPException(status_code=400, detail="; ".join(rejected) or "No files")

    batch_id = uuid.uuid4().hex
    _batches[batch_id] = orchestrator
    await orchestrator.process_pending()
    logger.info("Batch %s processed %d images", batch_id, len(orchestrator.jobs))
    return _batch_response(batch_id, orchestrator, rejected)


@app.get("/batches/{batch_id}", response_model=BatchResponse)
async def get_batch(batch_id: str) -> BatchResponse:
    return _batch_response(batch_id, _get_batch(batch_id))


@app.delete("/batches/{batch_id}", status_code=204)
async def delete_batch(batch_id: str) -> None:
    _get_batch(batch_id).clear()
    del _batches[batch_id]


@app.delete("/batches/{batch_id}/jobs/{job_id}", response_model=BatchResponse)
async def remove_job(batch_id: str, job_id: str) -> BatchResponse:
    orchestrator = _get_batch(batch_id)
    try:
        orchestrator.remove(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown job: {job_id}") from None
    return _batch_response(batch_id, orchestrator)


@app.post("/batches/{batch_id}/jobs/{job_id}/confirm", response_model=ConfirmResponse)
async def confirm_job(batch_id: str, job_id: str) -> ConfirmResponse:
    """Confirm one match awaiting review."""
    orchestrator = _get_batch(batch_id)
    try:
        ok = await orchestrator.confirm(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown job: {job_id}") from None
    return ConfirmResponse(
        succeeded=[job_id] if ok else [],
        failed=[] if ok else [job_id],
        success_count=int(ok),
    )


@app.post("/batches/{batch_id}/confirm", response_model=ConfirmResponse)
async def confirm_selected(
    batch_id: str,
    request: Annotated[ConfirmRequest | None, Body()] = None,
) -> ConfirmResponse:
    """Confirm the listed review items concurrently."""
    orchestrator = _get_batch(batch_id)
    job_ids = request.job_ids if request else None
    report = await orchestrator.confirm_selected(job_ids)
    return ConfirmResponse.from_report(report)


@app.post("/batches/{batch_id}/confirm-high-confidence", response_model=ConfirmResponse)
async def confirm_high_confidence(batch_id: str) -> ConfirmResponse:
    """Confirm every high-confidence item still awaiting review."""
    report = await _get_batch(batch_id).confirm_all_high_confidence()
    return ConfirmResponse.from_report(report)
