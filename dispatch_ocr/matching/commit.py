"""Applying an accepted match to its dispatch record."""

from datetime import datetime, timezone
from typing import Any

from dispatch_ocr.errors import CommitFailure, StoreError
from dispatch_ocr.models import DeliveryStatus, OCRResult
from dispatch_ocr.store.base import DispatchStore
from dispatch_ocr.utils.logger import get_logger

logger = get_logger(__name__)


def build_payment_update(
    extraction: OCRResult, actor: str = "ocr_auto", now: datetime | None = None
) -> dict[str, Any]:
    """Return the field changes that mark a dispatch paid via OCR.

    Args:
        extraction: Extraction that justified the payment.
        actor: Identity recorded as having received the payment.
        now: Timestamp to record; defaults to the current UTC time.
    """
    now = now or datetime.now(timezone.utc)
    return {
        "payment_received": True,
        "payment_received_at": now,
        "payment_received_by": actor,
        "delivery_status": DeliveryStatus.DELIVERED,
        "ocr_processed": True,
        "ocr_processed_at": now,
        "ocr_confidence": extraction.confidence,
        "ocr_raw_data": extraction.snapshot(),
    }


def apply_payment(
    store: DispatchStore,
    dispatch_id: str,
    extraction: OCRResult,
    actor: str = "ocr_auto",
    now: datetime | None = None,
) -> None:
    """Mark a dispatch as paid and delivered, recording OCR provenance.

    Args:
        store: Store holding the dispatch.
        dispatch_id: Id of the dispatch to update.
        extraction: Extraction that justified the payment.
        actor: Identity recorded as having received the payment.
        now: Timestamp to record; defaults to the current UTC time.

    Raises:
        CommitFailure: If the store rejects or fails the update.
    """
    changes = build_payment_update(extraction, actor, now)
    try:
        store.update(dispatch_id, changes)
    except StoreError as exc:
        raise CommitFailure(f"Could not update dispatch {dispatch_id}: {exc}") from exc
    except Exception as exc:
        logger.exception("Unexpected store failure updating dispatch %s", dispatch_id)
        raise CommitFailure(f"Could not update dispatch {dispatch_id}: {exc}") from exc

    logger.info(
        "Applied OCR payment to dispatch %s (tracking_id=%s, by %s)",
        dispatch_id,
        extraction.tracking_id,
        actor,
    )


def commit_match(
    store: DispatchStore,
    dispatch_id: str,
    extraction: OCRResult,
    actor: str = "ocr_auto",
    now: datetime | None = None,
) -> bool:
    """Apply a payment and report success as a boolean.

    Store failures are logged and reported as ``False`` so callers can
    count failures without handling exceptions.

    Returns:
        ``True`` if the update was stored.
    """
    try:
        apply_payment(store, dispatch_id, extraction, actor, now)
    except CommitFailure as exc:
        logger.error("Error applying OCR match: %s", exc)
        return False
    return True
