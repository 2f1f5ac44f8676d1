"""Data contracts shared by the extraction, matching, and batch layers."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any


class MatchConfidence(StrEnum):
    """How strongly an extraction agrees with its dispatch."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class MatchStatus(StrEnum):
    """Recommended (or applied) outcome for a match."""

    AUTO_APPLIED = "auto_applied"
    NEEDS_REVIEW = "needs_review"
    NO_MATCH = "no_match"


class DeliveryStatus(StrEnum):
    """Delivery lifecycle of a dispatch."""

    DISPATCHED = "Dispatched"
    DELIVERED = "Delivered"
    RETURNED = "Returned"
    LOST = "Lost"


@dataclass(frozen=True)
class OCRResult:
    """Fields extracted from one recognized image.

    ``confidence`` is the engine-reported score on a 0-100 scale.
    """

    tracking_id: str | None
    amount: Decimal | None
    confidence: float
    raw_text: str

    def snapshot(self) -> dict[str, Any]:
        """Return the provenance record stored alongside a committed dispatch."""
        return {
            "tracking_id": self.tracking_id,
            "amount": float(self.amount) if self.amount is not None else None,
            "raw_text": self.raw_text,
        }


@dataclass
class Dispatch:
    """A shipment record with its expected amount and payment state."""

    id: str
    tracking_id: str
    amount: Decimal
    payment_received: bool = False
    delivery_status: DeliveryStatus = DeliveryStatus.DISPATCHED
    payment_received_at: datetime | None = None
    payment_received_by: str | None = None
    ocr_processed: bool = False
    ocr_processed_at: datetime | None = None
    ocr_confidence: float | None = None
    ocr_raw_data: dict[str, Any] | None = None


@dataclass
class MatchResult:
    """Verdict for one extraction.

    ``status`` is the single source of truth for what the operator sees;
    confirming a review item advances it to ``AUTO_APPLIED`` in place.
    """

    extraction: OCRResult
    dispatch: Dispatch | None
    match_confidence: MatchConfidence
    amount_matches: bool
    status: MatchStatus
    message: str = ""

    @property
    def is_confirmable(self) -> bool:
        """Whether an operator may commit this match."""
        return (
            self.status == MatchStatus.NEEDS_REVIEW
            and self.dispatch is not None
            and self.extraction.amount is not None
        )


@dataclass
class ConfirmReport:
    """Outcome of confirming several review items at once."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)
