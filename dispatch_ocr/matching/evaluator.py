"""Match grading between OCR extractions and dispatch records.

An extraction is joined to its dispatch by tracking ID, the amounts are
compared within a tolerance, and the pair is graded high, medium, or low.
A high match on an unpaid dispatch is recommended for automatic
application; everything else that matched goes to manual review.
"""

from decimal import Decimal

from dispatch_ocr.errors import LookupFailure
from dispatch_ocr.models import (
    Dispatch,
    MatchConfidence,
    MatchResult,
    MatchStatus,
    OCRResult,
)
from dispatch_ocr.store.base import DispatchStore, lookup_dispatch
from dispatch_ocr.utils.config import MatchingConfig
from dispatch_ocr.utils.logger import get_logger

logger = get_logger(__name__)


def amounts_match(
    expected: Decimal, extracted: Decimal | None, tolerance: Decimal = Decimal(5)
) -> bool:
    """Return whether an extracted amount is within tolerance of the expected one.

    A missing extracted amount never matches.
    """
    if extracted is None:
        return False
    return abs(Decimal(expected) - extracted) <= tolerance


def grade_confidence(
    confidence: float,
    amount_matches: bool,
    high_threshold: float = 80.0,
    medium_threshold: float = 60.0,
) -> MatchConfidence:
    """Grade a found match from engine confidence and amount agreement.

    Args:
        confidence: Engine confidence on a 0-100 scale.
        amount_matches: Whether the amounts agree within tolerance.
        high_threshold: Confidence above which an agreeing match is high.
        medium_threshold: Confidence above which any match is at least medium.

    Returns:
        ``HIGH``, ``MEDIUM``, or ``LOW``.
    """
    if confidence > high_threshold and amount_matches:
        return MatchConfidence.HIGH
    if confidence > medium_threshold or amount_matches:
        return MatchConfidence.MEDIUM
    return MatchConfidence.LOW


class MatchEvaluator:
    """Turns extractions into match verdicts against a dispatch store.

    Args:
        store: Store used to look up dispatches by tracking ID.
        config: Matching thresholds. Defaults to ``MatchingConfig()``.
    """

    def __init__(self, store: DispatchStore, config: MatchingConfig | None = None) -> None:
        self.store = store
        self.config = config or MatchingConfig()
        self.tolerance = Decimal(str(self.config.amount_tolerance))

    def evaluate(self, extraction: OCRResult) -> MatchResult:
        """Build the verdict for one extraction.

        Never raises for lookup problems; a failed lookup becomes a
        ``no_match`` verdict carrying the error.
        """
        if not extraction.tracking_id:
            return self._no_match(extraction, "No tracking ID found in OCR")

        try:
            dispatch = lookup_dispatch(self.store, extraction.tracking_id)
        except LookupFailure as exc:
            logger.error("Error matching %s: %s", extraction.tracking_id, exc)
            return self._no_match(extraction, f"Error during matching process: {exc}")

        if dispatch is None:
            return self._no_match(
                extraction,
                f"No dispatch found with tracking ID: {extraction.tracking_id}",
            )
        return self._grade(extraction, dispatch)

    def _grade(self, extraction: OCRResult, dispatch: Dispatch) -> MatchResult:
        matches = amounts_match(dispatch.amount, extraction.amount, self.tolerance)
        confidence = grade_confidence(
            extraction.confidence,
            matches,
            self.config.high_confidence_threshold,
            self.config.medium_confidence_threshold,
        )

        if confidence == MatchConfidence.HIGH and not dispatch.payment_received:
            status = MatchStatus.AUTO_APPLIED
            message = "High confidence match - ready for auto-update"
        elif confidence == MatchConfidence.HIGH:
            status = MatchStatus.NEEDS_REVIEW
            message = "Payment already recorded for this dispatch - possible duplicate"
        else:
            status = MatchStatus.NEEDS_REVIEW
            message = "Match found but needs manual review"

        logger.info(
            "Matched %s to dispatch %s: confidence=%s amount_matches=%s status=%s",
            extraction.tracking_id,
            dispatch.id,
            confidence,
            matches,
            status,
        )
        return MatchResult(
            extraction=extraction,
            dispatch=dispatch,
            match_confidence=confidence,
            amount_matches=matches,
            status=status,
            message=message,
        )

    @staticmethod
    def _no_match(extraction: OCRResult, message: str) -> MatchResult:
        logger.info("No match: %s", message)
        return MatchResult(
            extraction=extraction,
            dispatch=None,
            match_confidence=MatchConfidence.NONE,
            amount_matches=False,
            status=MatchStatus.NO_MATCH,
            message=message,
        )
