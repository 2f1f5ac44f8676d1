"""Field extraction strategies for recognized report text.

A strategy turns the raw text of one report into a tracking ID and an
amount. ``RegexFieldExtractor`` is the default single-pass implementation:
the first tracking ID token and the first amount token win, and nothing is
done about OCR misreads such as O/0 or I/1.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from dispatch_ocr.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExtractedFields:
    """Fields found in a block of text."""

    tracking_id: str | None
    amount: Decimal | None

    @property
    def is_empty(self) -> bool:
        return self.tracking_id is None and self.amount is None


_TRACKING_ID_PATTERN = re.compile(r"\b(?:EZ|JO)[A-Z0-9]+\b", re.IGNORECASE)

# A currency marker (optional) then digits with comma/space thousands groups
# (or comma lakh groups) and an optional one- or two-digit fraction. Unmarked
# digits must not be glued to letters, so the digits of a tracking ID are never
# read as money.
_AMOUNT_PATTERN = re.compile(
    r"(?:(?:₹|\bINR|\bRs\.?)\s*|(?<![A-Za-z0-9.]))"
    r"(\d{1,3}(?:,\d{2})*(?:[, ]\d{3})+|\d+)"
    r"(?:\.(\d{1,2}))?"
    r"(?!\d)",
    re.IGNORECASE,
)


class TextFieldExtractor(ABC):
    """Strategy interface: one implementation per report layout."""

    @abstractmethod
    def extract_fields(self, text: str) -> ExtractedFields:
        """Extract the tracking ID and amount from recognized text."""


class RegexFieldExtractor(TextFieldExtractor):
    """First-match-wins regex extractor for single-record reports."""

    def extract_fields(self, text: str) -> ExtractedFields:
        fields = ExtractedFields(
            tracking_id=self.extract_tracking_id(text),
            amount=self.extract_amount(text),
        )
        logger.debug(
            "Extracted tracking_id=%s amount=%s", fields.tracking_id, fields.amount
        )
        return fields

    def extract_tracking_id(self, text: str) -> str | None:
        """Return the first ``EZ``/``JO`` tracking ID, uppercased.

        Args:
            text: Recognized text to search.

        Returns:
            Normalized tracking ID, or ``None`` if absent.
        """
        match = _TRACKING_ID_PATTERN.search(text)
        return match.group(0).upper() if match else None

    def extract_amount(self, text: str) -> Decimal | None:
        """Return the first amount token as a decimal.

        Args:
            text: Recognized text to search.

        Returns:
            Parsed amount with separators removed, or ``None`` if absent.
        """
        match = _AMOUNT_PATTERN.search(text)
        if not match:
            return None

        whole = re.sub(r"[, ]", "", match.group(1))
        fraction = match.group(2)
        value = f"{whole}.{fraction}" if fraction else whole
        try:
            return Decimal(value)
        except InvalidOperation:
            logger.warning("Could not parse amount token %r", match.group(0))
            return None
