"""Dispatch payment OCR reconciliation.

Reads parcel delivery/payment reports with Tesseract OCR, extracts the
tracking ID and collected amount, matches them against dispatch records
and applies payment-received updates, automatically for high-confidence
matches and on operator confirmation otherwise.
"""

__version__ = "1.0.0"
