"""Shared test fixtures for the dispatch OCR test suite."""

import io
from decimal import Decimal
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from dispatch_ocr.models import Dispatch, OCRResult
from dispatch_ocr.store.memory import InMemoryDispatchStore


def make_extraction(
    tracking_id: str | None = "EZ99",
    amount: str | None = "500",
    confidence: float = 90.0,
    raw_text: str = "EZ99 Rs 500",
) -> OCRResult:
    """Create a test OCRResult with defaults."""
    return OCRResult(
        tracking_id=tracking_id,
        amount=Decimal(amount) if amount is not None else None,
        confidence=confidence,
        raw_text=raw_text,
    )


def make_dispatch(
    dispatch_id: str = "d-1",
    tracking_id: str = "EZ99",
    amount: str = "500",
    payment_received: bool = False,
) -> Dispatch:
    """Create a test Dispatch with defaults."""
    return Dispatch(
        id=dispatch_id,
        tracking_id=tracking_id,
        amount=Decimal(amount),
        payment_received=payment_received,
    )


def make_png_bytes(width: int = 120, height: int = 40) -> bytes:
    """Create a minimal PNG image as bytes."""
    img = Image.fromarray(np.full((height, width, 3), 255, dtype=np.uint8))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png_bytes()


@pytest.fixture
def memory_store() -> InMemoryDispatchStore:
    """A store holding one unpaid dispatch for EZ99."""
    return InMemoryDispatchStore([make_dispatch()])


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent
