"""Tesseract OCR engine wrapper with scoped recognition workers.

A ``RecognitionWorker`` owns the decoded images it recognizes and is only
ever handed out through ``TesseractEngine.worker()``, which releases it on
every exit path.
"""

import io
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import numpy as np
import pytesseract
from PIL import Image, UnidentifiedImageError

from dispatch_ocr.errors import ExtractionError
from dispatch_ocr.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RecognizedText:
    """Full-page recognition output."""

    text: str
    confidence: float
    word_count: int


class RecognitionWorker:
    """Single-use recognition session bound to one engine configuration.

    Args:
        lang: Tesseract language code.
        psm: Tesseract page segmentation mode.
        timeout: Seconds before a recognition call is abandoned; 0 disables it.
    """

    def __init__(self, lang: str = "eng", psm: int = 3, timeout: float = 0) -> None:
        self.lang = lang
        self.config = f"--psm {psm}"
        self.timeout = timeout
        self.terminated = False
        self._images: list[Image.Image] = []

    def load_image(self, data: bytes) -> Image.Image:
        """Decode raw image bytes.

        Args:
            data: Encoded raster image (PNG, JPEG, TIFF, ...).

        Returns:
            Decoded RGB image, owned by this worker until termination.

        Raises:
            ExtractionError: If the bytes are not a readable image.
        """
        self._ensure_alive()
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise ExtractionError(f"Unreadable image: {exc}") from exc
        self._images.append(image)
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
            self._images.append(image)
        return image

    def recognize(self, image: Image.Image | np.ndarray) -> RecognizedText:
        """Run full-image recognition.

        Confidence is the mean of Tesseract's per-word confidences on a
        0-100 scale, or 0 when no word was recognized.

        Args:
            image: Image to recognize.

        Returns:
            Recognized text and overall confidence.

        Raises:
            ExtractionError: If Tesseract fails or times out.
        """
        self._ensure_alive()
        if isinstance(image, np.ndarray):
            image = Image.fromarray(image)
            self._images.append(image)

        try:
            text = pytesseract.image_to_string(
                image, lang=self.lang, config=self.config, timeout=self.timeout
            )
            data = pytesseract.image_to_data(
                image,
                lang=self.lang,
                config=self.config,
                timeout=self.timeout,
                output_type=pytesseract.Output.DICT,
            )
        except (pytesseract.TesseractError, RuntimeError, OSError) as exc:
            raise ExtractionError(f"Recognition failed: {exc}") from exc

        confidences = [
            float(conf)
            for conf, word in zip(data["conf"], data["text"])
            if float(conf) >= 0 and str(word).strip()
        ]
        confidence = sum(confidences) / len(confidences) if confidences else 0.0

        logger.info(
            "OCR recognized %d words with confidence %.1f",
            len(confidences),
            confidence,
        )
        return RecognizedText(
            text=text, confidence=confidence, word_count=len(confidences)
        )

    def terminate(self) -> None:
        """Release every image held by this worker."""
        for image in self._images:
            image.close()
        self._images.clear()
        self.terminated = True

    def _ensure_alive(self) -> None:
        if self.terminated:
            raise ExtractionError("Recognition worker has been terminated")


class TesseractEngine:
    """Factory for scoped Tesseract recognition workers.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        lang: OCR language code.
        psm: Tesseract page segmentation mode.
        timeout: Per-call recognition timeout in seconds; 0 disables it.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        lang: str = "eng",
        psm: int = 3,
        timeout: float = 0,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.lang = lang
        self.psm = psm
        self.timeout = timeout
        self._verified = False

    def is_available(self) -> bool:
        """Return whether the Tesseract binary can be executed."""
        try:
            pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError):
            return False
        return True

    @contextmanager
    def worker(self) -> Iterator[RecognitionWorker]:
        """Acquire a recognition worker for the duration of a block.

        Yields:
            A fresh worker, terminated when the block exits.

        Raises:
            ExtractionError: If the Tesseract binary is missing.
        """
        if not self._verified:
            if not self.is_available():
                raise ExtractionError("Tesseract executable not found")
            self._verified = True

        worker = RecognitionWorker(lang=self.lang, psm=self.psm, timeout=self.timeout)
        logger.debug("Acquired recognition worker (lang=%s)", self.lang)
        try:
            yield worker
        finally:
            worker.terminate()
            logger.debug("Released recognition worker")
