"""Image-to-fields extraction for delivery/payment reports.

Decodes an uploaded image, optionally cleans it up, recognizes its text
with a scoped Tesseract worker, and applies a field extraction strategy.
"""

import numpy as np

from dispatch_ocr.extraction.field_extractor import (
    RegexFieldExtractor,
    TextFieldExtractor,
)
from dispatch_ocr.models import OCRResult
from dispatch_ocr.utils.config import AppConfig
from dispatch_ocr.utils.logger import get_logger

from .preprocessing import ImagePreprocessor
from .tesseract_engine import TesseractEngine

logger = get_logger(__name__)


class ImageProcessor:
    """Extracts an ``OCRResult`` from raw image bytes.

    Args:
        engine: Recognition engine handing out scoped workers.
        field_extractor: Strategy used on the recognized text.
            Defaults to ``RegexFieldExtractor``.
        preprocessor: Optional image cleanup applied before recognition.
    """

    def __init__(
        self,
        engine: TesseractEngine,
        field_extractor: TextFieldExtractor | None = None,
        preprocessor: ImagePreprocessor | None = None,
    ) -> None:
        self.engine = engine
        self.field_extractor = field_extractor or RegexFieldExtractor()
        self.preprocessor = preprocessor

    @classmethod
    def from_config(cls, config: AppConfig) -> "ImageProcessor":
        """Build a processor from application configuration."""
        engine = TesseractEngine(
            tesseract_cmd=config.ocr.tesseract_cmd,
            lang=config.ocr.lang,
            psm=config.ocr.psm,
            timeout=config.ocr.timeout,
        )
        preprocessor = (
            ImagePreprocessor(config.preprocessing)
            if config.preprocessing.enabled
            else None
        )
        return cls(engine, preprocessor=preprocessor)

    def extract(self, data: bytes) -> OCRResult:
        """Recognize an image and pull out its tracking ID and amount.

        Missing fields come back as ``None``; only engine failures raise.

        Args:
            data: Encoded image bytes.

        Returns:
            Extraction result with engine confidence and raw text.

        Raises:
            ExtractionError: If the image cannot be decoded or recognized.
        """
        with self.engine.worker() as worker:
            image = worker.load_image(data)
            if self.preprocessor is not None:
                recognized = worker.recognize(self.preprocessor.process(np.array(image)))
            else:
                recognized = worker.recognize(image)

        fields = self.field_extractor.extract_fields(recognized.text)
        result = OCRResult(
            tracking_id=fields.tracking_id,
            amount=fields.amount,
            confidence=recognized.confidence,
            raw_text=recognized.text,
        )
        logger.info(
            "Extracted tracking_id=%s amount=%s (confidence %.1f)",
            result.tracking_id,
            result.amount,
            result.confidence,
        )
        return result
