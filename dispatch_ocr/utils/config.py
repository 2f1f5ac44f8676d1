"""Configuration management for the dispatch OCR pipeline.

Loads and validates YAML configuration with sensible defaults
for recognition, preprocessing, matching, batch intake, and storage.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DB_PATH_ENV = "DISPATCH_OCR_DB"


class OCRConfig(BaseModel):
    """Configuration for the Tesseract recognition engine."""

    tesseract_cmd: str | None = None
    lang: str = "eng"
    psm: int = 3
    timeout: float = 0


class PreprocessingConfig(BaseModel):
    """Configuration for optional image cleanup before recognition."""

    enabled: bool = False
    denoise_enabled: bool = True
    denoise_method: str = "bilateral"
    binarize_enabled: bool = True
    binarize_method: str = "otsu"


class MatchingConfig(BaseModel):
    """Thresholds used when grading a match against a dispatch."""

    amount_tolerance: float = 5.0
    high_confidence_threshold: float = 80.0
    medium_confidence_threshold: float = 60.0
    ocr_actor: str = "ocr_auto"


class BatchConfig(BaseModel):
    """Limits applied when images are accepted into a batch."""

    max_file_size_mb: int = 10


class StoreConfig(BaseModel):
    """Location of the dispatch database."""

    db_path: str = "dispatches.db"


class AppConfig(BaseModel):
    """Top-level application configuration."""

    ocr: OCRConfig = Field(default_factory=OCRConfig)
    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    The ``DISPATCH_OCR_DB`` environment variable, when set, overrides
    ``store.db_path``.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        config = AppConfig(**raw)
    else:
        logger.info("No config file found at %s, using defaults", path)
        config = AppConfig()

    db_override = os.getenv(DB_PATH_ENV)
    if db_override:
        config.store.db_path = db_override
    return config
