"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml

from dispatch_ocr.utils.config import (
    AppConfig,
    BatchConfig,
    MatchingConfig,
    OCRConfig,
    PreprocessingConfig,
    StoreConfig,
    load_config,
)


class TestOCRConfig:
    """Tests for OCRConfig defaults and overrides."""

    def test_defaults(self) -> None:
        cfg = OCRConfig()
        assert cfg.lang == "eng"
        assert cfg.psm == 3
        assert cfg.timeout == 0
        assert cfg.tesseract_cmd is None

    def test_custom_lang(self) -> None:
        cfg = OCRConfig(lang="hin", psm=6)
        assert cfg.lang == "hin"
        assert cfg.psm == 6


class TestPreprocessingConfig:
    """Tests for PreprocessingConfig defaults."""

    def test_disabled_by_default(self) -> None:
        cfg = PreprocessingConfig()
        assert cfg.enabled is False
        assert cfg.denoise_method == "bilateral"
        assert cfg.binarize_method == "otsu"


class TestMatchingConfig:
    """Tests for MatchingConfig defaults."""

    def test_defaults(self) -> None:
        cfg = MatchingConfig()
        assert cfg.amount_tolerance == 5.0
        assert cfg.high_confidence_threshold == 80.0
        assert cfg.medium_confidence_threshold == 60.0
        assert cfg.ocr_actor == "ocr_auto"


class TestAppConfig:
    """Tests for the top-level AppConfig."""

    def test_defaults(self) -> None:
        cfg = AppConfig()
        assert isinstance(cfg.ocr, OCRConfig)
        assert isinstance(cfg.matching, MatchingConfig)
        assert isinstance(cfg.batch, BatchConfig)
        assert isinstance(cfg.store, StoreConfig)
        assert cfg.batch.max_file_size_mb == 10
        assert cfg.log_level == "INFO"

    def test_nested_override(self) -> None:
        cfg = AppConfig(matching=MatchingConfig(amount_tolerance=2.5), log_level="DEBUG")
        assert cfg.matching.amount_tolerance == 2.5
        assert cfg.log_level == "DEBUG"


class TestLoadConfig:
    """Tests for the load_config function."""

    @pytest.fixture(autouse=True)
    def _no_db_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DISPATCH_OCR_DB", raising=False)

    def test_load_shipped_config(self, project_root: Path) -> None:
        cfg = load_config(project_root / "configs" / "config.yaml")
        assert cfg.matching.amount_tolerance == 5.0
        assert cfg.store.db_path == "dispatches.db"

    def test_load_missing_file_returns_defaults(self) -> None:
        cfg = load_config(Path("/nonexistent/path/config.yaml"))
        assert cfg == AppConfig()

    def test_load_custom_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "ocr": {"lang": "hin", "psm": 6},
            "matching": {"amount_tolerance": 1},
            "log_level": "DEBUG",
        }
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        cfg = load_config(config_file)
        assert cfg.ocr.lang == "hin"
        assert cfg.ocr.psm == 6
        assert cfg.matching.amount_tolerance == 1.0
        assert cfg.log_level == "DEBUG"

    def test_load_empty_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        assert isinstance(load_config(config_file), AppConfig)

    def test_env_overrides_db_path(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("DISPATCH_OCR_DB", str(tmp_path / "other.db"))
        cfg = load_config(tmp_path / "missing.yaml")
        assert cfg.store.db_path == str(tmp_path / "other.db")
