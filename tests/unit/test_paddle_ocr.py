"""Unit tests for PaddleOCR service and OCR factory."""

import os
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from vatscan.ocr.factory import OCRRegistry, create_ocr_service, create_ocr_services
from vatscan.ocr.paddle_service import PaddleOCRService
from vatscan.ocr.tesseract_service import TesseractOCRService
from vatscan.shared.config import Settings


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(ocr_mode="paddleocr")


@pytest.fixture
def image_path(tmp_path: Path) -> Path:
    """Placeholder image file; recognition itself is mocked."""
    path = tmp_path / "receipt.jpg"
    path.write_bytes(b"\xff\xd8\xff")
    return path


class TestPaddleOCRService:
    """Test PaddleOCRService class."""

    def test_is_available_when_installed(self, settings: Settings) -> None:
        """Should return True when PaddleOCR can be imported."""
        service = PaddleOCRService(settings)

        with patch.dict(sys.modules, {"paddleocr": MagicMock()}):
            assert service.is_available() is True

    def test_is_not_available_when_missing(self, settings: Settings) -> None:
        """Should return False when PaddleOCR is not installed."""
        service = PaddleOCRService(settings)

        with patch.dict(sys.modules, {"paddleocr": None}):
            assert service.is_available() is False

    def test_extract_text_file_not_found(self, settings: Settings) -> None:
        """Should return error for non-existent file."""
        service = PaddleOCRService(settings)

        result = service.extract_text(Path("/nonexistent/image.jpg"))

        assert result.success is False
        assert "not found" in str(result.error).lower()
        assert result.engine == "paddleocr"

    def test_extract_text_success_with_mock(self, settings: Settings, image_path: Path) -> None:
        """Should join recognized lines and average their scores."""
        service = PaddleOCRService(settings)

        mock_ocr = MagicMock()
        mock_ocr.ocr.return_value = [
            {"rec_texts": ["Bónus", "Samtals 1.500 kr"], "rec_scores": [0.95, 0.98]}
        ]

        with patch.object(service, "_get_ocr", return_value=mock_ocr):
            result = service.extract_text(image_path)

        assert result.success is True
        assert result.text == "Bónus\nSamtals 1.500 kr"
        assert result.confidence == pytest.approx(0.965)
        assert result.engine == "paddleocr"

    def test_extract_text_empty_result(self, settings: Settings, image_path: Path) -> None:
        """Should handle empty OCR result gracefully."""
        service = PaddleOCRService(settings)

        mock_ocr = MagicMock()
        mock_ocr.ocr.return_value = [None]

        with patch.object(service, "_get_ocr", return_value=mock_ocr):
            result = service.extract_text(image_path)

        assert result.success is True
        assert result.text == ""

    def test_extract_text_engine_error(self, settings: Settings, image_path: Path) -> None:
        """Should turn engine exceptions into failed results."""
        service = PaddleOCRService(settings)

        mock_ocr = MagicMock()
        mock_ocr.ocr.side_effect = RuntimeError("model failed")

        with patch.object(service, "_get_ocr", return_value=mock_ocr):
            result = service.extract_text(image_path)

        assert result.success is False
        assert "model failed" in str(result.error)

    def test_lazy_loading(self, settings: Settings) -> None:
        """Should not load model until first extraction."""
        service = PaddleOCRService(settings)

        assert service._ocr is None

    def test_model_uses_configured_language(self, settings: Settings) -> None:
        """Should create the model once with the configured language."""
        service = PaddleOCRService(settings)
        paddleocr_module = MagicMock()

        with patch.dict(sys.modules, {"paddleocr": paddleocr_module}):
            first = service._get_ocr()
            second = service._get_ocr()

        assert first is second
        paddleocr_module.PaddleOCR.assert_called_once_with(lang="latin")

    def test_environment_configured(self, settings: Settings) -> None:
        """Should set DISABLE_MODEL_SOURCE_CHECK environment variable."""
        PaddleOCRService(settings)

        assert os.environ.get("DISABLE_MODEL_SOURCE_CHECK") is not None


class TestOCRFactory:
    """Test OCR factory functions."""

    def test_create_tesseract_service(self) -> None:
        """Should create Tesseract service by name."""
        with patch.object(TesseractOCRService, "is_available", return_value=True):
            service = create_ocr_service("tesseract", Settings())

        assert isinstance(service, TesseractOCRService)

    def test_create_paddleocr_service(self, settings: Settings) -> None:
        """Should create PaddleOCR service by name."""
        with patch.object(PaddleOCRService, "is_available", return_value=False):
            service = create_ocr_service("paddleocr", settings)

        assert isinstance(service, PaddleOCRService)

    def test_invalid_engine_raises_error(self) -> None:
        """Should raise ValueError for unknown engine."""
        with pytest.raises(ValueError, match="Unknown OCR engine"):
            create_ocr_service("easyocr", Settings())

    def test_auto_mode_creates_every_engine(self) -> None:
        """Should create both engines in auto mode."""
        with (
            patch.object(TesseractOCRService, "is_available", return_value=True),
            patch.object(PaddleOCRService, "is_available", return_value=True),
        ):
            services = create_ocr_services(Settings(ocr_mode="auto"))

        assert [s.engine_name for s in services] == ["tesseract", "paddleocr"]

    def test_single_mode_creates_one_engine(self) -> None:
        """Should create only the configured engine."""
        with patch.object(TesseractOCRService, "is_available", return_value=True):
            services = create_ocr_services(Settings(ocr_mode="tesseract"))

        assert len(services) == 1
        assert isinstance(services[0], TesseractOCRService)

    def test_register_engine(self) -> None:
        """Should make a registered engine available by name."""
        with patch.dict(OCRRegistry._engines):
            OCRRegistry.register("fake", TesseractOCRService)

            assert "fake" in OCRRegistry.list_engines()
            assert OCRRegistry.get_engine_class("fake") is TesseractOCRService

        assert "fake" not in OCRRegistry.list_engines()
