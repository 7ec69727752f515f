"""Factory for creating OCR services based on configuration.

Registry of engine names to service classes. "auto" mode runs every
registered engine through the HybridOCRService.
"""

import logging

from vatscan.ocr.base import OCRService
from vatscan.ocr.paddle_service import PaddleOCRService
from vatscan.ocr.tesseract_service import TesseractOCRService
from vatscan.shared.config import Settings

logger = logging.getLogger(__name__)


class OCRRegistry:
    """Registry of available OCR engines."""

    _engines: dict[str, type] = {
        "tesseract": TesseractOCRService,
        "paddleocr": PaddleOCRService,
    }

    @classmethod
    def register(cls, name: str, service_class: type) -> None:
        """Register a new engine.

        Args:
            name: Engine identifier
            service_class: Class implementing the OCRService protocol
        """
        cls._engines[name] = service_class
        logger.info(f"Registered OCR engine: {name}")

    @classmethod
    def get_engine_class(cls, name: str) -> type:
        """Get engine class by name.

        Raises:
            ValueError: If engine not found in registry
        """
        if name not in cls._engines:
            available = ", ".join(cls._engines.keys())
            raise ValueError(f"Unknown OCR engine: '{name}'. Available: {available}")
        return cls._engines[name]

    @classmethod
    def list_engines(cls) -> list[str]:
        return list(cls._engines.keys())


def create_ocr_service(name: str, settings: Settings) -> OCRService:
    """Create one OCR engine by name.

    Args:
        name: Registered engine name
        settings: Application settings

    Returns:
        Configured OCR service instance

    Raises:
        ValueError: If the engine name is unknown
    """
    service = OCRRegistry.get_engine_class(name)(settings)
    if not service.is_available():
        logger.warning(f"OCR engine '{name}' is not available on this host")
    logger.info(f"Created OCR service: {name}")
    return service


def create_ocr_services(settings: Settings) -> list[OCRService]:
    """Create the engines selected by settings.ocr_mode ("auto" means all)."""
    if settings.ocr_mode == "auto":
        names = OCRRegistry.list_engines()
    else:
        names = [settings.ocr_mode]
    return [create_ocr_service(name, settings) for name in names]
