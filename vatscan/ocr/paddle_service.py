"""PaddleOCR service for receipt text extraction.

Second recognition engine for dual-engine scans. The model is loaded
lazily on first use so that importing the service stays cheap.

Based on PaddleOCR v3.x:
https://github.com/PaddlePaddle/PaddleOCR
"""

import logging
import os
from pathlib import Path

from vatscan.ocr.base import OCRResult
from vatscan.shared.config import Settings

logger = logging.getLogger(__name__)


class PaddleOCRService:
    """OCR service using PaddleOCR engine.

    Handles text extraction from images with lazy model loading.
    """

    engine_name = "paddleocr"

    def __init__(self, settings: Settings) -> None:
        """Initialize PaddleOCR service.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self._ocr: object | None = None  # Lazy loading (PaddleOCR instance)
        self._configure_environment()

    def _configure_environment(self) -> None:
        """Disable the model source check for faster startup."""
        os.environ.setdefault("DISABLE_MODEL_SOURCE_CHECK", "True")

    def _get_ocr(self) -> object:
        """Get or initialize PaddleOCR instance (lazy loading).

        Returns:
            Initialized PaddleOCR instance
        """
        if self._ocr is None:
            try:
                from paddleocr import PaddleOCR

                logger.info(f"Initializing PaddleOCR engine (lang={self.settings.paddle_lang})...")
                self._ocr = PaddleOCR(lang=self.settings.paddle_lang)
                logger.info("PaddleOCR initialized successfully")
            except ImportError as e:
                raise ImportError(
                    "PaddleOCR not installed. Install with: pip install paddlepaddle paddleocr"
                ) from e
        return self._ocr

    def is_available(self) -> bool:
        """Check if PaddleOCR is available.

        Returns:
            True if PaddleOCR can be imported
        """
        try:
            from paddleocr import PaddleOCR  # noqa: F401

            return True
        except ImportError:
            return False

    def extract_text(self, image_path: Path) -> OCRResult:
        """Extract text from image file using PaddleOCR.

        Args:
            image_path: Path to image file

        Returns:
            OCRResult with extracted text or error information
        """
        try:
            if not image_path.exists():
                return OCRResult(
                    text="",
                    success=False,
                    error=f"Image file not found: {image_path}",
                    engine=self.engine_name,
                )

            ocr = self._get_ocr()
            result = ocr.ocr(str(image_path))  # type: ignore[attr-defined]

            if not result or not result[0]:
                return OCRResult(text="", success=True, confidence=0.0, engine=self.engine_name)

            # v3.x result format: one dict per page
            page = result[0]
            texts = page.get("rec_texts", [])
            scores = page.get("rec_scores", [])

            # One recognized line per text line keeps the receipt layout
            full_text = "\n".join(texts)
            avg_confidence = sum(scores) / len(scores) if scores else 0.0

            return OCRResult(
                text=full_text,
                success=True,
                confidence=avg_confidence,
                engine=self.engine_name,
            )

        except Exception as e:
            logger.error(f"PaddleOCR processing failed: {e}")
            return OCRResult(
                text="",
                success=False,
                error=f"OCR processing failed: {str(e)}",
                engine=self.engine_name,
            )
