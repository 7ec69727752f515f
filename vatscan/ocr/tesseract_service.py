"""OCR service using Tesseract.

Recognizes receipts with the language packs of the configured invoice
region and reports the mean word confidence from image_to_data.

Based on pytesseract documentation:
https://github.com/madmaze/pytesseract
"""

import logging
import os
from pathlib import Path

import pytesseract
from PIL import Image

from vatscan.ocr.base import OCRResult
from vatscan.shared.config import Settings

logger = logging.getLogger(__name__)

# Tesseract language packs per invoice region
REGION_LANGUAGES: dict[str, str] = {
    "iceland": "isl+eng",
    "nordic": "isl+dan+eng",
    "european": "eng+deu+fra+spa+ita",
    "global": "isl+eng+deu+fra+spa+ita",
}


def mean_confidence(data: dict) -> float | None:
    """Mean word confidence (0-1) from pytesseract.image_to_data output.

    Entries with confidence -1 are layout boxes, not words.
    """
    scores = []
    for conf, word in zip(data.get("conf", []), data.get("text", [])):
        try:
            value = float(conf)
        except (TypeError, ValueError):
            continue
        if value >= 0 and str(word).strip():
            scores.append(value)
    if not scores:
        return None
    return sum(scores) / len(scores) / 100


class TesseractOCRService:
    """OCR service using Tesseract engine.

    Handles text extraction from images with proper error handling
    and configuration management.
    """

    engine_name = "tesseract"

    def __init__(self, settings: Settings) -> None:
        """Initialize OCR service.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self.languages = REGION_LANGUAGES[settings.ocr_region]
        self._configure_tesseract()

    def _configure_tesseract(self) -> None:
        """Configure Tesseract command path from environment.

        Allows overriding default Tesseract path via TESSERACT_CMD environment variable.
        """
        tesseract_cmd = os.getenv("TESSERACT_CMD")
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def is_available(self) -> bool:
        """Check if the Tesseract binary can be found.

        Returns:
            True if Tesseract reports a version
        """
        try:
            pytesseract.get_tesseract_version()
            return True
        except Exception as e:
            logger.debug(f"Tesseract not available: {e}")
            return False

    def extract_text(self, image_path: Path) -> OCRResult:
        """Extract text from image file.

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

            with Image.open(image_path) as image:
                text = pytesseract.image_to_string(image, lang=self.languages)
                data = pytesseract.image_to_data(
                    image, lang=self.languages, output_type=pytesseract.Output.DICT
                )

            return OCRResult(
                text=text,
                success=True,
                confidence=mean_confidence(data),
                engine=self.engine_name,
            )

        except Exception as e:
            logger.error(f"Tesseract processing failed: {e}")
            return OCRResult(
                text="",
                success=False,
                error=f"OCR processing failed: {str(e)}",
                engine=self.engine_name,
            )
