"""Common OCR result model and engine protocol."""

from pathlib import Path
from typing import Protocol

from pydantic import BaseModel

from vatscan.extraction.schema import RawOcrText


class OCRResult(BaseModel):
    """Result of OCR operation.

    Attributes:
        text: Extracted text content
        success: Whether operation succeeded
        error: Error message if operation failed
        confidence: Average confidence score (0-1), if available
        engine: Engine that produced the result
    """

    text: str
    success: bool
    error: str | None = None
    confidence: float | None = None
    engine: str | None = None

    def to_raw_text(self) -> RawOcrText:
        """Hand the recognized text to the extraction pipeline."""
        confidence = None if self.confidence is None else min(max(self.confidence, 0.0), 1.0)
        return RawOcrText(text=self.text, engine=self.engine, confidence=confidence)


class OCRService(Protocol):
    """Protocol for OCR services."""

    engine_name: str

    def extract_text(self, image_path: Path) -> OCRResult:
        """Extract text from image file."""
        ...

    def is_available(self) -> bool:
        """Check if OCR service is available."""
        ...
