"""Receipt scan pipeline.

image -> every OCR engine concurrently -> VAT extraction per engine text
      -> per-field arbitration -> implausible-tax correction
      -> invoice header parsing on the best raw text
"""

import logging
from pathlib import Path

from pydantic import BaseModel

from vatscan.api import metrics
from vatscan.extraction.arbitration import EngineCandidate, arbitrate_all, select_best_text
from vatscan.extraction.schema import ParsedInvoice, VatExtraction
from vatscan.extraction.service import VatExtractionService
from vatscan.ocr.base import OCRResult
from vatscan.ocr.hybrid import HybridOCRService
from vatscan.shared.config import Settings

logger = logging.getLogger(__name__)

# Country assumed for an invoice region when the text reveals no language
REGION_COUNTRIES: dict[str, str | None] = {
    "iceland": "IS",
    "nordic": None,
    "european": None,
    "global": None,
}


class ScanResult(BaseModel):
    """Result of scanning one receipt image.

    Attributes:
        success: Whether at least one engine produced text
        error: Error message if every engine failed
        vat: Arbitrated and corrected VAT figures
        invoice: Invoice header parsed from the best text
        text: Best raw OCR text
        engine: Engine that produced the best text
        ocr_results: Every engine's raw result, failures included
    """

    success: bool
    error: str | None = None
    vat: VatExtraction | None = None
    invoice: ParsedInvoice | None = None
    text: str = ""
    engine: str | None = None
    ocr_results: list[OCRResult] = []


def extraction_outcome(vat: VatExtraction) -> str:
    if vat.is_empty():
        return "empty"
    if vat.subtotal and vat.tax and vat.total:
        return "complete"
    return "partial"


class ReceiptScanService:
    """Scans receipt images into VAT figures and invoice header fields."""

    def __init__(
        self,
        settings: Settings,
        ocr: HybridOCRService,
        extraction: VatExtractionService,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings
            ocr: Concurrent OCR runner
            extraction: Text extraction service
        """
        self.settings = settings
        self.ocr = ocr
        self.extraction = extraction

    async def scan(
        self,
        image_path: Path,
        language_hint: str | None = None,
        region_hint: str | None = None,
    ) -> ScanResult:
        """Scan one receipt image.

        Args:
            image_path: Path to the receipt image
            language_hint: Optional language code forced on extraction
            region_hint: Optional country code; defaults to the configured
                OCR region's country

        Returns:
            ScanResult; success is False only when no engine produced text
        """
        region = region_hint or REGION_COUNTRIES.get(self.settings.ocr_region)
        results = await self.ocr.recognize(image_path)

        usable = [r for r in results if r.success and r.text.strip()]
        if not usable:
            errors = "; ".join(f"{r.engine}: {r.error or 'no text'}" for r in results)
            logger.error(f"No OCR engine produced text for {image_path.name}: {errors}")
            metrics.extractions_total.labels(outcome="empty").inc()
            return ScanResult(
                success=False,
                error=f"All OCR engines failed: {errors}",
                ocr_results=results,
            )

        texts = [r.to_raw_text() for r in usable]
        candidates = [
            EngineCandidate(
                extraction=self.extraction.extract_vat(raw, language_hint, region),
                engine=raw.engine,
                engine_confidence=raw.confidence,
            )
            for raw in texts
        ]
        merged = arbitrate_all(candidates)
        assert merged is not None  # at least one usable result

        vat = self.extraction.apply_corrections(merged.extraction)
        if vat != merged.extraction:
            metrics.tax_corrections_total.inc()

        best = select_best_text(texts)
        assert best is not None
        invoice = self.extraction.parse_invoice(best)

        outcome = extraction_outcome(vat)
        metrics.extractions_total.labels(outcome=outcome).inc()
        logger.info(
            f"Scanned {image_path.name}: outcome={outcome} engines={merged.engine} "
            f"best_text={best.engine}"
        )

        return ScanResult(
            success=True,
            vat=vat,
            invoice=invoice,
            text=best.text,
            engine=best.engine,
            ocr_results=results,
        )
