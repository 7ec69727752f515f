"""Unit tests for the VAT extraction service.

Tests cover:
- Table and line extraction wired through detection
- Language hints, region hints and the default-language retry
- Full field extraction with implausible-tax correction
- Error results for empty or amount-free text
"""

import logging
from decimal import Decimal

import pytest

from vatscan.extraction.dictionaries import UnknownLanguageError
from vatscan.extraction.schema import RawOcrText
from vatscan.extraction.service import ExtractionResult, VatExtractionService, split_lines
from vatscan.shared.config import Settings

TABLE_RECEIPT = """Vsk% Vsk Nettó Upphæð
24% 7598.00 31656.00 39254.00
Samtals 39.254 kr
"""


@pytest.fixture
def extraction_service() -> VatExtractionService:
    """Create extraction service instance."""
    return VatExtractionService(Settings())


def test_split_lines() -> None:
    """Test that lines are trimmed and blank lines dropped."""
    assert split_lines("  Bónus \r\n\n Samtals 500 \n") == ["Bónus", "Samtals 500"]


def test_invalid_default_language_fails_fast() -> None:
    """Test that a misconfigured default language is rejected at startup."""
    with pytest.raises(UnknownLanguageError):
        VatExtractionService(Settings(default_language="xx"))


class TestExtractVat:
    """VAT figures from raw text."""

    def test_table_receipt(self, extraction_service: VatExtractionService) -> None:
        """Test an Icelandic receipt with a VAT table."""
        result = extraction_service.extract_vat(TABLE_RECEIPT)

        assert result.subtotal is not None and result.subtotal.amount == Decimal("31656")
        assert result.tax is not None and result.tax.amount == Decimal("7598")
        assert result.total is not None and result.total.amount == Decimal("39254")
        assert result.total.currency == "ISK"
        assert result.total.confidence == 0.95
        assert result.rate_breakdown[Decimal("24")].amount == Decimal("7598")
        assert result.rate_breakdown[Decimal("11")].amount == Decimal("0")
        assert result.detected_language == "is"
        assert result.detected_country == "IS"

    def test_accepts_raw_ocr_text(self, extraction_service: VatExtractionService) -> None:
        """Test that engine metadata input gives the same result."""
        raw = RawOcrText(text=TABLE_RECEIPT, engine="tesseract", confidence=0.8)

        assert extraction_service.extract_vat(raw) == extraction_service.extract_vat(TABLE_RECEIPT)

    def test_empty_text(self, extraction_service: VatExtractionService) -> None:
        """Test that empty text yields an empty extraction, not an error."""
        result = extraction_service.extract_vat("")

        assert result.is_empty()
        assert result.detected_language is None
        assert result.detected_country is None

    def test_no_vat_terms_uses_default_language(
        self, extraction_service: VatExtractionService
    ) -> None:
        """Test that text without VAT vocabulary is read with English terms."""
        result = extraction_service.extract_vat("Subtotal 10.00\nTotal 12.00")

        assert result.detected_language is None
        assert result.tax is not None
        assert result.tax.amount == Decimal("2.00")

    def test_region_hint_sets_country(self, extraction_service: VatExtractionService) -> None:
        """Test that a region hint is used when no language is detected."""
        result = extraction_service.extract_vat("Total 12.00", region_hint="US")

        assert result.detected_country == "US"
        assert Decimal("8.5") in result.rate_breakdown

    def test_language_hint_overrides_detection(
        self, extraction_service: VatExtractionService
    ) -> None:
        """Test that a registered hint wins over the detected language."""
        result = extraction_service.extract_vat("VAT 20% 2.00\nTotal 12.00", language_hint="is")

        assert result.detected_language == "is"
        assert result.detected_country == "IS"

    def test_unregistered_language_hint_is_ignored(
        self, extraction_service: VatExtractionService, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that an unknown hint logs a warning and detection is kept."""
        with caplog.at_level(logging.WARNING):
            result = extraction_service.extract_vat("VAT 20% 2.00", language_hint="xx")

        assert result.detected_language == "en"
        assert any("xx" in record.message for record in caplog.records)

    def test_retry_with_default_language(self, extraction_service: VatExtractionService) -> None:
        """Test that the English terms are tried when the detected ones find nothing."""
        result = extraction_service.extract_vat("VSK\nAmount due 100.00\nBefore tax 80.00")

        assert result.detected_language == "is"
        assert result.total is not None and result.total.amount == Decimal("100.00")
        assert result.tax is not None and result.tax.amount == Decimal("20.00")

    def test_space_grouped_receipt(self, extraction_service: VatExtractionService) -> None:
        """Test a receipt printing thousands with a plain space."""
        result = extraction_service.extract_vat("Bónus\nSamtals 31 656 kr\nVSK 24% 6 127 kr")

        assert result.total is not None and result.total.amount == Decimal("31656")
        assert result.tax is not None and result.tax.amount == Decimal("6127")
        assert result.subtotal is not None and result.subtotal.amount == Decimal("25529")

    def test_tax_recovery_is_opt_in(self, extraction_service: VatExtractionService) -> None:
        """Test that an unlabelled tax figure is used only when recovery is enabled."""
        text = "Verslun ehf\nKaffi 7.598\nTotal 39.254 kr"

        assert extraction_service.extract_vat(text).tax is None

        result = VatExtractionService(Settings(tax_recovery_enabled=True)).extract_vat(text)

        assert result.tax is not None and result.tax.amount == Decimal("7598")
        assert result.tax.confidence == 0.6
        assert result.subtotal is not None and result.subtotal.amount == Decimal("31656")

    def test_correction_is_not_applied(self, extraction_service: VatExtractionService) -> None:
        """Test that extract_vat returns the raw reconciled figures."""
        result = extraction_service.extract_vat("Samtals 39.254 kr\nVSK 2")

        assert result.tax is not None
        assert result.tax.amount == Decimal("2")


class TestExtractInvoiceFields:
    """Full extraction with correction and invoice parsing."""

    def test_implausible_tax_is_corrected(self, extraction_service: VatExtractionService) -> None:
        """Test that a misread tax is recomputed from the total."""
        result = extraction_service.extract_invoice_fields("Bónus\nSamtals 39.254 kr\nVSK 2")

        assert isinstance(result, ExtractionResult)
        assert result.success is True
        assert result.vat is not None and result.vat.tax is not None
        assert result.vat.tax.amount == Decimal("7597.55")
        assert result.vat.tax.confidence == 0.5
        assert result.invoice is not None
        assert result.invoice.vendor == "Bónus"
        assert result.invoice.amount == Decimal("39254")
        assert result.vat.subtotal is not None
        assert result.vat.subtotal.amount + result.vat.tax.amount == Decimal("39254")

    def test_correction_can_be_disabled(self) -> None:
        """Test the correction switch."""
        service = VatExtractionService(Settings(vat_correction_enabled=False))

        result = service.extract_invoice_fields("Samtals 39.254 kr\nVSK 2")

        assert result.vat is not None and result.vat.tax is not None
        assert result.vat.tax.amount == Decimal("2")

    def test_engine_is_reported(self, extraction_service: VatExtractionService) -> None:
        """Test that the OCR engine name is passed through."""
        raw = RawOcrText(text=TABLE_RECEIPT, engine="paddleocr")

        result = extraction_service.extract_invoice_fields(raw)

        assert result.success is True
        assert result.engine == "paddleocr"

    @pytest.mark.parametrize("text", ["", "   \n  "])
    def test_empty_text(self, extraction_service: VatExtractionService, text: str) -> None:
        """Test error handling for empty OCR text."""
        result = extraction_service.extract_invoice_fields(text)

        assert result.success is False
        assert result.error == "Empty OCR text provided"
        assert result.vat is None
        assert result.invoice is None

    def test_no_amounts(self, extraction_service: VatExtractionService) -> None:
        """Test that text without numbers is reported as unsuccessful."""
        result = extraction_service.extract_invoice_fields("hello world")

        assert result.success is False
        assert result.error == "No amounts found in OCR text"
        assert result.vat is not None
        assert result.vat.is_empty()
