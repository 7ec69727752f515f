"""VAT extraction service.

Wires the pure extraction pipeline together:

    raw text -> detect language/currency -> structured table
             -> line heuristics (excluding table lines) -> reconcile

The service holds only Settings and the immutable term dictionary, so one
instance can be shared freely between threads and requests.
"""

import logging
from collections.abc import Callable
from decimal import Decimal
from functools import partial

from pydantic import BaseModel

from vatscan.extraction.detector import detect
from vatscan.extraction.dictionaries import TermDictionary, get_term_dictionary
from vatscan.extraction.invoice import parse_invoice
from vatscan.extraction.lines import LineResult, extract_lines
from vatscan.extraction.numbers import find_amounts
from vatscan.extraction.reconcile import (
    correct_implausible_tax,
    reconcile,
    recover_tax_from_total,
)
from vatscan.extraction.schema import ParsedInvoice, RawOcrText, VatExtraction
from vatscan.extraction.table import extract_table
from vatscan.shared.config import Settings

logger = logging.getLogger(__name__)


class ExtractionResult(BaseModel):
    """Result of a full text extraction.

    Attributes:
        vat: Reconciled (and, if enabled, corrected) VAT figures
        invoice: Invoice header fields
        success: Whether any amount was recovered
        error: Reason when nothing usable was found
        engine: OCR engine that produced the text, if known
    """

    vat: VatExtraction | None
    invoice: ParsedInvoice | None
    success: bool
    error: str | None = None
    engine: str | None = None


def split_lines(text: str) -> list[str]:
    """Trimmed, non-empty lines of a receipt text."""
    return [line.strip() for line in text.replace("\r", "").split("\n") if line.strip()]


class VatExtractionService:
    """Turns raw receipt text into VatExtraction and ParsedInvoice records."""

    def __init__(self, settings: Settings, dictionary: TermDictionary | None = None) -> None:
        """Initialize the service.

        Args:
            settings: Application settings
            dictionary: Term dictionary; defaults to the process-wide one
                (built-in data merged with settings.term_dictionary_path)
        """
        self.settings = settings
        self.dictionary = dictionary or get_term_dictionary(settings.term_dictionary_path)
        # Fail fast on a misconfigured default language
        self.dictionary.language(settings.default_language)

    def _resolve_language(self, text: str, language_hint: str | None) -> tuple[str | None, str]:
        language, currency = detect(text, self.dictionary)
        if language_hint:
            if language_hint in self.dictionary.languages:
                language = language_hint
            else:
                logger.warning(f"Ignoring unregistered language hint '{language_hint}'")
        return language, currency

    def _extract_lines(
        self,
        lines: list[str],
        excluding: range,
        language: str | None,
        country: str | None,
    ) -> LineResult:
        default = self.settings.default_language
        kwargs = {
            "excluding": excluding,
            "country": country,
            "plausible_tax_ratio": self.settings.plausible_tax_ratio,
            "restrict_rates": self.settings.restrict_to_common_rates,
        }

        result = extract_lines(lines, self.dictionary, language=language or default, **kwargs)
        if result.is_empty() and language and language != default:
            logger.debug(f"No amounts with '{language}' terms, retrying with '{default}'")
            result = extract_lines(lines, self.dictionary, language=default, **kwargs)
        return result

    def _tax_recovery(
        self, lines: list[str], country: str | None
    ) -> Callable[[Decimal], Decimal | None] | None:
        if not self.settings.tax_recovery_enabled:
            return None
        rates = [rate for rate in self.dictionary.common_rates(country) if rate > 0] or [
            self.settings.vat_correction_fallback_rate
        ]
        candidates = [amount for line in lines for amount in find_amounts(line)]
        return partial(
            recover_tax_from_total,
            candidates,
            rates=rates,
            min_amount=self.settings.tax_recovery_min_amount,
            tolerance=self.settings.tax_recovery_tolerance,
        )

    def extract_vat(
        self,
        raw_text: str | RawOcrText,
        language_hint: str | None = None,
        region_hint: str | None = None,
    ) -> VatExtraction:
        """Extract VAT figures from receipt text.

        Total over its input: any text, including the empty string, yields a
        VatExtraction, possibly with every field absent.

        Args:
            raw_text: OCR text, plain or with engine metadata
            language_hint: Language code to use instead of the detected one
            region_hint: Country code used when no language is known

        Returns:
            Reconciled VatExtraction (without implausible-tax correction)
        """
        text = raw_text.text if isinstance(raw_text, RawOcrText) else raw_text
        lines = split_lines(text)

        language, currency = self._resolve_language(text, language_hint)
        country = self.dictionary.country_for(language) if language else region_hint
        rate_country = country or self.settings.default_country

        table = extract_table(
            lines,
            self.dictionary,
            country=rate_country,
            restrict_rates=self.settings.restrict_to_common_rates,
        )
        excluding = table.consumed_range() if table else range(0)
        line_result = self._extract_lines(lines, excluding, language, rate_country)

        extraction = reconcile(
            table,
            line_result,
            currency=currency,
            language=language,
            country=country,
            recover_tax=self._tax_recovery(lines, rate_country),
        )
        logger.debug(
            f"Extracted VAT (language={language}, country={country}, currency={currency}, "
            f"table={'yes' if table else 'no'}): {extraction}"
        )
        return extraction

    def apply_corrections(self, extraction: VatExtraction) -> VatExtraction:
        """Apply the implausible-tax safety net configured in Settings."""
        return correct_implausible_tax(extraction, self.settings)

    def parse_invoice(self, raw_text: str | RawOcrText) -> ParsedInvoice:
        text = raw_text.text if isinstance(raw_text, RawOcrText) else raw_text
        return parse_invoice(text, self.dictionary)

    def extract_invoice_fields(
        self,
        ocr_text: str | RawOcrText,
        language_hint: str | None = None,
        region_hint: str | None = None,
    ) -> ExtractionResult:
        """Run VAT extraction, correction and invoice parsing on one text.

        Args:
            ocr_text: Raw text from an OCR engine
            language_hint: Optional language code
            region_hint: Optional country code

        Returns:
            ExtractionResult; success is False when the text is empty or no
            amount could be recovered
        """
        engine = ocr_text.engine if isinstance(ocr_text, RawOcrText) else None
        text = ocr_text.text if isinstance(ocr_text, RawOcrText) else ocr_text

        if not text or not text.strip():
            return ExtractionResult(
                vat=None,
                invoice=None,
                success=False,
                error="Empty OCR text provided",
                engine=engine,
            )

        vat = self.apply_corrections(self.extract_vat(text, language_hint, region_hint))
        invoice = self.parse_invoice(text)
        success = not vat.is_empty() or invoice.amount is not None

        if success:
            logger.info(
                f"Extraction complete: total={vat.total.amount if vat.total else None} "
                f"tax={vat.tax.amount if vat.tax else None} vendor={invoice.vendor!r}"
            )
        else:
            logger.warning("No amounts found in OCR text")

        return ExtractionResult(
            vat=vat,
            invoice=invoice,
            success=success,
            error=None if success else "No amounts found in OCR text",
            engine=engine,
        )
