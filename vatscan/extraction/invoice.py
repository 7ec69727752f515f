"""Coarse invoice header parsing: vendor, invoice number, date, amount, VAT."""

import datetime
import logging
import re
from decimal import Decimal

from vatscan.extraction.dictionaries import TermDictionary, contains_stem, contains_term
from vatscan.extraction.numbers import find_amounts, last_amount
from vatscan.extraction.schema import ParsedInvoice

logger = logging.getLogger(__name__)

VENDOR_LABEL_RE = re.compile(r"\b(?:fyrirtæki|seller|vendor)\b\s*[:：]\s*(.+)", re.IGNORECASE)

# Receipt boilerplate that is never the vendor name
VENDOR_SKIP_WORDS = (
    "kvittun",
    "kassakvittun",
    "kassi",
    "reikningur",
    "pos",
    "sundurliðun",
    "receipt",
    "total",
    "upphæð",
)
VENDOR_SEARCH_LINES = 5

INVOICE_LABEL_RE = re.compile(
    r"\b(?:reikningur\s*nr\.?|reiknings?númer|nót[uú]?númer|kvittun\s*nr\.?"
    r"|invoice\s*(?:no|nr|number|#)\.?|bill\s*no\.?|receipt\s*no\.?)"
    r"[^A-Za-z0-9]{0,10}([A-Z0-9-]{3,})",
    re.IGNORECASE,
)
INVOICE_NUMBER_FALLBACK_RE = re.compile(r"(?<![\d.,])(\d{6,10})(?![\d.,])")

_TIME = r"(?:\s+\d{2}:\d{2}(?::\d{2})?)?"
DATE_FORMATS = (
    (re.compile(rf"\b(\d{{4}}-\d{{2}}-\d{{2}}){_TIME}\b"), "%Y-%m-%d"),
    (re.compile(rf"\b(\d{{2}}\.\d{{2}}\.\d{{4}}){_TIME}\b"), "%d.%m.%Y"),
    (re.compile(rf"\b(\d{{2}}/\d{{2}}/\d{{4}}){_TIME}\b"), "%d/%m/%Y"),
    (re.compile(rf"\b(\d{{2}}-\d{{2}}-\d{{4}}){_TIME}\b"), "%d-%m-%Y"),
)

# Field weights of ParsedInvoice.confidence
VENDOR_WEIGHT = 0.3
AMOUNT_WEIGHT = 0.4
VAT_WEIGHT = 0.2
INVOICE_NUMBER_WEIGHT = 0.1


def find_vendor(text: str, lines: list[str], dictionary: TermDictionary) -> str | None:
    """Vendor from a label, a known vendor in the header, or the first sensible line."""
    labelled = VENDOR_LABEL_RE.search(text)
    if labelled:
        return labelled.group(1).strip()

    for line in lines[:VENDOR_SEARCH_LINES]:
        lowered = line.lower()
        for vendor in dictionary.known_vendors:
            if vendor.lower() in lowered:
                return vendor

    for line in lines:
        lowered = line.lower()
        if any(word in lowered for word in VENDOR_SKIP_WORDS):
            continue
        if 2 <= len(line) <= 64 and any(ch.isalpha() for ch in line):
            return line
    return None


def find_invoice_number(text: str, lines: list[str]) -> str | None:
    """Labelled invoice number, else the last 6-10 digit token from the bottom."""
    labelled = INVOICE_LABEL_RE.search(text)
    if labelled:
        return labelled.group(1).strip()

    for line in reversed(lines):
        tokens = INVOICE_NUMBER_FALLBACK_RE.findall(line)
        if tokens:
            return tokens[-1]
    return None


def find_date(text: str) -> datetime.date | None:
    """First date in one of the supported formats, as a calendar date."""
    for pattern, fmt in DATE_FORMATS:
        for match in pattern.finditer(text):
            try:
                return datetime.datetime.strptime(match.group(1), fmt).date()
            except ValueError:
                logger.debug(f"Ignoring invalid date {match.group(1)!r}")
    return None


def find_amount(text: str, lines: list[str], dictionary: TermDictionary) -> Decimal | None:
    """First total-labelled amount, else the largest number of at least 1."""
    total_terms = dictionary.all_terms("total")
    excluded = dictionary.all_terms("subtotal") + dictionary.all_terms("tax_amount")
    for line in lines:
        if contains_term(line, total_terms) and not contains_term(line, excluded):
            value = last_amount(line)
            if value is not None:
                return value

    candidates = [a for a in find_amounts(text) if a >= 1]
    return max(candidates) if candidates else None


def find_vat(lines: list[str], dictionary: TermDictionary) -> Decimal | None:
    """Tax amount from a "VSK upphæð"-style line, else the first non-percent VAT figure."""
    vat_terms = dictionary.all_terms("vat")
    amount_words = dictionary.all_terms("amount_words")
    tax_ids = dictionary.all_terms("tax_id")
    tax_amount_terms = dictionary.all_terms("tax_amount")
    # "Samtals með VSK" and "Upphæð án VSK" mention VAT but carry other amounts
    labelled_other = dictionary.all_terms("total") + dictionary.all_terms("subtotal")

    vat_lines = [
        line
        for line in lines
        if contains_term(line, vat_terms)
        and not contains_stem(line, tax_ids)
        and (contains_term(line, tax_amount_terms) or not contains_term(line, labelled_other))
    ]
    for line in vat_lines:
        if contains_stem(line, amount_words):
            value = last_amount(line)
            if value is not None:
                return value

    for line in vat_lines:
        amounts = find_amounts(line)
        if amounts:
            return amounts[0]
    return None


def parse_invoice(text: str, dictionary: TermDictionary) -> ParsedInvoice:
    """Parse the invoice header fields of a receipt text.

    Every field is best-effort and independent; missing fields are None.

    Args:
        text: Raw OCR text
        dictionary: Term dictionary (labels, known vendors)

    Returns:
        ParsedInvoice with a weighted completeness confidence
    """
    normalized = text.replace("\r", "")
    lines = [line.strip() for line in normalized.split("\n") if line.strip()]

    vendor = find_vendor(normalized, lines, dictionary)
    invoice_number = find_invoice_number(normalized, lines)
    amount = find_amount(normalized, lines, dictionary)
    vat = find_vat(lines, dictionary)
    date = find_date(normalized)

    confidence = (
        (VENDOR_WEIGHT if vendor else 0.0)
        + (AMOUNT_WEIGHT if amount is not None else 0.0)
        + (VAT_WEIGHT if vat is not None else 0.0)
        + (INVOICE_NUMBER_WEIGHT if invoice_number else 0.0)
    )

    logger.debug(
        f"Parsed invoice: vendor={vendor!r} number={invoice_number!r} "
        f"date={date} amount={amount} vat={vat}"
    )
    return ParsedInvoice(
        vendor=vendor,
        invoice_number=invoice_number,
        date=date,
        amount=amount,
        vat=vat,
        confidence=round(min(confidence, 1.0), 2),
    )
