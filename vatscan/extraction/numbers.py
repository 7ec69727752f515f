"""Locale-aware number normalization for OCR amount tokens.

Receipts from Iceland and most of Europe use '.' for thousands and ',' for
decimals, the reverse of the US convention. A token such as "7.598" is read
as seven thousand five hundred ninety-eight, "24.5" as a decimal. The rules
below are checked in order and the first match wins.
"""

import logging
import re
from decimal import Decimal, InvalidOperation

logger = logging.getLogger(__name__)

# Amount tokens inside a line. Nordic receipts group thousands with a single
# space ("31 656"); a space group never continues into ".dd" (US decimals).
NUMBER_TOKEN_RE = re.compile(
    r"\d{1,3}(?:[ \u00a0]\d{3})+(?:,\d{1,2})?(?![.,]?\d)"
    r"|\d+(?:[.,\u00a0]\d+)*"
)

# Dates and clock times are not amounts.
_DATE_OR_TIME_RE = re.compile(
    r"(?<!\d)(?:\d{1,4}[./-]\d{1,2}[./-]\d{2,4}|\d{1,2}:\d{2}(?::\d{2})?)(?!\d)"
)

# Percentages never carry thousands separators.
PERCENT_RE = re.compile(r"(\d{1,2}(?:[.,]\d{1,2})?)\s*%")

_CURRENCY_MARKERS_RE = re.compile(
    r"kr\.?|isk|eur|usd|gbp|dkk|nok|sek|chf|€|\$|£",
    re.IGNORECASE,
)

_EUROPEAN_GROUPED = re.compile(r"\d{1,3}(?:\.\d{3})*,\d{1,2}")
_DECIMAL_COMMA = re.compile(r"\d+,\d{1,2}")
_DOT_THOUSANDS = re.compile(r"\d{1,3}\.\d{3}")
_DECIMAL_POINT = re.compile(r"\d+\.\d{1,2}")
_INTEGER = re.compile(r"\d+")
_US_GROUPED = re.compile(r"\d{1,3}(?:,\d{3})+\.\d{1,2}")

# Decimal() would also accept "1e5" and "1_000"
_PLAIN_NUMBER = re.compile(r"[\d.,]+")


def clean_token(token: str) -> str:
    """Strip currency words/symbols and all whitespace (including NBSP)."""
    cleaned = _CURRENCY_MARKERS_RE.sub("", token.replace("\u00a0", " "))
    return re.sub(r"\s+", "", cleaned)


def _to_decimal(text: str) -> Decimal | None:
    if not _PLAIN_NUMBER.fullmatch(text):
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite() or value < 0:
        return None
    return value


def normalize_number(token: str) -> Decimal | None:
    """Parse a monetary token in ambiguous locale formatting.

    Examples:
        >>> normalize_number("1.234,56")
        Decimal('1234.56')
        >>> normalize_number("31.656")
        Decimal('31656')
        >>> normalize_number("24.5")
        Decimal('24.5')

    Args:
        token: Numeric token, possibly with currency markers and NBSP grouping

    Returns:
        Non-negative Decimal, or None if the token cannot be read as an amount
    """
    cleaned = clean_token(token)
    if not cleaned:
        return None

    if _EUROPEAN_GROUPED.fullmatch(cleaned):
        branch = "thousands+decimal"
        processed = cleaned.replace(".", "").replace(",", ".")
    elif _DECIMAL_COMMA.fullmatch(cleaned):
        branch = "decimal comma"
        processed = cleaned.replace(",", ".")
    elif _DOT_THOUSANDS.fullmatch(cleaned):
        branch = "dot thousands"
        processed = cleaned.replace(".", "")
    elif _DECIMAL_POINT.fullmatch(cleaned):
        branch = "decimal point"
        processed = cleaned
    elif _INTEGER.fullmatch(cleaned):
        branch = "integer"
        processed = cleaned
    elif _US_GROUPED.fullmatch(cleaned):
        branch = "US grouping"
        processed = cleaned.replace(",", "")
    else:
        branch = "fallback"
        processed = cleaned.replace(".", "").replace(",", ".")

    value = _to_decimal(processed)
    logger.debug(f"normalize_number: {token!r} -> {processed!r} ({branch}) = {value}")
    return value


def normalize_percent(token: str) -> Decimal | None:
    """Parse a VAT percentage; ',' and '.' are always decimal points.

    Args:
        token: Percentage token with or without the trailing '%'

    Returns:
        Rate in percent (0-100), or None if unparseable
    """
    cleaned = re.sub(r"\s+", "", token.replace("\u00a0", "")).rstrip("%").replace(",", ".")
    value = _to_decimal(cleaned)
    if value is None or value > 100:
        return None
    return value


def find_amounts(text: str) -> list[Decimal]:
    """Parse every amount token in text, skipping tokens that are percentages."""
    text = _DATE_OR_TIME_RE.sub(" ", text)
    amounts = []
    for match in NUMBER_TOKEN_RE.finditer(text):
        if text[match.end() :].lstrip().startswith("%"):
            continue
        value = normalize_number(match.group())
        if value is not None:
            amounts.append(value)
    return amounts


def last_amount(text: str) -> Decimal | None:
    """Return the right-most amount on a line (labels lead, values trail)."""
    amounts = find_amounts(text)
    return amounts[-1] if amounts else None
