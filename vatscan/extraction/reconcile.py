"""Reconciliation of table and line results into one VatExtraction.

Table values win over line values. At most one missing component is then
derived from the other two, and the caller may apply the implausible-tax
safety net (correct_implausible_tax) before persisting the result.
"""

import logging
from collections.abc import Callable, Iterable
from decimal import ROUND_HALF_UP, Decimal

from vatscan.extraction.detector import DEFAULT_CURRENCY
from vatscan.extraction.lines import LineResult
from vatscan.extraction.schema import CurrencyAmount, VatExtraction
from vatscan.extraction.table import TableResult
from vatscan.shared.config import Settings

logger = logging.getLogger(__name__)

# Provenance confidences
TABLE_CONFIDENCE = 0.95
RATE_SUM_CONFIDENCE = 0.9
LINE_CONFIDENCE = 0.85
DERIVED_CONFIDENCE = 0.8
CORRECTED_CONFIDENCE = 0.5
RECOVERED_CONFIDENCE = 0.6

# A derived tax slightly below zero is OCR rounding noise, not a label mixup
NEGATIVE_TAX_TOLERANCE = Decimal("-0.01")

CENT = Decimal("0.01")


def recover_tax_from_total(
    candidates: Iterable[Decimal],
    total: Decimal,
    rates: Iterable[Decimal],
    min_amount: Decimal = Decimal("1000"),
    tolerance: Decimal = Decimal("0.1"),
) -> Decimal | None:
    """Pick the printed number closest to the VAT share of a total.

    Some receipts print the tax only as an unlabelled figure. For each rate
    the expected tax is total * rate / (100 + rate); a candidate qualifies
    when it lies within tolerance (relative) of one of them.

    Args:
        candidates: Amounts printed on the receipt, in reading order
        total: Tax-inclusive total
        rates: Non-zero VAT rates to try, in percent
        min_amount: Totals and candidates at or below this are ignored
        tolerance: Largest relative distance from the expected tax

    Returns:
        The closest qualifying candidate (earliest on ties), or None
    """
    if total <= min_amount:
        return None
    expected = [total * rate / (100 + rate) for rate in rates if rate > 0]

    best: Decimal | None = None
    best_distance: Decimal | None = None
    for candidate in candidates:
        if candidate <= min_amount or candidate >= total:
            continue
        for tax in expected:
            distance = abs(candidate - tax)
            if distance < tax * tolerance and (best_distance is None or distance < best_distance):
                best, best_distance = candidate, distance
    return best


def _pick(
    table_value: Decimal | None,
    line_value: Decimal | None,
    line_confidence: float,
) -> tuple[Decimal | None, float]:
    if table_value is not None:
        return table_value, TABLE_CONFIDENCE
    return line_value, line_confidence


def reconcile(
    table_result: TableResult | None,
    line_result: LineResult | None,
    *,
    currency: str = DEFAULT_CURRENCY,
    language: str | None = None,
    country: str | None = None,
    recover_tax: Callable[[Decimal], Decimal | None] | None = None,
) -> VatExtraction:
    """Merge table and line results and derive one missing component.

    Derivation applies at most one rule, in this order, and never overwrites
    a value that was found:

    1. tax = total - subtotal, accepted only when >= -0.01
    2. subtotal = total - tax
    3. total = subtotal + tax

    Args:
        table_result: Structured table result, if a table was found
        line_result: Line heuristic result
        currency: Currency code stamped on every amount
        language: Detected language, copied to the result
        country: Detected country, copied to the result
        recover_tax: Called with the total when neither tax nor subtotal was
            found; a returned tax is kept and the subtotal derived from it

    Returns:
        VatExtraction; deterministic for the same inputs
    """
    table = table_result or TableResult(subtotal=None, tax=None, total=None)
    lines = line_result or LineResult()

    subtotal, subtotal_conf = _pick(table.subtotal, lines.subtotal, LINE_CONFIDENCE)
    total, total_conf = _pick(table.total, lines.total, LINE_CONFIDENCE)
    tax, tax_conf = _pick(
        table.tax,
        lines.tax,
        RATE_SUM_CONFIDENCE if lines.tax_from_rates else LINE_CONFIDENCE,
    )

    if recover_tax is not None and tax is None and subtotal is None and total is not None:
        recovered = recover_tax(total)
        if recovered is not None:
            tax, tax_conf = recovered, RECOVERED_CONFIDENCE
            logger.debug(f"Recovered tax {tax} from the VAT share of total {total}")

    if tax is None and subtotal is not None and total is not None:
        derived = total - subtotal
        if derived >= NEGATIVE_TAX_TOLERANCE:
            tax, tax_conf = derived, DERIVED_CONFIDENCE
            logger.debug(f"Derived tax {tax} = {total} - {subtotal}")
        else:
            logger.debug(f"Rejected derived tax {derived} (total {total} < subtotal {subtotal})")
    elif subtotal is None and total is not None and tax is not None:
        subtotal, subtotal_conf = total - tax, DERIVED_CONFIDENCE
        logger.debug(f"Derived subtotal {subtotal} = {total} - {tax}")
    elif total is None and subtotal is not None and tax is not None:
        total, total_conf = subtotal + tax, DERIVED_CONFIDENCE
        logger.debug(f"Derived total {total} = {subtotal} + {tax}")

    breakdown: dict[Decimal, CurrencyAmount] = {
        rate: CurrencyAmount(amount=amount, currency=currency, confidence=LINE_CONFIDENCE)
        for rate, amount in lines.rate_breakdown.items()
    }
    for rate, amount in table.rate_breakdown.items():
        breakdown[rate] = CurrencyAmount(
            amount=amount, currency=currency, confidence=TABLE_CONFIDENCE
        )

    def amount(value: Decimal | None, confidence: float) -> CurrencyAmount | None:
        if value is None:
            return None
        return CurrencyAmount(amount=value, currency=currency, confidence=confidence)

    return VatExtraction(
        subtotal=amount(subtotal, subtotal_conf),
        tax=amount(tax, tax_conf),
        total=amount(total, total_conf),
        rate_breakdown=dict(sorted(breakdown.items(), reverse=True)),
        detected_language=language,
        detected_country=country,
    )


def tax_from_total(total: Decimal, rate: Decimal) -> Decimal:
    """Tax contained in a tax-inclusive total at the given rate, rounded to cents."""
    net = total / (1 + rate / 100)
    return (total - net).quantize(CENT, rounding=ROUND_HALF_UP)


def is_implausible_tax(total: Decimal, tax: Decimal, settings: Settings) -> bool:
    return total > settings.vat_correction_min_total and (
        tax < settings.vat_correction_min_tax
        or tax > total * settings.vat_correction_max_tax_ratio
    )


def correct_implausible_tax(extraction: VatExtraction, settings: Settings) -> VatExtraction:
    """Replace a tax value that is implausible for its total.

    With the default thresholds, a tax below 10 or above half the total on a
    receipt over 100 is treated as an OCR misread and recomputed from the
    total at the fallback rate (24%). This is a product heuristic, not a
    verified calculation. A subtotal derived from the misread tax is
    recomputed from the corrected one; a subtotal found in the text is kept.

    Args:
        extraction: Reconciled extraction
        settings: Correction thresholds and fallback rate

    Returns:
        The same extraction, or a copy with the corrected tax
    """
    if not settings.vat_correction_enabled:
        return extraction
    if extraction.total is None or extraction.tax is None:
        return extraction

    total = extraction.total.amount
    original = extraction.tax.amount
    if not is_implausible_tax(total, original, settings):
        return extraction

    corrected = tax_from_total(total, settings.vat_correction_fallback_rate)
    logger.warning(
        f"Implausible tax {original} for total {total}; "
        f"replaced with {corrected} assuming {settings.vat_correction_fallback_rate}% VAT"
    )
    update = {
        "tax": CurrencyAmount(
            amount=corrected,
            currency=extraction.tax.currency,
            confidence=CORRECTED_CONFIDENCE,
        )
    }
    subtotal = extraction.subtotal
    if subtotal is not None and subtotal.confidence == DERIVED_CONFIDENCE:
        update["subtotal"] = subtotal.model_copy(update={"amount": total - corrected})
        logger.debug(f"Re-derived subtotal {total - corrected} from corrected tax")
    return extraction.model_copy(update=update)
