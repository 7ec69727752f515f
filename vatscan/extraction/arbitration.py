"""Dual-engine arbitration.

Each OCR engine yields its own VatExtraction. Arbitration picks every field
independently with one shared comparison, so the result does not depend on
which engine finished first.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import reduce

from vatscan.extraction.schema import CurrencyAmount, RawOcrText, VatExtraction

logger = logging.getLogger(__name__)

ICELANDIC_CHARS = frozenset("þæöðÞÆÖÐ")


@dataclass(frozen=True)
class EngineCandidate:
    """One engine's extraction together with the engine's own confidence."""

    extraction: VatExtraction
    engine: str | None = None
    engine_confidence: float | None = None


def _amount_key(value: CurrencyAmount, engine_confidence: float | None) -> tuple:
    return (value.confidence, engine_confidence or 0.0, value.amount, value.currency)


def _pick_amount(
    a: CurrencyAmount | None,
    a_conf: float | None,
    b: CurrencyAmount | None,
    b_conf: float | None,
) -> CurrencyAmount | None:
    if a is None:
        return b
    if b is None:
        return a
    return max((a, a_conf), (b, b_conf), key=lambda item: _amount_key(*item))[0]


def _pick_label(
    a: str | None, a_conf: float | None, b: str | None, b_conf: float | None
) -> str | None:
    if a is None:
        return b
    if b is None:
        return a
    return max((a_conf or 0.0, a), (b_conf or 0.0, b))[1]


def arbitrate(a: EngineCandidate, b: EngineCandidate) -> EngineCandidate:
    """Merge two candidates field by field.

    A value one candidate lacks comes from the other. When both have it, the
    higher amount confidence wins, then the higher engine confidence; full
    ties fall back to comparing the values themselves so that
    arbitrate(a, b) == arbitrate(b, a).
    """
    ea, eb = a.extraction, b.extraction
    ca, cb = a.engine_confidence, b.engine_confidence

    rates: dict[Decimal, CurrencyAmount] = {}
    for rate in sorted(set(ea.rate_breakdown) | set(eb.rate_breakdown), reverse=True):
        picked = _pick_amount(ea.rate_breakdown.get(rate), ca, eb.rate_breakdown.get(rate), cb)
        if picked is not None:
            rates[rate] = picked

    merged = VatExtraction(
        subtotal=_pick_amount(ea.subtotal, ca, eb.subtotal, cb),
        tax=_pick_amount(ea.tax, ca, eb.tax, cb),
        total=_pick_amount(ea.total, ca, eb.total, cb),
        rate_breakdown=rates,
        detected_language=_pick_label(ea.detected_language, ca, eb.detected_language, cb),
        detected_country=_pick_label(ea.detected_country, ca, eb.detected_country, cb),
    )

    engines = sorted(e for e in (a.engine, b.engine) if e)
    confidences = [c for c in (ca, cb) if c is not None]
    return EngineCandidate(
        extraction=merged,
        engine="+".join(engines) or None,
        engine_confidence=max(confidences) if confidences else None,
    )


def arbitrate_all(candidates: list[EngineCandidate]) -> EngineCandidate | None:
    """Fold arbitrate over any number of candidates (None when there are none)."""
    if not candidates:
        return None
    return reduce(arbitrate, candidates)


def score_text(text: str, confidence: float | None) -> tuple[float, int, float]:
    """Ranking key for raw OCR text: engine confidence, Icelandic letters, digit density."""
    stripped = text.strip()
    icelandic = sum(1 for ch in stripped if ch in ICELANDIC_CHARS)
    digits = sum(1 for ch in stripped if ch.isdigit())
    density = digits / len(stripped) if stripped else 0.0
    return (confidence or 0.0, icelandic, density)


def select_best_text(texts: list[RawOcrText]) -> RawOcrText | None:
    """Pick the raw text that should feed the invoice parser.

    Empty texts never win. Otherwise the higher reported confidence wins,
    with the number of Icelandic characters (þ, æ, ö, ð) and then digit
    density breaking ties.
    """
    usable = [t for t in texts if t.text.strip()]
    if not usable:
        return None
    best = max(usable, key=lambda t: (score_text(t.text, t.confidence), t.engine or ""))
    logger.debug(f"Selected text from {best.engine} (confidence {best.confidence})")
    return best
