"""Line-by-line VAT heuristics.

Scans every receipt line outside the VAT table for labelled totals and
subtotals, per-rate tax amounts next to a percentage, and an unlabelled tax
total. Labels come from one language of the term dictionary; exclusion
rules keep "án vsk" (subtotal) and "VSK-upphæð" (tax amount) lines from
being read as totals.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal

from vatscan.extraction.dictionaries import (
    LanguageTerms,
    TermDictionary,
    contains_stem,
    contains_term,
)
from vatscan.extraction.numbers import PERCENT_RE, find_amounts, last_amount, normalize_percent

logger = logging.getLogger(__name__)

# Tax is usually the smaller figure printed next to its net amount. This is an
# empirical threshold, tunable through Settings.plausible_tax_ratio.
DEFAULT_PLAUSIBLE_TAX_RATIO = Decimal("0.6")

# Ranks of unlabelled tax-total candidates, best first
RANK_TAX_AMOUNT_LABEL = 0
RANK_AMOUNT_WORD = 1
RANK_GENERIC = 2


@dataclass(frozen=True)
class LineResult:
    """Amounts found by the line heuristics (plain decimals, no currency)."""

    subtotal: Decimal | None = None
    tax: Decimal | None = None
    total: Decimal | None = None
    rate_breakdown: dict[Decimal, Decimal] = field(default_factory=dict)
    tax_from_rates: bool = False

    def is_empty(self) -> bool:
        return (
            self.subtotal is None
            and self.tax is None
            and self.total is None
            and not any(self.rate_breakdown.values())
        )


def choose_tax_amount(
    amounts: list[Decimal], ratio: Decimal = DEFAULT_PLAUSIBLE_TAX_RATIO
) -> Decimal | None:
    """Pick the tax amount among the numbers printed after a percentage.

    Prefers the smallest positive value that is at most ratio times the
    largest value; falls back to the smallest value overall.
    """
    if not amounts:
        return None
    largest = max(amounts)
    plausible = [a for a in amounts if 0 < a <= largest * ratio]
    return min(plausible) if plausible else min(amounts)


def seed_common_rates(
    breakdown: dict[Decimal, Decimal], rates: tuple[Decimal, ...]
) -> dict[Decimal, Decimal]:
    """Add zero entries for the country's common non-zero rates."""
    seeded = dict(breakdown)
    for rate in rates:
        if rate > 0:
            seeded.setdefault(rate, Decimal(0))
    return seeded


def extract_lines(
    lines: list[str],
    dictionary: TermDictionary,
    excluding: range = range(0),
    language: str = "en",
    country: str | None = None,
    plausible_tax_ratio: Decimal = DEFAULT_PLAUSIBLE_TAX_RATIO,
    restrict_rates: bool = False,
) -> LineResult:
    """Scan receipt lines for totals, subtotals and per-rate tax.

    Args:
        lines: Trimmed, non-empty receipt lines
        dictionary: Term dictionary
        excluding: Line indexes already consumed by the VAT table
        language: Language whose labels are used
        country: Country for rate correction and zero-rate seeding
        plausible_tax_ratio: See choose_tax_amount
        restrict_rates: Drop rates that are not common for the country

    Returns:
        LineResult; fields that were not found are None

    Raises:
        UnknownLanguageError: If language is not in the dictionary
    """
    terms: LanguageTerms = dictionary.language(language)

    subtotal: Decimal | None = None
    total: Decimal | None = None
    breakdown: dict[Decimal, Decimal] = defaultdict(Decimal)
    tax_candidates: list[tuple[int, int, Decimal]] = []

    for index, line in enumerate(lines):
        if index in excluding:
            continue

        is_subtotal_line = contains_term(line, terms.subtotal)
        is_tax_amount_line = contains_term(line, terms.tax_amount)
        is_total_line = (
            contains_term(line, terms.total) and not is_subtotal_line and not is_tax_amount_line
        )

        if total is None and is_total_line:
            total = last_amount(line)
            if total is not None:
                logger.debug(f"Total {total} from line {index}: {line!r}")

        if subtotal is None and is_subtotal_line:
            subtotal = last_amount(line)
            if subtotal is not None:
                logger.debug(f"Subtotal {subtotal} from line {index}: {line!r}")

        percents = list(PERCENT_RE.finditer(line))
        for position, match in enumerate(percents):
            rate = normalize_percent(match.group(1))
            if rate is not None:
                rate = dictionary.correct_rate(rate, country, restrict_rates)
            if rate is None:
                continue

            # Amounts up to the next percentage belong to this rate
            end = percents[position + 1].start() if position + 1 < len(percents) else len(line)
            amounts = find_amounts(line[match.end() : end])
            if not amounts and index + 1 < len(lines):
                # OCR sometimes wraps the amounts onto the next line
                next_line = lines[index + 1]
                if not PERCENT_RE.search(next_line):
                    amounts = find_amounts(next_line)

            chosen = choose_tax_amount(amounts, plausible_tax_ratio)
            if chosen is not None:
                breakdown[rate] += chosen
                logger.debug(f"Rate {rate}%: +{chosen} from line {index}: {line!r}")

        if percents or is_total_line or is_subtotal_line:
            continue
        if not contains_term(line, terms.vat) or contains_stem(line, terms.tax_id):
            continue

        if is_tax_amount_line:
            rank = RANK_TAX_AMOUNT_LABEL
        elif contains_stem(line, terms.amount_words):
            rank = RANK_AMOUNT_WORD
        elif "%" not in line:
            rank = RANK_GENERIC
        else:
            continue

        value = last_amount(line)
        if value is not None:
            tax_candidates.append((rank, index, value))

    tax: Decimal | None = None
    tax_from_rates = False
    if tax_candidates:
        rank, index, tax = min(tax_candidates, key=lambda c: (c[0], c[1]))
        logger.debug(f"Tax total {tax} from line {index} (rank {rank})")
    elif breakdown:
        tax = sum(breakdown.values(), Decimal(0))
        tax_from_rates = True
        logger.debug(f"Tax total {tax} summed from rates {dict(breakdown)}")

    return LineResult(
        subtotal=subtotal,
        tax=tax,
        total=total,
        rate_breakdown=seed_common_rates(breakdown, dictionary.common_rates(country)),
        tax_from_rates=tax_from_rates,
    )
