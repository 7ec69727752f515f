"""Structured VAT table extraction.

Many receipts print VAT as a table, a header such as

    Vsk%   Vsk      Nettó     Upphæð

followed by one row per rate. Reading those rows as ordinary text would
count amounts that appear in several columns more than once, so the table
is parsed first and its lines are excluded from the line heuristics.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal

from vatscan.extraction.dictionaries import TermDictionary, contains_stem
from vatscan.extraction.numbers import normalize_number, normalize_percent

logger = logging.getLogger(__name__)

_PCT = r"(\d{1,2}(?:[.,]\d{1,2})?)\s*%"
_AMOUNT = r"(\d[\d.,\u00a0]*)"

ROW_4_COLUMNS = re.compile(rf"^\s*{_PCT}\s+{_AMOUNT}\s+{_AMOUNT}\s+{_AMOUNT}\s*$")
ROW_3_COLUMNS = re.compile(rf"^\s*{_PCT}\s+{_AMOUNT}\s+{_AMOUNT}\s*$")

# Rule lines (e.g. "-----") tolerated between a header and its first row
MAX_LINES_BEFORE_FIRST_ROW = 2


@dataclass(frozen=True)
class TableResult:
    """Sums recovered from a VAT table.

    consumed is the inclusive (header, last row) line index range.
    """

    subtotal: Decimal | None
    tax: Decimal | None
    total: Decimal | None
    rate_breakdown: dict[Decimal, Decimal] = field(default_factory=dict)
    consumed: tuple[int, int] = (0, 0)

    def consumed_range(self) -> range:
        return range(self.consumed[0], self.consumed[1] + 1)


def is_table_header(line: str, dictionary: TermDictionary) -> bool:
    """A header names the VAT percent, the net column and the total column."""
    lowered = line.lower()
    has_vat_percent = contains_stem(lowered, dictionary.all_terms("vat")) and (
        "%" in lowered or contains_stem(lowered, dictionary.all_terms("rate_words"))
    )
    return (
        has_vat_percent
        and contains_stem(lowered, dictionary.all_terms("table_net"))
        and contains_stem(lowered, dictionary.all_terms("table_gross"))
    )


def _parse_rows(
    lines: list[str],
    header: int,
    dictionary: TermDictionary,
    country: str | None,
    restrict_rates: bool,
) -> TableResult | None:
    rows = 0
    last_row = header
    acc_net = Decimal(0)
    acc_tax = Decimal(0)
    acc_total = Decimal(0)
    breakdown: dict[Decimal, Decimal] = defaultdict(Decimal)

    for index in range(header + 1, len(lines)):
        line = lines[index]
        match = ROW_4_COLUMNS.match(line) or ROW_3_COLUMNS.match(line)
        if match is None:
            if rows > 0 or index - header > MAX_LINES_BEFORE_FIRST_ROW:
                break
            continue

        rows += 1
        last_row = index

        rate = normalize_percent(match.group(1))
        if rate is not None:
            rate = dictionary.correct_rate(rate, country, restrict_rates)
        if rate is None:
            logger.debug(f"Skipping table row with unusable rate: {line!r}")
            continue

        tax = normalize_number(match.group(2))
        net = normalize_number(match.group(3))
        if match.re is ROW_4_COLUMNS:
            total = normalize_number(match.group(4))
        else:
            total = tax + net if tax is not None and net is not None else None

        if tax is not None:
            breakdown[rate] += tax
            acc_tax += tax
        if net is not None:
            acc_net += net
        if total is not None:
            acc_total += total
        elif net is not None and tax is not None:
            acc_total += net + tax

    if rows == 0:
        return None

    return TableResult(
        subtotal=acc_net if acc_net > 0 else None,
        tax=acc_tax if acc_tax > 0 else None,
        total=acc_total if acc_total > 0 else None,
        rate_breakdown=dict(breakdown),
        consumed=(header, last_row),
    )


def extract_table(
    lines: list[str],
    dictionary: TermDictionary,
    country: str | None = None,
    restrict_rates: bool = False,
) -> TableResult | None:
    """Parse the first VAT table in the lines.

    Rows are either "rate% tax net total" or "rate% tax net" (total derived
    as tax + net). A rule or blank-ish line directly under the header is
    tolerated; after the first row, the first line that matches neither
    pattern ends the table. A header without rows is skipped in favour of
    the next header.

    Args:
        lines: Trimmed, non-empty receipt lines
        dictionary: Term dictionary (header vocabulary, rate corrections)
        country: Country used for rate misread correction
        restrict_rates: Skip rows whose rate is not common for the country

    Returns:
        TableResult, or None when no header is followed by a row
    """
    for header, line in enumerate(lines):
        if not is_table_header(line, dictionary):
            continue
        result = _parse_rows(lines, header, dictionary, country, restrict_rates)
        if result is not None:
            logger.debug(f"VAT table lines {result.consumed}: {result}")
            return result
        logger.debug(f"VAT table header at line {header} has no rows")
    return None
