"""Unit tests for structured VAT table extraction."""

from decimal import Decimal

import pytest

from vatscan.extraction.dictionaries import build_term_dictionary
from vatscan.extraction.table import extract_table, is_table_header


@pytest.fixture
def dictionary():
    """Built-in dictionary without overrides."""
    return build_term_dictionary()


class TestHeader:
    """Header recognition."""

    @pytest.mark.parametrize(
        "line",
        [
            "Vsk% Vsk Nettó Upphæð",
            "VSK %  VSK  Án vsk  Heild",
            "VAT rate  VAT  Net  Total",
            "MwSt%  MwSt  Netto  Brutto",
        ],
    )
    def test_headers(self, dictionary, line: str) -> None:
        """Test that VAT-percent, net and gross columns make a header."""
        assert is_table_header(line, dictionary)

    @pytest.mark.parametrize(
        "line",
        [
            "VSK 24% 7.598",
            "Nettó 31.656",
            "Samtals 39.254",
        ],
    )
    def test_non_headers(self, dictionary, line: str) -> None:
        """Test that ordinary receipt lines are not headers."""
        assert not is_table_header(line, dictionary)


class TestExtractTable:
    """Row parsing and table boundaries."""

    def test_single_row(self, dictionary) -> None:
        """Test the canonical four-column Icelandic table."""
        result = extract_table(
            ["Vsk% Vsk Nettó Upphæð", "24% 7598.00 31656.00 39254.00"], dictionary
        )

        assert result is not None
        assert result.tax == Decimal("7598")
        assert result.subtotal == Decimal("31656")
        assert result.total == Decimal("39254")
        assert result.rate_breakdown == {Decimal("24"): Decimal("7598")}
        assert result.consumed == (0, 1)
        assert list(result.consumed_range()) == [0, 1]

    def test_multiple_rows_with_thousands_separators(self, dictionary) -> None:
        """Test that rows are summed and European grouping is parsed."""
        lines = [
            "Bónus",
            "VSK% VSK Nettó Upphæð",
            "24% 7.598 31.656 39.254",
            "11% 110 1.000 1.110",
            "Takk fyrir",
        ]

        result = extract_table(lines, dictionary, country="IS")

        assert result is not None
        assert result.tax == Decimal("7708")
        assert result.subtotal == Decimal("32656")
        assert result.total == Decimal("40364")
        assert result.rate_breakdown == {
            Decimal("24"): Decimal("7598"),
            Decimal("11"): Decimal("110"),
        }
        assert result.consumed == (1, 3)

    def test_three_column_rows_derive_total(self, dictionary) -> None:
        """Test that a row without a total column is completed as tax + net."""
        result = extract_table(["VAT% VAT Net Total", "20% 2.00 10.00"], dictionary)

        assert result is not None
        assert result.tax == Decimal("2.00")
        assert result.subtotal == Decimal("10.00")
        assert result.total == Decimal("12.00")

    def test_rule_line_under_header_is_tolerated(self, dictionary) -> None:
        """Test that a separator line before the first row is skipped."""
        lines = ["Vsk% Vsk Nettó Upphæð", "-----------------", "24% 7598 31656 39254"]

        result = extract_table(lines, dictionary)

        assert result is not None
        assert result.tax == Decimal("7598")
        assert result.consumed == (0, 2)

    def test_first_non_row_ends_table(self, dictionary) -> None:
        """Test that rows after the table are not consumed."""
        lines = [
            "Vsk% Vsk Nettó Upphæð",
            "24% 100 400 500",
            "Samtals 500",
            "11% 5 50 55",
        ]

        result = extract_table(lines, dictionary)

        assert result is not None
        assert result.rate_breakdown == {Decimal("24"): Decimal("100")}
        assert result.consumed == (0, 1)

    def test_header_without_rows_is_skipped(self, dictionary) -> None:
        """Test that the search moves on to the next header."""
        lines = [
            "Vsk% Vsk Nettó Upphæð",
            "Takk fyrir",
            "Verið velkomin",
            "Opið alla daga",
            "Vsk% Vsk Nettó Upphæð",
            "24% 100 400 500",
        ]

        result = extract_table(lines, dictionary)

        assert result is not None
        assert result.consumed == (4, 5)
        assert result.total == Decimal("500")

    def test_no_header(self, dictionary) -> None:
        """Test that receipts without a table yield None."""
        assert extract_table(["Samtals 39.254", "VSK 24% 7.598"], dictionary) is None
        assert extract_table([], dictionary) is None

    def test_misread_rate_is_corrected(self, dictionary) -> None:
        """Test that 28% is booked as 24% for Iceland."""
        lines = ["Vsk% Vsk Nettó Upphæð", "28% 7598 31656 39254"]

        corrected = extract_table(lines, dictionary, country="IS")
        uncorrected = extract_table(lines, dictionary)

        assert corrected is not None and uncorrected is not None
        assert corrected.rate_breakdown == {Decimal("24"): Decimal("7598")}
        assert uncorrected.rate_breakdown == {Decimal("28"): Decimal("7598")}

    def test_restricted_rates_skip_uncommon_rows(self, dictionary) -> None:
        """Test that rows with uncommon rates are dropped when restricted."""
        lines = ["Vsk% Vsk Nettó Upphæð", "24% 100 400 500", "15% 30 200 230"]

        result = extract_table(lines, dictionary, country="IS", restrict_rates=True)

        assert result is not None
        assert result.rate_breakdown == {Decimal("24"): Decimal("100")}
        assert result.tax == Decimal("100")
        assert result.consumed == (0, 2)
