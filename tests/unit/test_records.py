"""Unit tests for invoice records and the SQLite record store."""

import datetime
import sqlite3
from decimal import Decimal
from pathlib import Path

import pytest

from vatscan.extraction.schema import CurrencyAmount, ParsedInvoice, VatExtraction
from vatscan.storage.records import (
    InvoiceRecord,
    RecordUpdate,
    SQLiteRecordStore,
    build_record,
)


@pytest.fixture
def store(tmp_path: Path) -> SQLiteRecordStore:
    """Record store backed by a temporary database."""
    return SQLiteRecordStore(str(tmp_path / "records.db"))


def isk(value: str) -> CurrencyAmount:
    return CurrencyAmount(amount=Decimal(value), currency="ISK", confidence=0.95)


def record(**fields) -> InvoiceRecord:
    defaults = {"vendor": "Bónus", "month": "2024-03", "total": Decimal("39254")}
    return InvoiceRecord(**{**defaults, **fields})


class TestBuildRecord:
    """Records built from one scan."""

    def test_reconciled_figures_are_used(self) -> None:
        """Test that VAT figures and invoice header fields are combined."""
        vat = VatExtraction(subtotal=isk("31656"), tax=isk("7598"), total=isk("39254"))
        invoice = ParsedInvoice(
            vendor="Bónus",
            invoice_number="0012345",
            date=datetime.date(2024, 3, 15),
            amount=Decimal("39000"),
            vat=Decimal("7000"),
            confidence=1.0,
        )

        built = build_record(vat, invoice, image_ref="receipts/2024-03/x.png", ocr_text="text")

        assert built.net == Decimal("31656")
        assert built.tax == Decimal("7598")
        assert built.total == Decimal("39254")
        assert built.currency == "ISK"
        assert built.month == "2024-03"
        assert built.vendor == "Bónus"
        assert built.invoice_number == "0012345"
        assert built.image_ref == "receipts/2024-03/x.png"
        assert built.ocr_text == "text"
        assert built.confidence == 1.0

    def test_invoice_amounts_fill_gaps(self) -> None:
        """Test that the parser's amount and VAT are used when VAT extraction found none."""
        invoice = ParsedInvoice(amount=Decimal("1240"), vat=Decimal("240"))

        built = build_record(VatExtraction(), invoice, today=datetime.date(2024, 4, 2))

        assert built.total == Decimal("1240")
        assert built.tax == Decimal("240")
        assert built.net == Decimal("1000")
        assert built.currency is None

    def test_month_falls_back_to_scan_date(self) -> None:
        """Test the month of a receipt without a date."""
        built = build_record(VatExtraction(), ParsedInvoice(), today=datetime.date(2024, 4, 2))

        assert built.date is None
        assert built.month == "2024-04"

    def test_new_records_get_unique_ids(self) -> None:
        """Test that every record has its own id."""
        assert record().id != record().id


class TestSQLiteRecordStore:
    """CRUD and listing."""

    def test_add_and_get(self, store: SQLiteRecordStore) -> None:
        """Test that a stored record reads back unchanged."""
        original = record(
            invoice_number="0012345",
            date=datetime.date(2024, 3, 15),
            net=Decimal("31656.00"),
            tax=Decimal("7598.00"),
            currency="ISK",
            confidence=0.9,
        )

        store.add(original)

        assert store.get(original.id) == original

    def test_get_missing(self, store: SQLiteRecordStore) -> None:
        """Test that unknown ids give None."""
        assert store.get("missing") is None

    def test_duplicate_id_is_rejected(self, store: SQLiteRecordStore) -> None:
        """Test that ids are unique."""
        original = store.add(record())

        with pytest.raises(sqlite3.IntegrityError):
            store.add(original)

    def test_update_changes_only_given_fields(self, store: SQLiteRecordStore) -> None:
        """Test a partial correction."""
        original = store.add(record(tax=Decimal("2")))

        updated = store.update(original.id, RecordUpdate(tax=Decimal("7598")))

        assert updated is not None
        assert updated.tax == Decimal("7598")
        assert updated.vendor == "Bónus"
        assert store.get(original.id) == updated

    def test_update_date_moves_month(self, store: SQLiteRecordStore) -> None:
        """Test that a corrected date also corrects the month."""
        original = store.add(record())

        updated = store.update(original.id, RecordUpdate(date=datetime.date(2024, 2, 29)))

        assert updated is not None
        assert updated.month == "2024-02"
        assert store.list(month="2024-02") == [updated]

    def test_update_missing(self, store: SQLiteRecordStore) -> None:
        """Test that updating an unknown id gives None."""
        assert store.update("missing", RecordUpdate(vendor="x")) is None

    def test_delete(self, store: SQLiteRecordStore) -> None:
        """Test that deleted records are gone."""
        original = store.add(record())

        assert store.delete(original.id) is True
        assert store.get(original.id) is None
        assert store.delete(original.id) is False

    def test_list_newest_first(self, store: SQLiteRecordStore) -> None:
        """Test ordering by receipt date."""
        older = store.add(record(date=datetime.date(2024, 3, 1)))
        newer = store.add(record(date=datetime.date(2024, 3, 20)))

        assert [r.id for r in store.list()] == [newer.id, older.id]

    def test_list_by_month(self, store: SQLiteRecordStore) -> None:
        """Test the month filter."""
        march = store.add(record(month="2024-03"))
        store.add(record(month="2024-04"))

        assert store.list(month="2024-03") == [march]

    def test_list_by_vendor_is_case_insensitive(self, store: SQLiteRecordStore) -> None:
        """Test the vendor filter with Icelandic letters."""
        bonus = store.add(record(vendor="BÓNUS Smáratorgi"))
        store.add(record(vendor="Krónan"))
        store.add(record(vendor=None))

        assert store.list(vendor="bónus") == [bonus]

    def test_store_persists_between_instances(self, tmp_path: Path) -> None:
        """Test that records survive reopening the database."""
        path = str(tmp_path / "records.db")
        original = SQLiteRecordStore(path).add(record())

        assert SQLiteRecordStore(path).get(original.id) == original
