"""SQLite-backed invoice record store.

Each scanned receipt becomes one InvoiceRecord: the reconciled VAT figures,
the parsed invoice header and a reference to the stored receipt image.
Amounts are stored as decimal strings so that no precision is lost.
"""

import datetime
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal

from pydantic import BaseModel, Field

from vatscan.extraction.schema import ParsedInvoice, VatExtraction

logger = logging.getLogger(__name__)

MONTH_FORMAT = "%Y-%m"


class InvoiceRecord(BaseModel):
    """One persisted receipt.

    Attributes:
        id: Record identifier (UUID string)
        vendor: Seller name
        invoice_number: Invoice/receipt number
        date: Receipt date
        month: Accounting month (YYYY-MM), from the receipt date or the scan date
        net: Amount before tax
        tax: Tax amount
        total: Amount including tax
        currency: Currency code of the amounts
        image_ref: Storage path of the receipt image
        ocr_text: Text the figures were parsed from
        confidence: Invoice parser confidence (0-1)
        created_at: Creation timestamp (ISO 8601, UTC)
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    vendor: str | None = None
    invoice_number: str | None = None
    date: datetime.date | None = None
    month: str
    net: Decimal | None = None
    tax: Decimal | None = None
    total: Decimal | None = None
    currency: str | None = None
    image_ref: str | None = None
    ocr_text: str = ""
    confidence: float = Field(0.0, ge=0, le=1)
    created_at: str = Field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc).isoformat()
    )


class RecordUpdate(BaseModel):
    """Editable record fields; unset fields are left unchanged."""

    vendor: str | None = None
    invoice_number: str | None = None
    date: datetime.date | None = None
    net: Decimal | None = None
    tax: Decimal | None = None
    total: Decimal | None = None
    currency: str | None = None
    image_ref: str | None = None


def build_record(
    vat: VatExtraction,
    invoice: ParsedInvoice,
    image_ref: str | None = None,
    ocr_text: str = "",
    today: datetime.date | None = None,
) -> InvoiceRecord:
    """Build an invoice record from one scan.

    Reconciled VAT figures win over the invoice parser's coarser amount and
    VAT; a missing net amount is derived from total and tax.

    Args:
        vat: Reconciled VAT extraction
        invoice: Parsed invoice header
        image_ref: Storage path of the receipt image
        ocr_text: Text the figures were parsed from
        today: Scan date, used for the month when the receipt has no date

    Returns:
        New InvoiceRecord (not yet persisted)
    """
    total = vat.total.amount if vat.total else invoice.amount
    tax = vat.tax.amount if vat.tax else invoice.vat
    net = vat.subtotal.amount if vat.subtotal else None
    if net is None and total is not None and tax is not None:
        net = total - tax

    currency = next(
        (a.currency for a in (vat.total, vat.tax, vat.subtotal) if a is not None), None
    )
    month_source = invoice.date or today or datetime.date.today()

    return InvoiceRecord(
        vendor=invoice.vendor,
        invoice_number=invoice.invoice_number,
        date=invoice.date,
        month=month_source.strftime(MONTH_FORMAT),
        net=net,
        tax=tax,
        total=total,
        currency=currency,
        image_ref=image_ref,
        ocr_text=ocr_text,
        confidence=invoice.confidence,
    )


_COLUMNS = (
    "id",
    "vendor",
    "invoice_number",
    "date",
    "month",
    "net",
    "tax",
    "total",
    "currency",
    "image_ref",
    "ocr_text",
    "confidence",
    "created_at",
)


def _decimal(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _to_row(record: InvoiceRecord) -> tuple:
    return (
        record.id,
        record.vendor,
        record.invoice_number,
        record.date.isoformat() if record.date else None,
        record.month,
        str(record.net) if record.net is not None else None,
        str(record.tax) if record.tax is not None else None,
        str(record.total) if record.total is not None else None,
        record.currency,
        record.image_ref,
        record.ocr_text,
        record.confidence,
        record.created_at,
    )


def _from_row(row: sqlite3.Row) -> InvoiceRecord:
    return InvoiceRecord(
        id=row["id"],
        vendor=row["vendor"],
        invoice_number=row["invoice_number"],
        date=datetime.date.fromisoformat(row["date"]) if row["date"] else None,
        month=row["month"],
        net=_decimal(row["net"]),
        tax=_decimal(row["tax"]),
        total=_decimal(row["total"]),
        currency=row["currency"],
        image_ref=row["image_ref"],
        ocr_text=row["ocr_text"],
        confidence=row["confidence"],
        created_at=row["created_at"],
    )


class SQLiteRecordStore:
    """SQLite-backed invoice record store.

    Opens a short-lived connection per operation, so one store can be shared
    between request handlers (SQLite serializes writers).
    """

    def __init__(self, db_path: str = "records.db") -> None:
        """Initialize the store and create the schema if needed.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._init_database()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_database(self) -> None:
        """Create the records table and its indexes if they don't exist."""
        with self._connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    id TEXT PRIMARY KEY,
                    vendor TEXT,
                    invoice_number TEXT,
                    date TEXT,
                    month TEXT NOT NULL,
                    net TEXT,
                    tax TEXT,
                    total TEXT,
                    currency TEXT,
                    image_ref TEXT,
                    ocr_text TEXT NOT NULL DEFAULT '',
                    confidence REAL NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_records_month ON records(month)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_records_vendor ON records(vendor)")

    def add(self, record: InvoiceRecord) -> InvoiceRecord:
        """Persist a new record.

        Raises:
            sqlite3.IntegrityError: If a record with the same id exists
        """
        placeholders = ", ".join("?" for _ in _COLUMNS)
        with self._connection() as conn:
            conn.execute(
                f"INSERT INTO records ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                _to_row(record),
            )
        logger.info(f"Stored record {record.id} ({record.vendor}, total={record.total})")
        return record

    def get(self, record_id: str) -> InvoiceRecord | None:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM records WHERE id = ?", (record_id,)
            ).fetchone()
        return _from_row(row) if row is not None else None

    def update(self, record_id: str, changes: RecordUpdate) -> InvoiceRecord | None:
        """Apply the fields set in changes to a stored record.

        Changing the date moves the record to that date's month.

        Returns:
            The updated record, or None if the record does not exist
        """
        current = self.get(record_id)
        if current is None:
            return None

        updates = changes.model_dump(exclude_unset=True)
        if updates.get("date") is not None:
            updates["month"] = updates["date"].strftime(MONTH_FORMAT)
        updated = current.model_copy(update=updates)

        assignments = ", ".join(f"{column} = ?" for column in _COLUMNS[1:])
        with self._connection() as conn:
            conn.execute(
                f"UPDATE records SET {assignments} WHERE id = ?",
                (*_to_row(updated)[1:], record_id),
            )
        logger.info(f"Updated record {record_id}: {sorted(updates)}")
        return updated

    def delete(self, record_id: str) -> bool:
        """Delete a record.

        Returns:
            True if a record was deleted, False if it did not exist
        """
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM records WHERE id = ?", (record_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted record {record_id}")
        return deleted

    def list(self, month: str | None = None, vendor: str | None = None) -> list[InvoiceRecord]:
        """List records, newest receipt first.

        Args:
            month: Only records of this month (YYYY-MM)
            vendor: Only records whose vendor contains this text (case-insensitive)

        Returns:
            Matching records
        """
        query = f"SELECT {', '.join(_COLUMNS)} FROM records"
        params: tuple[str, ...] = ()
        if month:
            query += " WHERE month = ?"
            params = (month,)
        query += " ORDER BY COALESCE(date, month) DESC, created_at DESC"

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        records = [_from_row(row) for row in rows]

        if vendor:
            # SQLite LOWER() only folds ASCII, so "BÓNUS" needs Python casefold
            needle = vendor.casefold()
            records = [r for r in records if r.vendor and needle in r.vendor.casefold()]
        return records
