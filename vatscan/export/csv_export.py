"""Monthly CSV export of invoice records for the accountant."""

import csv
import io
import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Literal

from vatscan.storage.records import InvoiceRecord

logger = logging.getLogger(__name__)

FIELDS = ("invoice_number", "vendor", "date", "month", "net", "tax", "total", "image_ref")

HEADERS: dict[str, tuple[str, ...]] = {
    "is": ("ReikningsNr", "Fyrirtæki", "Dagsetning", "Mánuður", "Nettó", "VSK", "Heild", "Skrá"),
    "en": ("InvoiceNumber", "Vendor", "Date", "Month", "Net", "Tax", "Total", "ImageRef"),
}


def _format_value(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def export_csv(
    records: Iterable[InvoiceRecord],
    language: Literal["is", "en"] = "is",
    month: str | None = None,
) -> str:
    """Serialize records as CSV with a header row in the given language.

    Args:
        records: Records to export, in output order
        language: Header language ("is" or "en")
        month: Only export records of this month (YYYY-MM)

    Returns:
        CSV text; missing values are empty cells

    Raises:
        ValueError: If the header language is not supported
    """
    if language not in HEADERS:
        raise ValueError(f"Unsupported export language: '{language}'. Available: is, en")

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(HEADERS[language])

    count = 0
    for record in records:
        if month and record.month != month:
            continue
        writer.writerow([_format_value(getattr(record, field)) for field in FIELDS])
        count += 1

    logger.info(f"Exported {count} records (month={month or 'all'}, language={language})")
    return buffer.getvalue()
