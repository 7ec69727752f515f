"""FastAPI application for receipt scanning and VAT bookkeeping.

Production-ready API with:
- Health and readiness checks for Kubernetes
- Raw-text parsing and image scanning endpoints
- Invoice record CRUD and monthly CSV export
- Prometheus metrics for monitoring

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import tempfile
import time
from pathlib import Path
from typing import Literal

from fastapi import FastAPI, File, HTTPException, Query, Request, Response, UploadFile, status
from pydantic import BaseModel

from vatscan.api import metrics
from vatscan.export.csv_export import export_csv
from vatscan.extraction.schema import ParsedInvoice, VatExtraction
from vatscan.extraction.service import VatExtractionService
from vatscan.ocr.factory import create_ocr_services
from vatscan.ocr.hybrid import HybridOCRService
from vatscan.pipeline.scan import ReceiptScanService, extraction_outcome
from vatscan.shared.config import get_settings
from vatscan.storage.records import InvoiceRecord, RecordUpdate, SQLiteRecordStore, build_record
from vatscan.storage.service import StorageService

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="VAT Receipt Scanner",
    description="Receipt OCR, VAT extraction and reconciliation API",
    version=settings.service_version,
)

extraction_service = VatExtractionService(settings)
ocr_service = HybridOCRService(settings, create_ocr_services(settings))
scan_service = ReceiptScanService(settings, ocr_service, extraction_service)
record_store = SQLiteRecordStore(settings.records_db_path)
storage_service = StorageService(settings)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Collect request count and duration by method, endpoint and status."""
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()
    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    ocr_available: bool
    storage_available: bool


class ParseRequest(BaseModel):
    """Raw receipt text to parse."""

    text: str
    language_hint: str | None = None
    region_hint: str | None = None


class ParseResponse(BaseModel):
    """VAT figures and invoice header parsed from raw text."""

    success: bool
    vat: VatExtraction | None = None
    invoice: ParsedInvoice | None = None
    error: str | None = None


class ImageLinkResponse(BaseModel):
    """Time-limited download link for a stored receipt image."""

    record_id: str
    image_ref: str
    url: str
    expires_in: int


class ScanResponse(BaseModel):
    """Stored record of a scanned receipt."""

    success: bool
    record: InvoiceRecord
    vat: VatExtraction
    invoice: ParsedInvoice
    engine: str | None = None


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe."""
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check endpoint for Kubernetes readiness probe.

    Text parsing needs no external service, so the API is always ready;
    the flags report which optional collaborators can be used.
    """
    return ReadinessResponse(
        ready=True,
        ocr_available=ocr_service.is_available(),
        storage_available=storage_service.is_available(),
    )


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint."""
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.post("/api/v1/receipts/parse", response_model=ParseResponse, tags=["Receipts"])
def parse_receipt(request: ParseRequest) -> ParseResponse:
    """Parse VAT figures and invoice header fields from raw OCR text.

    Parsing is best-effort: text without recognizable amounts returns
    success false with every field absent, never an error status.
    """
    result = extraction_service.extract_invoice_fields(
        request.text, request.language_hint, request.region_hint
    )
    if result.vat is not None:
        metrics.extractions_total.labels(outcome=extraction_outcome(result.vat)).inc()
    return ParseResponse(
        success=result.success, vat=result.vat, invoice=result.invoice, error=result.error
    )


@app.post("/api/v1/receipts/scan", response_model=ScanResponse, tags=["Receipts"])
async def scan_receipt(
    file: UploadFile = File(..., description="Receipt image (PNG, JPEG, etc.)"),  # noqa: B008
    language_hint: str | None = Query(None, description="Language code, e.g. 'is'"),
    region_hint: str | None = Query(None, description="Country code, e.g. 'IS'"),
) -> ScanResponse:
    """Scan a receipt image and store the resulting invoice record.

    ## Error Handling

    - Returns 400 if the file is missing, empty or not an image
    - Returns 502 if every OCR engine failed

    Raises:
        HTTPException: If the upload is invalid or OCR failed
    """
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No filename provided")

    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid file type: {file.content_type}. Only images are supported.",
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")

    metrics.receipt_upload_size_bytes.observe(len(content))

    with tempfile.NamedTemporaryFile(delete=False, suffix=Path(file.filename).suffix) as tmp:
        tmp.write(content)
        tmp_path = Path(tmp.name)

    try:
        result = await scan_service.scan(tmp_path, language_hint, region_hint)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    if not result.success or result.vat is None or result.invoice is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"OCR processing failed: {result.error}",
        )

    record = build_record(result.vat, result.invoice, ocr_text=result.text)

    # Storage failure doesn't fail the request; the record keeps no image_ref
    if storage_service.is_available():
        upload = storage_service.upload_receipt(
            content,
            record_id=record.id,
            month=record.month,
            filename=file.filename,
            content_type=file.content_type,
        )
        if upload.image_ref:
            record = record.model_copy(update={"image_ref": upload.image_ref})

    record_store.add(record)
    return ScanResponse(
        success=True,
        record=record,
        vat=result.vat,
        invoice=result.invoice,
        engine=result.engine,
    )


@app.get("/api/v1/records", response_model=list[InvoiceRecord], tags=["Records"])
def list_records(
    month: str | None = Query(None, pattern=r"^\d{4}-\d{2}$", description="YYYY-MM"),
    vendor: str | None = Query(None, description="Vendor name fragment"),
) -> list[InvoiceRecord]:
    """List stored records, newest first."""
    return record_store.list(month=month, vendor=vendor)


# Registered before /records/{record_id} so "export.csv" is not taken as an id
@app.get("/api/v1/records/export.csv", tags=["Records"])
def export_records(
    month: str | None = Query(None, pattern=r"^\d{4}-\d{2}$", description="YYYY-MM"),
    language: Literal["is", "en"] | None = Query(None, description="Header language"),
) -> Response:
    """Export records as CSV for the accountant."""
    csv_text = export_csv(
        record_store.list(month=month),
        language=language or settings.export_language,
        month=month,
    )
    filename = f"receipts-{month or 'all'}.csv"
    return Response(
        content=csv_text.encode("utf-8-sig"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _get_or_404(record_id: str) -> InvoiceRecord:
    record = record_store.get(record_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Record not found: {record_id}"
        )
    return record


@app.get("/api/v1/records/{record_id}", response_model=InvoiceRecord, tags=["Records"])
def get_record(record_id: str) -> InvoiceRecord:
    """Get one record."""
    return _get_or_404(record_id)


@app.get(
    "/api/v1/records/{record_id}/image", response_model=ImageLinkResponse, tags=["Records"]
)
def get_record_image(
    record_id: str,
    expires_in: int = Query(3600, ge=60, le=7 * 24 * 3600, description="Link lifetime (s)"),
) -> ImageLinkResponse:
    """Presigned link to the receipt image of a record."""
    record = _get_or_404(record_id)
    if not record.image_ref:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Record {record_id} has no stored image",
        )
    if not storage_service.is_available():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage is not configured"
        )

    url = storage_service.get_receipt_url(record.image_ref, expires_seconds=expires_in)
    if url is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Could not create a link for {record.image_ref}",
        )
    return ImageLinkResponse(
        record_id=record_id, image_ref=record.image_ref, url=url, expires_in=expires_in
    )


@app.put("/api/v1/records/{record_id}", response_model=InvoiceRecord, tags=["Records"])
def update_record(record_id: str, changes: RecordUpdate) -> InvoiceRecord:
    """Correct fields of a stored record."""
    updated = record_store.update(record_id, changes)
    if updated is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Record not found: {record_id}"
        )
    return updated


@app.delete(
    "/api/v1/records/{record_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Records"]
)
def delete_record(record_id: str) -> Response:
    """Delete a record and its stored receipt image."""
    record = _get_or_404(record_id)
    record_store.delete(record_id)
    if record.image_ref and storage_service.is_available():
        storage_service.delete_receipt(record.image_ref)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
