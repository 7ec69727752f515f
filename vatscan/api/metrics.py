"""Prometheus metrics for the receipt service.

Exposes key metrics for monitoring:
- Request counts by endpoint and status
- Request duration histograms
- Receipt upload sizes
- OCR duration and outcome per engine
- Extraction outcomes and implausible-tax corrections

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Receipt upload metrics
receipt_upload_size_bytes = Histogram(
    "receipt_upload_size_bytes",
    "Receipt image upload size in bytes",
    buckets=(1024, 10240, 102400, 1048576, 10485760),  # 1KB to 10MB
)

# OCR metrics
ocr_duration_seconds = Histogram(
    "ocr_duration_seconds",
    "OCR processing duration in seconds",
    ["engine"],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

ocr_requests_total = Counter(
    "ocr_requests_total",
    "Total OCR engine runs",
    ["engine", "status"],  # success, error
)

# Extraction metrics
extractions_total = Counter(
    "vat_extractions_total",
    "Total VAT extractions",
    ["outcome"],  # complete, partial, empty
)

tax_corrections_total = Counter(
    "vat_tax_corrections_total",
    "Implausible tax values replaced by the fallback-rate estimate",
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
