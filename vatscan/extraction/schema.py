"""Receipt data models produced by the extraction pipeline.

All models are immutable: a VatExtraction is built once per OCR pass and
handed to the record builder unchanged.
"""

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class RawOcrText(BaseModel):
    """Text produced by one OCR engine.

    Attributes:
        text: Recognized text
        engine: Engine identifier (e.g. 'tesseract', 'paddleocr')
        confidence: Mean recognition confidence (0-1), if the engine reports one
    """

    model_config = ConfigDict(frozen=True)

    text: str
    engine: str | None = None
    confidence: float | None = Field(None, ge=0, le=1)


class CurrencyAmount(BaseModel):
    """One parsed monetary value with its provenance confidence."""

    model_config = ConfigDict(frozen=True)

    amount: Decimal
    currency: str = Field("EUR", description="Currency code (ISO 4217)")
    confidence: float = Field(..., ge=0, le=1)


class VatExtraction(BaseModel):
    """Reconciled VAT figures of a single receipt.

    total ≈ subtotal + tax (±0.01) whenever all three are present and the
    input allowed it; rate_breakdown values should sum to tax but OCR noise
    can violate that.
    """

    model_config = ConfigDict(frozen=True)

    subtotal: CurrencyAmount | None = Field(None, description="Amount before tax")
    tax: CurrencyAmount | None = Field(None, description="Total tax amount")
    total: CurrencyAmount | None = Field(None, description="Amount including tax")
    rate_breakdown: dict[Decimal, CurrencyAmount] = Field(
        default_factory=dict, description="VAT percent -> tax charged at that rate"
    )
    detected_language: str | None = None
    detected_country: str | None = None

    def is_empty(self) -> bool:
        """True when no amount at all was recovered."""
        return (
            self.subtotal is None
            and self.tax is None
            and self.total is None
            and not any(v.amount for v in self.rate_breakdown.values())
        )


class ParsedInvoice(BaseModel):
    """Coarse invoice header fields (vendor, number, date) plus amount and VAT."""

    model_config = ConfigDict(frozen=True)

    vendor: str | None = Field(None, description="Seller name")
    invoice_number: str | None = Field(None, description="Invoice/receipt number")
    date: datetime.date | None = Field(None, description="Date printed on the receipt")
    amount: Decimal | None = Field(None, description="Amount including tax")
    vat: Decimal | None = Field(None, description="Tax amount")
    confidence: float = Field(
        0.0, ge=0, le=1, description="Share of fields recovered, weighted by importance"
    )
