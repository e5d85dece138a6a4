"""
Pydantic models for sessions, bookings, rates and API envelopes.

This module defines the data structures shared by the Invoice Capture Service:
- Session, the server-side slot holding one upload's in-flight invoice data
- BookingResult and RateQuote returned by the mocked downstream services
- Request/response envelopes for the HTTP API

Invoice records themselves are flat ``dict[str, Any]`` mappings: their keys
depend on the extraction variant and on user edits, and they are returned
exactly as stored.
"""

from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import SessionStatus


InvoiceRecord = dict[str, Any]


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class CamelModel(BaseModel):
    """Base for envelope models serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Domain Models
# ============================================================================

class BookingResult(CamelModel):
    """
    Outcome of booking one invoice against the payables system.

    Created once per invoice per finalize call and never modified.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "reference": "AP-2025-48213",
                    "invoiceNumber": "INV-10023",
                    "supplierNumber": 100231,
                    "amount": 1234.56,
                    "currency": "AED",
                    "bookedAt": "2025-03-02T10:15:00+00:00",
                }
            ]
        },
    )

    reference: str = Field(..., description="Fabricated payables reference (AP-<year>-<5 digits>)")
    invoice_number: Optional[str] = Field(None, description="Invoice number that was booked")
    supplier_number: Optional[Union[int, float, str]] = Field(None, description="Supplier code")
    amount: Optional[Union[float, int, str]] = Field(None, description="Booked amount")
    currency: Optional[str] = Field(None, description="ISO currency code")
    booked_at: str = Field(default_factory=utc_now_iso, description="Booking timestamp (UTC)")


class RateQuote(CamelModel):
    """An exchange rate as returned by the mocked rate service."""
    currency: str
    rate: float
    as_of: str


class Session(BaseModel):
    """
    A server-side slot holding one upload's invoice data and its status.

    Owned by the SessionStore and mutated in place by the endpoint layer.
    """
    session_id: str
    status: SessionStatus = SessionStatus.PENDING
    invoices: list[InvoiceRecord] = Field(default_factory=list)
    raw_invoices: list[InvoiceRecord] = Field(default_factory=list)
    booking_results: list[BookingResult] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
    # Digest of the invoice set booked last; guards against double-booking
    booked_fingerprint: Optional[str] = None


# ============================================================================
# API Request Models
# ============================================================================

class InvoiceUpdate(BaseModel):
    """Payload of an edit: the full invoice list and an optional status."""
    invoices: list[InvoiceRecord]
    status: Optional[SessionStatus] = None


class UpdateInvoiceRequest(BaseModel):
    """Request body for PUT /api/invoice/{sessionId}."""
    data: InvoiceUpdate

    model_config = {
        "json_schema_extra": {
            "examples": [{
                "data": {
                    "invoices": [{
                        "invoice_number": "INV-10023",
                        "seller_name": "Procter & Gamble Gulf FZE",
                        "total_amount": 1234.56,
                        "currency": "AED",
                    }],
                    "status": "user_reviewed",
                }
            }]
        }
    }


class BookRequest(CamelModel):
    """Request body for POST /api/invoice/book."""
    session_id: str = Field(..., min_length=1)
    invoices: list[InvoiceRecord]


# ============================================================================
# API Response Models
# ============================================================================

class NewSessionResponse(CamelModel):
    success: bool = True
    session_id: str
    upload_url: str


class UploadResponse(CamelModel):
    success: bool = True
    count: int
    invoices: list[InvoiceRecord]


class InvoiceDataResponse(CamelModel):
    success: bool = True
    status: SessionStatus
    invoices: list[InvoiceRecord]


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class BookingResponse(CamelModel):
    success: bool = True
    count: int
    references: list[str]
    bookings: list[BookingResult]
    message: Optional[str] = None


class ExchangeRateResponse(CamelModel):
    success: bool = True
    from_currency: str = Field(..., alias="from")
    to: str
    rate: float
    as_of: str


class CurrencyRateResponse(CamelModel):
    success: bool = True
    currency: str
    rate: float
    as_of: str


class RateTableResponse(CamelModel):
    success: bool = True
    base: str
    rates: dict[str, float]
    as_of: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    sessions: int


class ErrorResponse(BaseModel):
    """Error envelope returned for every handled failure."""
    success: bool = False
    error: str
    message: str
    details: Optional[dict[str, Any]] = None
