"""
FastAPI application for the Invoice Capture Service.

Provides REST API endpoints for:
- Session creation and the upload page
- Document upload and OCR extraction
- Reading, editing and rate-enriching extracted invoices
- Finalizing (booking) invoices against the mocked payables system
- Exchange-rate lookups and health check
"""

import hashlib
import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import (
    API_HOST,
    API_PORT,
    CORS_ORIGINS,
    DEFAULT_TARGET_CURRENCY,
    EXCHANGE_RATES,
    EXTRACTION_VARIANT,
    MAX_UPLOAD_SIZE_MB,
    RATE_BASE_CURRENCY,
    ExtractionVariant,
    SessionStatus,
    logger,
)
from .exceptions import (
    AlreadyBookedError,
    InvoiceCaptureError,
    InvoiceValidationError,
    UpstreamError,
)
from .extractor import OcrClient, extract_invoices, extract_raw_invoices
from .schemas import (
    BookingResponse,
    BookRequest,
    CurrencyRateResponse,
    ErrorResponse,
    ExchangeRateResponse,
    HealthResponse,
    InvoiceDataResponse,
    MessageResponse,
    NewSessionResponse,
    RateTableResponse,
    Session,
    UpdateInvoiceRequest,
    UploadResponse,
)
from .services import book_invoices, convert_rate, enrich_invoices, lookup_rate, rate_as_of
from .store import SessionStore, default_eviction_policy, new_session_id
from .validator import ensure_bookable


STATIC_DIR = Path(__file__).parent / "static"


# ============================================================================
# Dependencies
# ============================================================================

session_store = SessionStore(default_eviction_policy())


def get_store() -> SessionStore:
    return session_store


def get_ocr_client() -> OcrClient:
    return OcrClient()


# ============================================================================
# FastAPI App Configuration
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Invoice Capture Service API starting on {API_HOST}:{API_PORT}")
    yield
    logger.info("Invoice Capture Service API shutting down")


app = FastAPI(
    title="Invoice Capture Service API",
    description="""
    Invoice capture and mock payables booking.

    ## Workflow

    1. **Create a session** and open its upload page
    2. **Upload** an invoice document; it is sent to the OCR vendor and the
       predictions are shaped into invoice records
    3. **Review / edit** the records, optionally enrich them with exchange rates
    4. **Finalize** to book them against the (mocked) payables system
    """,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_content(exc: InvoiceCaptureError) -> dict[str, Any]:
    return ErrorResponse(
        error=exc.code,
        message=exc.message,
        details=exc.details or None,
    ).model_dump(exclude_none=True)


# ============================================================================
# Session Endpoints
# ============================================================================

@app.post("/api/invoice/new", response_model=NewSessionResponse, tags=["Sessions"])
async def create_invoice_session(
    request: Request,
    store: SessionStore = Depends(get_store),
) -> NewSessionResponse:
    """Create a pending session and return the URL of its upload page."""
    session = store.create(new_session_id())
    upload_url = str(request.url_for("upload_page", session_id=session.session_id))
    return NewSessionResponse(session_id=session.session_id, upload_url=upload_url)


@app.get("/upload/{session_id}", include_in_schema=False, name="upload_page")
async def upload_page(session_id: str, store: SessionStore = Depends(get_store)):
    store.get(session_id)
    return FileResponse(STATIC_DIR / "upload.html", media_type="text/html")


# ============================================================================
# Extraction Endpoints
# ============================================================================

@app.post("/api/upload", response_model=UploadResponse, tags=["Extraction"])
async def upload_invoice(
    file: UploadFile = File(..., description="Invoice document (PDF or image)"),
    session_id: str = Form(..., alias="sessionId"),
    variant: Optional[ExtractionVariant] = Form(None),
    store: SessionStore = Depends(get_store),
    ocr_client: OcrClient = Depends(get_ocr_client),
):
    """
    Upload an invoice document and extract its invoice records.

    The document is forwarded to the OCR vendor. Its predictions are shaped
    into business records (supplier number, normalized amounts and dates,
    tax codes) or raw records, depending on ``variant``. The raw records
    are always kept as well and served by ``GET /api/invoice/raw/{sessionId}``.

    Vendor failures are reported as HTTP 500 with an empty invoice list.
    """
    store.get(session_id)
    variant = variant or EXTRACTION_VARIANT

    content = await file.read()
    if not content:
        raise InvoiceValidationError("Uploaded file is empty", {"field": "file"})
    if len(content) > MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise InvoiceValidationError(
            f"File too large (max {MAX_UPLOAD_SIZE_MB}MB)", {"field": "file"}
        )

    def mark_submitted(session: Session) -> None:
        session.status = SessionStatus.SUBMITTED

    await store.update(session_id, mark_submitted)

    filename = file.filename or "upload"
    try:
        results = await ocr_client.predict(
            content, filename, file.content_type or "application/octet-stream"
        )
        invoices = extract_invoices(results, variant)
    except UpstreamError as e:
        logger.error(f"Extraction failed for session {session_id}: {e}")
        return JSONResponse(
            status_code=e.status_code,
            content={**error_content(e), "invoices": []},
        )

    if variant == ExtractionVariant.RAW:
        raw_invoices = [dict(invoice) for invoice in invoices]
        status = SessionStatus.RAW_EXTRACTED
    else:
        raw_invoices = extract_raw_invoices(results)
        status = SessionStatus.EXTRACTED

    def store_extraction(session: Session) -> None:
        session.invoices = invoices
        session.raw_invoices = raw_invoices
        session.status = status

    await store.update(session_id, store_extraction)
    logger.info(f"Session {session_id}: extracted {len(invoices)} invoice(s) from {filename}")

    return UploadResponse(count=len(invoices), invoices=invoices)


# ============================================================================
# Invoice Data Endpoints
# ============================================================================

@app.get("/api/invoice/{session_id}", response_model=InvoiceDataResponse, tags=["Invoices"])
async def get_invoice(session_id: str, store: SessionStore = Depends(get_store)):
    session = store.get(session_id)
    return InvoiceDataResponse(status=session.status, invoices=session.invoices)


@app.get("/api/invoice/raw/{session_id}", response_model=InvoiceDataResponse, tags=["Invoices"])
async def get_raw_invoice(session_id: str, store: SessionStore = Depends(get_store)):
    session = store.get(session_id)
    return InvoiceDataResponse(status=session.status, invoices=session.raw_invoices)


@app.put("/api/invoice/{session_id}", response_model=MessageResponse, tags=["Invoices"])
async def update_invoice(
    session_id: str,
    body: UpdateInvoiceRequest,
    store: SessionStore = Depends(get_store),
):
    """
    Replace the session's invoices with the user's edited version.

    The invoices are stored exactly as sent. Status defaults to
    ``user_reviewed``.
    """
    def apply_edit(session: Session) -> None:
        session.invoices = body.data.invoices
        session.status = body.data.status or SessionStatus.USER_REVIEWED

    await store.update(session_id, apply_edit)
    logger.info(f"Session {session_id}: stored {len(body.data.invoices)} edited invoice(s)")
    return MessageResponse(message="Invoice data updated")


@app.post("/api/invoice/{session_id}/enrich", response_model=InvoiceDataResponse, tags=["Invoices"])
async def enrich_invoice(
    session_id: str,
    to: str = Query(DEFAULT_TARGET_CURRENCY, min_length=3, max_length=3),
    store: SessionStore = Depends(get_store),
):
    """Add exchange rate and converted amount to every stored invoice."""
    async def apply_rates(session: Session) -> None:
        if not session.invoices:
            raise InvoiceValidationError("No invoice data to enrich")
        await enrich_invoices(session.invoices, to)
        session.status = SessionStatus.ENRICHED

    await store.update(session_id, apply_rates)
    session = store.get(session_id)
    return InvoiceDataResponse(status=session.status, invoices=session.invoices)


# ============================================================================
# Booking Endpoints
# ============================================================================

def invoice_set_fingerprint(invoices: list[dict[str, Any]]) -> str:
    """Stable digest of an invoice list, used to detect repeated bookings."""
    encoded = json.dumps(invoices, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


async def book_session(
    store: SessionStore,
    session_id: str,
    status: SessionStatus,
    invoices: Optional[list[dict[str, Any]]] = None,
) -> BookingResponse:
    """
    Book a session's invoices while holding the session lock.

    ``invoices`` replaces the stored invoices when given. A session's
    invoice set is booked at most once; concurrent or repeated calls for
    the same set fail with AlreadyBookedError.
    """
    async def book(session: Session):
        to_book = session.invoices if invoices is None else invoices
        if not to_book:
            raise InvoiceValidationError("No invoice data to finalize")

        fingerprint = invoice_set_fingerprint(to_book)
        if session.booked_fingerprint == fingerprint:
            raise AlreadyBookedError(
                "These invoices have already been booked",
                {"references": [r.reference for r in session.booking_results]},
            )

        results = await book_invoices(to_book)
        session.invoices = to_book
        session.booking_results.extend(results)
        session.booked_fingerprint = fingerprint
        session.status = status
        return results

    results = await store.update(session_id, book)
    logger.info(f"Session {session_id}: booked {len(results)} invoice(s)")
    return BookingResponse(
        count=len(results),
        references=[result.reference for result in results],
        bookings=results,
        message="Invoice booked successfully",
    )


@app.post("/api/invoice/{session_id}/finalize", response_model=BookingResponse, tags=["Booking"])
@app.post("/api/finalize/{session_id}", response_model=BookingResponse, tags=["Booking"])
async def finalize_invoice(session_id: str, store: SessionStore = Depends(get_store)):
    """Book the invoices stored in the session."""
    return await book_session(store, session_id, SessionStatus.COMPLETED)


@app.post("/api/invoice/book", response_model=BookingResponse, tags=["Booking"])
async def book_invoice_batch(body: BookRequest, store: SessionStore = Depends(get_store)):
    """
    Validate and book a batch of invoices for a session.

    Every invoice needs ``invoice_number``, ``supplier_number``,
    ``total_amount`` and ``currency``; ``supplier_number`` and
    ``total_amount`` must be numbers.
    """
    store.get(body.session_id)
    ensure_bookable(body.invoices)
    return await book_session(store, body.session_id, SessionStatus.BOOKED, body.invoices)


# ============================================================================
# Exchange Rate Endpoints
# ============================================================================

@app.get("/api/exchange-rate/{currency}", response_model=ExchangeRateResponse, tags=["Rates"])
async def get_exchange_rate(
    currency: str,
    to: str = Query(DEFAULT_TARGET_CURRENCY, min_length=3, max_length=3),
):
    quote = await convert_rate(currency, to)
    return ExchangeRateResponse(
        from_currency=quote.currency,
        to=to.upper(),
        rate=quote.rate,
        as_of=quote.as_of,
    )


@app.get("/api/rate/{currency}", response_model=CurrencyRateResponse, tags=["Rates"])
async def get_rate(currency: str):
    quote = await lookup_rate(currency)
    return CurrencyRateResponse(currency=quote.currency, rate=quote.rate, as_of=quote.as_of)


@app.get("/api/exchange-rates", response_model=RateTableResponse, tags=["Rates"])
async def list_exchange_rates():
    return RateTableResponse(base=RATE_BASE_CURRENCY, rates=dict(EXCHANGE_RATES), as_of=rate_as_of())


# ============================================================================
# System
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(store: SessionStore = Depends(get_store)) -> HealthResponse:
    """
    Health check endpoint.

    Returns the service status, version and the number of live sessions.
    """
    from . import __version__
    return HealthResponse(status="ok", version=__version__, sessions=len(store))


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(InvoiceCaptureError)
async def service_exception_handler(request: Request, exc: InvoiceCaptureError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_content(exc))


HTTP_ERROR_CODES = {404: "not_found", 405: "method_not_allowed"}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Wrap routing errors (unknown path, wrong method) in the error envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
            message=str(exc.detail),
        ).model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies and forms as 400 with the offending field."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:]) or "request"
        problems.append({"field": location, "error": error.get("msg", "invalid")})
    message = "; ".join(f"{p['field']}: {p['error']}" for p in problems) or "Invalid request"
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=InvoiceValidationError.code,
            message=message,
            details={"errors": problems},
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="internal_error", message="Internal server error").model_dump(
            exclude_none=True
        ),
    )


# ============================================================================
# Main Entry Point
# ============================================================================

def run_server(host: str = API_HOST, port: int = API_PORT) -> None:
    """Run the API server using uvicorn."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
