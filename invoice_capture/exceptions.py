"""
Exception hierarchy for the Invoice Capture Service.

Every error carries the HTTP status and machine-readable code it is
reported with at the API boundary.

    InvoiceCaptureError (base)
    ├── SessionNotFoundError          404
    ├── InvoiceValidationError        400
    ├── AlreadyBookedError            409
    └── UpstreamError                 500
        ├── ExtractionError
        │   └── ExtractionTimeoutError
        ├── InvalidVendorResponseError
        ├── EmptyResultError
        └── PayablesError
"""

from typing import Optional


class InvoiceCaptureError(Exception):
    """
    Base exception for all service errors.

    Attributes:
        message: Human-readable error message.
        details: Optional additional context, returned to API callers.
    """
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class SessionNotFoundError(InvoiceCaptureError):
    """Raised when a session id is not present in the store."""
    status_code = 404
    code = "not_found"

    def __init__(self, session_id: str):
        super().__init__("Session not found", {"session_id": session_id})
        self.session_id = session_id


class InvoiceValidationError(InvoiceCaptureError):
    """Raised for missing or malformed request data."""
    status_code = 400
    code = "validation_error"


class AlreadyBookedError(InvoiceCaptureError):
    """Raised when the same invoice set of a session is finalized twice."""
    status_code = 409
    code = "already_booked"


# =============================================================================
# UPSTREAM ERRORS
# =============================================================================

class UpstreamError(InvoiceCaptureError):
    """Base for failures of an external collaborator. Never retried."""
    status_code = 500
    code = "upstream_error"


class ExtractionError(UpstreamError):
    """The OCR vendor call failed at the transport level."""
    code = "extraction_failed"


class ExtractionTimeoutError(ExtractionError):
    """The OCR vendor did not answer within the configured timeout."""
    code = "extraction_timeout"

    def __init__(self, timeout: float):
        super().__init__(
            f"Extraction timed out after {timeout:g}s",
            {"timeout_seconds": timeout},
        )


class InvalidVendorResponseError(UpstreamError):
    """The OCR vendor answered with a non-200 status or an unexpected payload."""
    code = "invalid_vendor_response"


class EmptyResultError(UpstreamError):
    """The OCR vendor returned no usable predictions."""
    code = "empty_result"


class PayablesError(UpstreamError):
    """A booking call against the payables system failed."""
    code = "payables_failed"
