"""
Presence and type checks for invoices submitted for booking.

Each check returns a FieldError describing the problem, or None. The batch
check collects every problem so the API can report all of them at once.
"""

from dataclasses import asdict, dataclass
from numbers import Number
from typing import Any, Optional

from .config import logger
from .exceptions import InvoiceValidationError


REQUIRED_BOOKING_FIELDS: list[str] = [
    "invoice_number",
    "supplier_number",
    "total_amount",
    "currency",
]

NUMERIC_BOOKING_FIELDS: list[str] = [
    "supplier_number",
    "total_amount",
]


@dataclass
class FieldError:
    """A single problem with one field of one invoice."""
    index: int
    invoice_number: Optional[str]
    field: str
    error: str

    def describe(self) -> str:
        label = f"Invoice {self.index + 1}"
        if self.invoice_number:
            label += f" ({self.invoice_number})"
        if self.error == "missing":
            return f"{label}: missing required field '{self.field}'"
        return f"{label}: field '{self.field}' must be numeric"


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_numeric(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def check_invoice(index: int, invoice: Any) -> list[FieldError]:
    """Check one invoice for required fields and numeric types."""
    if not isinstance(invoice, dict):
        return [FieldError(index, None, "invoice", "missing")]

    number = invoice.get("invoice_number")
    number = str(number) if not _is_blank(number) else None
    errors: list[FieldError] = []

    for field_name in REQUIRED_BOOKING_FIELDS:
        if _is_blank(invoice.get(field_name)):
            errors.append(FieldError(index, number, field_name, "missing"))

    for field_name in NUMERIC_BOOKING_FIELDS:
        value = invoice.get(field_name)
        if not _is_blank(value) and not _is_numeric(value):
            errors.append(FieldError(index, number, field_name, "not_numeric"))

    return errors


def validate_booking_batch(invoices: list[Any]) -> list[FieldError]:
    """Return every problem found in a booking batch, in invoice order."""
    errors: list[FieldError] = []
    for index, invoice in enumerate(invoices):
        errors.extend(check_invoice(index, invoice))
    return errors


def ensure_bookable(invoices: list[Any]) -> None:
    """
    Raise if the batch cannot be booked.

    The error message names the first offending invoice and field; all
    problems are listed in the error details.

    Raises:
        InvoiceValidationError: empty batch or any field problem
    """
    if not invoices:
        raise InvoiceValidationError("No invoices provided for booking")

    errors = validate_booking_batch(invoices)
    if errors:
        logger.warning(f"Rejected booking batch with {len(errors)} problem(s)")
        raise InvoiceValidationError(
            errors[0].describe(),
            {"errors": [asdict(error) for error in errors]},
        )
