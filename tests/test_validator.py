"""
Tests for the booking batch validator.

These tests verify the presence and type checks applied before a batch of
invoices is booked.
"""

import pytest

from invoice_capture.exceptions import InvoiceValidationError
from invoice_capture.validator import (
    REQUIRED_BOOKING_FIELDS,
    check_invoice,
    ensure_bookable,
    validate_booking_batch,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def valid_invoice() -> dict:
    return {
        "invoice_number": "INV-2024-001",
        "supplier_number": 100231,
        "total_amount": 1050.0,
        "currency": "AED",
    }


# ============================================================================
# Single Invoice Checks
# ============================================================================

class TestCheckInvoice:
    def test_valid(self, valid_invoice):
        assert check_invoice(0, valid_invoice) == []

    @pytest.mark.parametrize("field_name", REQUIRED_BOOKING_FIELDS)
    def test_missing_field(self, valid_invoice, field_name):
        del valid_invoice[field_name]
        errors = check_invoice(0, valid_invoice)
        assert [(e.field, e.error) for e in errors] == [(field_name, "missing")]

    def test_blank_string_is_missing(self, valid_invoice):
        valid_invoice["currency"] = "   "
        errors = check_invoice(0, valid_invoice)
        assert errors[0].field == "currency"

    @pytest.mark.parametrize("field_name", ["supplier_number", "total_amount"])
    def test_numeric_string_rejected(self, valid_invoice, field_name):
        valid_invoice[field_name] = "1050"
        errors = check_invoice(0, valid_invoice)
        assert [(e.field, e.error) for e in errors] == [(field_name, "not_numeric")]

    def test_bool_is_not_numeric(self, valid_invoice):
        valid_invoice["total_amount"] = True
        assert check_invoice(0, valid_invoice)[0].error == "not_numeric"

    def test_integer_amount_accepted(self, valid_invoice):
        valid_invoice["total_amount"] = 1050
        assert check_invoice(0, valid_invoice) == []

    def test_not_a_mapping(self):
        errors = check_invoice(3, ["INV-1"])
        assert errors[0].index == 3
        assert errors[0].field == "invoice"


# ============================================================================
# Batch Checks
# ============================================================================

class TestBatch:
    def test_errors_in_invoice_order(self, valid_invoice):
        second = dict(valid_invoice, invoice_number="INV-2", currency=None)
        third = dict(valid_invoice, invoice_number="INV-3", supplier_number="abc")
        errors = validate_booking_batch([valid_invoice, second, third])

        assert [(e.index, e.field) for e in errors] == [(1, "currency"), (2, "supplier_number")]

    def test_ensure_bookable_passes(self, valid_invoice):
        ensure_bookable([valid_invoice, dict(valid_invoice, invoice_number="INV-2")])

    def test_ensure_bookable_names_invoice_and_field(self, valid_invoice):
        broken = dict(valid_invoice, invoice_number="INV-2")
        del broken["total_amount"]

        with pytest.raises(InvoiceValidationError) as exc_info:
            ensure_bookable([valid_invoice, broken])

        error = exc_info.value
        assert error.status_code == 400
        assert "Invoice 2" in error.message
        assert "INV-2" in error.message
        assert "total_amount" in error.message
        assert error.details["errors"][0]["field"] == "total_amount"

    def test_missing_invoice_number_uses_position(self, valid_invoice):
        del valid_invoice["invoice_number"]
        with pytest.raises(InvoiceValidationError) as exc_info:
            ensure_bookable([valid_invoice])
        assert exc_info.value.message == "Invoice 1: missing required field 'invoice_number'"

    def test_empty_batch(self):
        with pytest.raises(InvoiceValidationError):
            ensure_bookable([])
