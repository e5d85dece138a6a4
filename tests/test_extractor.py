"""
Tests for the extraction adapter.

These tests verify prediction mapping for both record shapes and the
vendor client's handling of successful and failing responses.
"""

import asyncio
import base64

import httpx
import pytest

from invoice_capture.config import ExtractionVariant
from invoice_capture.exceptions import (
    EmptyResultError,
    ExtractionError,
    ExtractionTimeoutError,
    InvalidVendorResponseError,
    UpstreamError,
)
from invoice_capture.extractor import (
    collect_fields,
    extract_invoice_file,
    extract_invoices,
    extract_raw_invoices,
    map_business_invoice,
    map_raw_invoice,
)
from invoice_capture.rules import RAW_LABEL_RULES, MatchMode


def predictions(*pairs):
    return [{"label": label, "ocr_text": text} for label, text in pairs]


class TestCollectFields:
    """Tests for first-match-wins field collection."""

    def test_first_non_empty_value_wins(self):
        fields = collect_fields(
            predictions(
                ("invoice_number", "  "),
                ("invoice_number", "INV-1"),
                ("invoice_number", "INV-2"),
            ),
            RAW_LABEL_RULES,
            MatchMode.EXACT,
        )
        assert fields == {"invoice_number": "INV-1"}

    def test_unknown_labels_ignored(self):
        fields = collect_fields(predictions(("logo", "ACME")), RAW_LABEL_RULES, MatchMode.EXACT)
        assert fields == {}

    def test_malformed_predictions_ignored(self):
        fields = collect_fields(["junk", {"ocr_text": "x"}], RAW_LABEL_RULES, MatchMode.EXACT)
        assert fields == {}


class TestMapRawInvoice:
    """Tests for raw record mapping and defaulting."""

    def test_defaults_for_missing_fields(self):
        record = map_raw_invoice(predictions(
            ("invoice_number", "INV-1"),
            ("seller_name", "Acme Trading LLC"),
            ("invoice_amount", "1.234,56"),
            ("currency", "EUR"),
        ))
        assert record == {
            "invoice_number": "INV-1",
            "invoice_date": "N/A",
            "due_date": "N/A",
            "seller_name": "Acme Trading LLC",
            "seller_address": "N/A",
            "buyer_name": "Unknown",
            "buyer_address": "N/A",
            "invoice_amount": "1.234,56",
            "tax_amount": "0",
            "currency": "EUR",
        }

    def test_no_match_returns_none(self):
        assert map_raw_invoice(predictions(("Seller Name", "Acme"))) is None


class TestMapBusinessInvoice:
    """Tests for business record mapping."""

    def test_keyword_mapping_and_transformation(self):
        record = map_business_invoice(predictions(
            ("Invoice_No", "INV-77"),
            ("invoice_date", "2024-03-05"),
            ("supplier_name", "Nutricia Middle East"),
            ("total_amount", "1.050,00"),
            ("currency", "aed"),
        ))
        assert record["invoice_number"] == "INV-77"
        assert record["invoice_date"] == "05/03/2024"
        assert record["seller_name"] == "Nutricia Middle East"
        assert record["supplier_number"] == 200110
        assert record["total_amount"] == 1050.0
        assert record["currency"] == "AED"

    def test_identifier_labels_do_not_shadow_amounts(self):
        record = map_business_invoice(predictions(
            ("seller_vat_number", "100234567800003"),
            ("seller_phone", "+971 4 000 0000"),
            ("seller_name", "Procter & Gamble"),
            ("tax_amount", "50,00"),
        ))
        assert record["vat_amount"] == 50.0
        assert record["seller_name"] == "Procter & Gamble"
        assert record["supplier_number"] == 100200

    def test_no_match_returns_none(self):
        assert map_business_invoice(predictions(("logo", "ACME"))) is None


class TestExtractInvoices:
    """Tests for turning vendor results into records."""

    def test_one_record_per_result(self):
        results = [
            {"prediction": predictions(("invoice_number", "A"))},
            {"prediction": predictions(("invoice_number", "B"))},
        ]
        invoices = extract_invoices(results, ExtractionVariant.RAW)
        assert [inv["invoice_number"] for inv in invoices] == ["A", "B"]

    def test_empty_results_dropped(self):
        results = [
            {"prediction": predictions(("logo", "x"))},
            {"prediction": predictions(("invoice_number", "B"))},
            {"no_prediction": True},
        ]
        invoices = extract_invoices(results, ExtractionVariant.RAW)
        assert len(invoices) == 1

    def test_nothing_usable_raises(self):
        with pytest.raises(EmptyResultError) as exc_info:
            extract_invoices([{"prediction": []}], ExtractionVariant.BUSINESS)
        assert isinstance(exc_info.value, UpstreamError)

    def test_raw_shortcut_never_raises(self):
        assert extract_raw_invoices([{"prediction": []}]) == []


class TestOcrClient:
    """Tests for the vendor client."""

    def test_success(self, ocr_client, fake_vendor):
        fake_vendor.respond_with([("invoice_number", "INV-1")])
        results = asyncio.run(ocr_client.predict(b"%PDF-1.4", "invoice.pdf", "application/pdf"))
        assert results == [{"prediction": [{"label": "invoice_number", "ocr_text": "INV-1"}]}]

    def test_request_shape(self, ocr_client, fake_vendor):
        fake_vendor.respond_with([("invoice_number", "INV-1")])
        asyncio.run(ocr_client.predict(b"%PDF-1.4", "invoice.pdf", "application/pdf"))

        request = fake_vendor.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://ocr.test/api/model-123/LabelFile/"
        expected = base64.b64encode(b"secret-key:").decode()
        assert request.headers["authorization"] == f"Basic {expected}"
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'name="file"; filename="invoice.pdf"' in request.content

    def test_non_200(self, ocr_client, fake_vendor):
        fake_vendor.status_code = 401
        with pytest.raises(InvalidVendorResponseError) as exc_info:
            asyncio.run(ocr_client.predict(b"data", "invoice.pdf"))
        assert "401" in exc_info.value.message

    def test_missing_result(self, ocr_client, fake_vendor):
        fake_vendor.payload = {"message": "Success"}
        with pytest.raises(InvalidVendorResponseError):
            asyncio.run(ocr_client.predict(b"data", "invoice.pdf"))

    def test_timeout(self, ocr_client, fake_vendor):
        fake_vendor.error = httpx.ReadTimeout("timed out")
        with pytest.raises(ExtractionTimeoutError) as exc_info:
            asyncio.run(ocr_client.predict(b"data", "invoice.pdf"))
        assert exc_info.value.code == "extraction_timeout"

    def test_network_error(self, ocr_client, fake_vendor):
        fake_vendor.error = httpx.ConnectError("connection refused")
        with pytest.raises(ExtractionError) as exc_info:
            asyncio.run(ocr_client.predict(b"data", "invoice.pdf"))
        assert not isinstance(exc_info.value, ExtractionTimeoutError)

    def test_extract_invoice_file(self, tmp_path, ocr_client, fake_vendor):
        fake_vendor.respond_with([("invoice_number", "INV-9"), ("currency", "USD")])
        path = tmp_path / "invoice.pdf"
        path.write_bytes(b"%PDF-1.4")

        invoices = asyncio.run(extract_invoice_file(path, ExtractionVariant.RAW, ocr_client))
        assert invoices[0]["invoice_number"] == "INV-9"
        assert invoices[0]["currency"] == "USD"
