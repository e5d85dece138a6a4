"""
Extraction adapter for the OCR vendor.

This module provides functionality to:
- Upload an invoice document to the vendor's label-file endpoint
- Validate the vendor's ``result[].prediction[]`` payload
- Map label/value predictions into raw or business invoice records
"""

import json
from pathlib import Path
from typing import Any, Optional

import httpx

from .config import (
    EXTRACTION_VARIANT,
    OCR_API_KEY,
    OCR_API_URL,
    OCR_MODEL_ID,
    OCR_TIMEOUT_SECONDS,
    RAW_AMOUNT_DEFAULT,
    RAW_NAME_DEFAULT,
    RAW_TEXT_DEFAULT,
    ExtractionVariant,
    logger,
)
from .exceptions import (
    EmptyResultError,
    ExtractionError,
    ExtractionTimeoutError,
    InvalidVendorResponseError,
)
from .rules import (
    BUSINESS_LABEL_RULES,
    RAW_LABEL_RULES,
    LabelRule,
    MatchMode,
    match_label,
    transform_business_invoice,
)


RAW_FIELD_DEFAULTS: dict[str, str] = {
    "invoice_number": RAW_TEXT_DEFAULT,
    "invoice_date": RAW_TEXT_DEFAULT,
    "due_date": RAW_TEXT_DEFAULT,
    "seller_name": RAW_NAME_DEFAULT,
    "seller_address": RAW_TEXT_DEFAULT,
    "buyer_name": RAW_NAME_DEFAULT,
    "buyer_address": RAW_TEXT_DEFAULT,
    "invoice_amount": RAW_AMOUNT_DEFAULT,
    "tax_amount": RAW_AMOUNT_DEFAULT,
    "currency": RAW_TEXT_DEFAULT,
}


# ============================================================================
# Vendor Client
# ============================================================================

class OcrClient:
    """
    Client for the OCR vendor's label-file endpoint.

    Sends one document per call as multipart form data and returns the
    vendor's list of result objects. Failures are raised as typed
    UpstreamError subclasses and never retried.
    """

    def __init__(
        self,
        api_url: str = OCR_API_URL,
        api_key: str = OCR_API_KEY,
        model_id: str = OCR_MODEL_ID,
        timeout: float = OCR_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.model_id = model_id
        self.timeout = timeout
        self.transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/{self.model_id}/LabelFile/"

    async def predict(
        self,
        content: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
    ) -> list[dict[str, Any]]:
        """
        Upload a document and return the vendor's ``result`` list.

        Args:
            content: Raw file bytes
            filename: Original file name, forwarded to the vendor
            content_type: MIME type of the upload

        Returns:
            List of result objects, each holding a ``prediction`` list

        Raises:
            ExtractionTimeoutError: the vendor did not answer in time
            ExtractionError: transport-level failure
            InvalidVendorResponseError: non-200 status or unexpected payload
        """
        logger.info(f"Sending {filename} ({len(content)} bytes) to OCR model {self.model_id}")
        files = {"file": (filename, content, content_type)}

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            auth=httpx.BasicAuth(self.api_key, ""),
        ) as client:
            try:
                response = await client.post(self.endpoint, files=files)
            except httpx.TimeoutException as e:
                logger.error(f"OCR request for {filename} timed out: {e}")
                raise ExtractionTimeoutError(self.timeout) from e
            except httpx.HTTPError as e:
                logger.error(f"OCR request for {filename} failed: {e}")
                raise ExtractionError(f"OCR request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"OCR vendor returned HTTP {response.status_code} for {filename}")
            raise InvalidVendorResponseError(
                f"OCR vendor returned HTTP {response.status_code}",
                {"status_code": response.status_code, "body": response.text[:500]},
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise InvalidVendorResponseError("OCR vendor returned a non-JSON body") from e

        results = payload.get("result") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            raise InvalidVendorResponseError("OCR vendor response has no 'result' list")

        logger.info(f"OCR vendor returned {len(results)} result(s) for {filename}")
        return results


# ============================================================================
# Prediction Mapping
# ============================================================================

def collect_fields(
    predictions: list[dict[str, Any]],
    rules: list[LabelRule],
    mode: MatchMode,
) -> dict[str, str]:
    """
    Match predictions against a label policy table.

    Keeps the first non-empty ``ocr_text`` seen per field; later values for
    an already-filled field are ignored.
    """
    fields: dict[str, str] = {}
    for prediction in predictions or []:
        if not isinstance(prediction, dict):
            continue
        field_name = match_label(prediction.get("label"), rules, mode)
        if field_name is None or field_name in fields:
            continue
        text = str(prediction.get("ocr_text") or "").strip()
        if text:
            fields[field_name] = text
    return fields


def map_raw_invoice(predictions: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """
    Build a raw invoice record, or None if no label matched.

    Values are kept as the vendor printed them; missing fields get the raw
    defaults ("Unknown" for names, "0" for amounts, "N/A" otherwise).
    """
    fields = collect_fields(predictions, RAW_LABEL_RULES, MatchMode.EXACT)
    if not fields:
        return None
    return {name: fields.get(name, default) for name, default in RAW_FIELD_DEFAULTS.items()}


def map_business_invoice(predictions: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Build a business invoice record, or None if no label matched."""
    fields = collect_fields(predictions, BUSINESS_LABEL_RULES, MatchMode.SUBSTRING)
    if not fields:
        return None
    return transform_business_invoice(fields)


def extract_invoices(
    results: list[dict[str, Any]],
    variant: ExtractionVariant = EXTRACTION_VARIANT,
) -> list[dict[str, Any]]:
    """
    Turn vendor results into invoice records, one per result.

    Results without any recognized label are dropped.

    Raises:
        EmptyResultError: if no result produced a record
    """
    mapper = map_raw_invoice if variant == ExtractionVariant.RAW else map_business_invoice

    invoices = []
    for result in results:
        predictions = result.get("prediction") if isinstance(result, dict) else None
        record = mapper(predictions or [])
        if record is not None:
            invoices.append(record)

    if not invoices:
        raise EmptyResultError("OCR vendor returned no usable predictions")

    logger.info(f"Mapped {len(invoices)} {variant.value} invoice(s) from {len(results)} result(s)")
    return invoices


def extract_raw_invoices(results: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Raw records for the same results; empty list instead of an error."""
    try:
        return extract_invoices(results, ExtractionVariant.RAW)
    except EmptyResultError:
        return []


async def extract_invoice_file(
    path: Path,
    variant: ExtractionVariant = EXTRACTION_VARIANT,
    client: Optional[OcrClient] = None,
) -> list[dict[str, Any]]:
    """
    Extract invoice records from a document on disk.

    Args:
        path: Path to the invoice document
        variant: Record shape to produce
        client: OCR client to use (defaults to the configured vendor)
    """
    client = client or OcrClient()
    results = await client.predict(path.read_bytes(), path.name)
    return extract_invoices(results, variant)


def write_extracted_invoices(invoices: list[dict[str, Any]], output_path: Path) -> None:
    """Write extracted invoice records to a JSON file."""
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(invoices, f, indent=2, ensure_ascii=False)
    logger.info(f"Wrote {len(invoices)} invoice(s) to {output_path}")
