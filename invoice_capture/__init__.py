"""
Invoice Capture Service

A Python service that sends uploaded invoice documents to an OCR vendor,
shapes the predictions into invoice records held in per-session slots,
and books reviewed invoices against a mocked payables system.
"""

__version__ = "0.1.0"
__author__ = "Invoice Capture Team"

from .schemas import BookingResult, RateQuote, Session
from .store import SessionStore
from .extractor import OcrClient, extract_invoices
from .rules import resolve_supplier_number, normalize_decimal, format_date
from .services import book_invoices, lookup_rate

__all__ = [
    "BookingResult",
    "RateQuote",
    "Session",
    "SessionStore",
    "OcrClient",
    "extract_invoices",
    "resolve_supplier_number",
    "normalize_decimal",
    "format_date",
    "book_invoices",
    "lookup_rate",
]
