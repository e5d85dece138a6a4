"""
Transformation rules for shaping vendor predictions into invoice records.

This module holds the static business logic of the service:
- Label policy tables: which vendor label feeds which record field
- Supplier-number resolution: an ordered decision list
- Normalizers: decimal separator swap and dd/mm/yyyy date formatting
- Tax-field derivation from the VAT amount

Everything here is pure and deterministic.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Union

from dateutil import parser as date_parser

from .config import (
    DATE_FORMATS,
    TAX_AREA_CODE,
    TAX_EXEMPTION_CODE,
    UNKNOWN_SUPPLIER_NUMBER,
    logger,
)


# ============================================================================
# Label Policy
# ============================================================================

class MatchMode(str, Enum):
    """How a vendor label is compared with a rule's keywords."""
    EXACT = "exact"
    SUBSTRING = "substring"


@dataclass(frozen=True)
class LabelRule:
    """
    Maps vendor labels onto one record field.

    Attributes:
        field: Target field in the invoice record
        keywords: Label strings (exact mode) or fragments (substring mode)
        excludes: Fragments that disqualify a label even if a keyword matches
    """
    field: str
    keywords: tuple[str, ...]
    excludes: tuple[str, ...] = ()

    def matches(self, label: str, mode: MatchMode) -> bool:
        if any(fragment in label for fragment in self.excludes):
            return False
        if mode is MatchMode.EXACT:
            return label in self.keywords
        return any(keyword in label for keyword in self.keywords)


# Raw variant: the vendor model's own label names, matched exactly
RAW_LABEL_RULES: list[LabelRule] = [
    LabelRule("invoice_number", ("invoice_number",)),
    LabelRule("invoice_date", ("invoice_date",)),
    LabelRule("due_date", ("due_date",)),
    LabelRule("seller_name", ("seller_name",)),
    LabelRule("seller_address", ("seller_address",)),
    LabelRule("buyer_name", ("buyer_name",)),
    LabelRule("buyer_address", ("buyer_address",)),
    LabelRule("invoice_amount", ("invoice_amount",)),
    LabelRule("tax_amount", ("tax_amount",)),
    LabelRule("currency", ("currency",)),
]

# Business variant: keyword match, first rule in table order wins
BUSINESS_LABEL_RULES: list[LabelRule] = [
    LabelRule("due_date", ("due",)),
    LabelRule("invoice_date", ("date",)),
    LabelRule("invoice_number", ("invoice_number", "invoice_no", "invoice_id", "bill_number")),
    LabelRule("seller_country", ("country",)),
    LabelRule("brand", ("brand",)),
    LabelRule("currency", ("currency",)),
    LabelRule("vat_amount", ("vat", "tax"), excludes=("number", "_no", "_id", "reg", "rate")),
    LabelRule("net_amount", ("net", "subtotal", "sub_total")),
    LabelRule("total_amount", ("total", "amount")),
    LabelRule(
        "seller_name",
        ("seller", "supplier", "vendor", "company"),
        excludes=("address", "phone", "email", "buyer", "vat", "tax"),
    ),
]


def normalize_label(label: Any) -> str:
    """Lower-case and trim a vendor label."""
    return str(label or "").strip().lower()


def match_label(label: str, rules: list[LabelRule], mode: MatchMode) -> Optional[str]:
    """
    Return the field the label maps to, or None if no rule matches.

    The first matching rule in table order wins.
    """
    label = normalize_label(label)
    if not label:
        return None
    for rule in rules:
        if rule.matches(label, mode):
            return rule.field
    return None


# ============================================================================
# Supplier Resolution
# ============================================================================

UAE_COUNTRY_NAMES = ("uae", "united arab emirates")
KSA_COUNTRY_NAMES = ("ksa", "saudi arabia")


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def resolve_supplier_number(
    source: Optional[str],
    country: Optional[str],
    brand: Optional[str],
) -> int:
    """
    Resolve the payables supplier number for a seller.

    Evaluated as an ordered decision list over the lower-cased, trimmed
    inputs; the first matching branch wins. Unmatched input yields
    UNKNOWN_SUPPLIER_NUMBER.

    Args:
        source: Seller/source name as printed on the invoice
        country: Seller country
        brand: Product brand

    Returns:
        Supplier number
    """
    source = _normalize(source)
    country = _normalize(country)
    brand = _normalize(brand)

    if "procter" in source:
        if country in UAE_COUNTRY_NAMES:
            if "gillette" in brand:
                return 100231
            return 100230
        if country in KSA_COUNTRY_NAMES:
            return 100240
        return 100200
    if "nutricia" in source:
        return 200110
    if "oatly" in source:
        return 200220
    return UNKNOWN_SUPPLIER_NUMBER


# ============================================================================
# Normalizers
# ============================================================================

_NON_NUMERIC = re.compile(r"[^0-9,.\-]")


def normalize_decimal(value: Union[str, int, float, None]) -> float:
    """
    Parse an amount written with '.' as thousands and ',' as decimal separator.

    The conversion is blind: all periods are dropped and commas become the
    decimal point. Amounts already written the other way round
    ("1,234.56") come out wrong (1.23456). Empty or unparseable input
    yields 0.0.

    Examples:
        >>> normalize_decimal("1.234,56")
        1234.56
        >>> normalize_decimal("")
        0.0
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)

    cleaned = _NON_NUMERIC.sub("", str(value))
    cleaned = cleaned.replace(".", "").replace(",", ".")
    if not cleaned:
        return 0.0
    try:
        return float(cleaned)
    except ValueError:
        logger.warning(f"Could not parse amount {value!r}, using 0")
        return 0.0


def parse_date(value: str) -> Optional[date]:
    """Parse a date string using the configured formats, then dateutil."""
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    try:
        return date_parser.parse(value, dayfirst=True).date()
    except (ValueError, OverflowError):
        return None


def format_date(value: Union[str, date, datetime, None]) -> str:
    """
    Format a date as zero-padded dd/mm/yyyy.

    Empty input gives ""; a string that cannot be parsed is returned
    unchanged so it can be corrected during review.
    """
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return _day_month_year(value)

    text = str(value).strip()
    if not text:
        return ""
    parsed = parse_date(text)
    if parsed is None:
        logger.warning(f"Could not parse date {text!r}, keeping it as is")
        return text
    return _day_month_year(parsed)


def _day_month_year(value: date) -> str:
    # strftime("%Y") does not pad years below 1000
    return f"{value.day:02d}/{value.month:02d}/{value.year:04d}"


# ============================================================================
# Tax Derivation
# ============================================================================

def derive_tax_fields(vat_amount: Union[str, int, float, None]) -> tuple[str, str]:
    """
    Return (tax_area_code, tax_exemption_code) for an invoice.

    Both codes are set whenever a positive VAT amount is present,
    otherwise both are blank.
    """
    if normalize_decimal(vat_amount) > 0:
        return TAX_AREA_CODE, TAX_EXEMPTION_CODE
    return "", ""


# ============================================================================
# Business Record
# ============================================================================

def transform_business_invoice(fields: dict[str, str]) -> dict[str, Any]:
    """
    Build a business-variant invoice record from matched label values.

    Args:
        fields: Field name -> first non-empty OCR text, as matched with
            BUSINESS_LABEL_RULES

    Returns:
        Invoice record with normalized amounts/dates, supplier number
        and tax codes
    """
    seller_name = fields.get("seller_name", "")
    seller_country = fields.get("seller_country", "")
    brand = fields.get("brand", "")
    vat_amount = normalize_decimal(fields.get("vat_amount"))
    tax_area_code, tax_exemption_code = derive_tax_fields(vat_amount)

    return {
        "invoice_number": fields.get("invoice_number", ""),
        "invoice_date": format_date(fields.get("invoice_date")),
        "due_date": format_date(fields.get("due_date")),
        "seller_name": seller_name,
        "seller_country": seller_country,
        "brand": brand,
        "supplier_number": resolve_supplier_number(seller_name, seller_country, brand),
        "net_amount": normalize_decimal(fields.get("net_amount")),
        "vat_amount": vat_amount,
        "total_amount": normalize_decimal(fields.get("total_amount")),
        "currency": fields.get("currency", "").strip().upper(),
        "tax_area_code": tax_area_code,
        "tax_exemption_code": tax_exemption_code,
    }
