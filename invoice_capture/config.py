"""
Configuration constants and enums for the Invoice Capture Service.
"""

import logging
import os
from enum import Enum
from typing import Final

# ============================================================================
# Session Lifecycle
# ============================================================================

class SessionStatus(str, Enum):
    """Processing status of an invoice session."""
    PENDING = "pending"
    SUBMITTED = "submitted"
    EXTRACTED = "extracted"
    RAW_EXTRACTED = "raw_extracted"
    USER_REVIEWED = "user_reviewed"
    UPDATED = "updated"
    ENRICHED = "enriched"
    BOOKED = "booked"
    COMPLETED = "completed"


class ExtractionVariant(str, Enum):
    """How vendor predictions are shaped into invoice records."""
    RAW = "raw"
    BUSINESS = "business"


# 0 disables eviction (sessions live for the whole process)
SESSION_IDLE_TTL_SECONDS: Final[int] = int(os.getenv("SESSION_IDLE_TTL_SECONDS", "0"))

SESSION_ID_PREFIX: Final[str] = "INV-"

# ============================================================================
# OCR Vendor
# ============================================================================

OCR_API_URL: Final[str] = os.getenv(
    "OCR_API_URL", "https://app.nanonets.com/api/v2/OCR/Model"
)
OCR_API_KEY: Final[str] = os.getenv("OCR_API_KEY", "")
OCR_MODEL_ID: Final[str] = os.getenv("OCR_MODEL_ID", "")
OCR_TIMEOUT_SECONDS: Final[float] = float(os.getenv("OCR_TIMEOUT_SECONDS", "60"))

EXTRACTION_VARIANT: Final[ExtractionVariant] = ExtractionVariant(
    os.getenv("EXTRACTION_VARIANT", ExtractionVariant.BUSINESS.value)
)

# ============================================================================
# Date Formats
# ============================================================================

# Tried in order before falling back to dateutil (day-first)
DATE_FORMATS: Final[list[str]] = [
    "%Y-%m-%d",      # ISO format: 2024-01-15
    "%d/%m/%Y",      # European: 15/01/2024
    "%d-%m-%Y",      # European with dashes: 15-01-2024
    "%d.%m.%Y",      # European with dots: 15.01.2024
    "%d/%m/%y",      # Short year: 15/01/24
    "%B %d, %Y",     # Long format: January 15, 2024
    "%b %d, %Y",     # Short month: Jan 15, 2024
    "%d %B %Y",      # European long: 15 January 2024
    "%d %b %Y",      # European short: 15 Jan 2024
]

# ============================================================================
# Record Defaults
# ============================================================================

RAW_NAME_DEFAULT: Final[str] = "Unknown"
RAW_AMOUNT_DEFAULT: Final[str] = "0"
RAW_TEXT_DEFAULT: Final[str] = "N/A"

# ============================================================================
# Supplier & Tax Codes
# ============================================================================

UNKNOWN_SUPPLIER_NUMBER: Final[int] = 999999

TAX_AREA_CODE: Final[str] = os.getenv("TAX_AREA_CODE", "UAE-VAT")
TAX_EXEMPTION_CODE: Final[str] = os.getenv("TAX_EXEMPTION_CODE", "VAT5")

# ============================================================================
# Mock Downstream Services
# ============================================================================

# Simulated latency for every mocked downstream call
MOCK_LATENCY_SECONDS: Final[float] = float(os.getenv("MOCK_LATENCY_SECONDS", "0.2"))

AP_REFERENCE_PREFIX: Final[str] = os.getenv("AP_REFERENCE_PREFIX", "AP")

DEFAULT_TARGET_CURRENCY: Final[str] = os.getenv("DEFAULT_TARGET_CURRENCY", "AED")

# AED per one unit of currency; unknown codes quote at 1.0
RATE_BASE_CURRENCY: Final[str] = "AED"
EXCHANGE_RATES: Final[dict[str, float]] = {
    "AED": 1.0,
    "USD": 3.6725,
    "EUR": 4.02,
    "GBP": 4.68,
    "SAR": 0.979,
    "INR": 0.044,
    "CHF": 4.15,
    "SEK": 0.35,
    "JPY": 0.0245,
    "CNY": 0.51,
}
DEFAULT_EXCHANGE_RATE: Final[float] = 1.0

# ============================================================================
# API Configuration
# ============================================================================

API_HOST: Final[str] = os.getenv("API_HOST", "0.0.0.0")
API_PORT: Final[int] = int(os.getenv("API_PORT", "8000"))
MAX_UPLOAD_SIZE_MB: Final[int] = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))
CORS_ORIGINS: Final[list[str]] = [
    origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
]

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")

def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("invoice_capture")


logger = setup_logging()
