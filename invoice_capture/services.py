"""
Mocked downstream services: exchange rates and the payables system.

Nothing here performs a real network call. Every operation sleeps for
MOCK_LATENCY_SECONDS to stand in for one.
"""

import asyncio
import random
import secrets
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Optional

from .config import (
    AP_REFERENCE_PREFIX,
    DEFAULT_EXCHANGE_RATE,
    EXCHANGE_RATES,
    MOCK_LATENCY_SECONDS,
    logger,
)
from .exceptions import PayablesError
from .rules import normalize_decimal
from .schemas import BookingResult, RateQuote, utc_now_iso


async def simulate_latency() -> None:
    await asyncio.sleep(MOCK_LATENCY_SECONDS)


# ============================================================================
# Exchange Rates
# ============================================================================

def rate_as_of() -> str:
    return date.today().isoformat()


def table_rate(currency: Optional[str]) -> float:
    """AED per unit of ``currency``; unknown codes quote at the default."""
    return EXCHANGE_RATES.get((currency or "").strip().upper(), DEFAULT_EXCHANGE_RATE)


async def lookup_rate(currency: Optional[str]) -> RateQuote:
    """Look up the AED rate for a currency."""
    await simulate_latency()
    code = (currency or "").strip().upper()
    return RateQuote(currency=code, rate=table_rate(code), as_of=rate_as_of())


async def convert_rate(source: Optional[str], target: str) -> RateQuote:
    """
    Cross rate from ``source`` to ``target`` through the AED table.

    The returned quote's ``rate`` is the number of ``target`` units per
    ``source`` unit.
    """
    source_quote, target_quote = await asyncio.gather(lookup_rate(source), lookup_rate(target))
    return RateQuote(
        currency=source_quote.currency,
        rate=round(source_quote.rate / target_quote.rate, 6),
        as_of=source_quote.as_of,
    )


def invoice_amount(invoice: dict[str, Any]) -> Any:
    """Amount of an invoice record in either the business or raw shape."""
    if "total_amount" in invoice:
        return invoice["total_amount"]
    return invoice.get("invoice_amount")


async def enrich_invoices(invoices: list[dict[str, Any]], target: str) -> list[dict[str, Any]]:
    """
    Add exchange-rate fields to each invoice, in place.

    Rates are looked up in parallel; the returned list keeps input order.
    """
    target = target.strip().upper()
    quotes = await asyncio.gather(
        *(convert_rate(invoice.get("currency"), target) for invoice in invoices)
    )
    for invoice, quote in zip(invoices, quotes):
        invoice["exchange_rate"] = quote.rate
        invoice["rate_as_of"] = quote.as_of
        invoice["target_currency"] = target
        invoice["converted_amount"] = round(normalize_decimal(invoice_amount(invoice)) * quote.rate, 2)
    logger.info(f"Enriched {len(invoices)} invoice(s) with {target} rates")
    return invoices


# ============================================================================
# Payables Tokens
# ============================================================================

_active_tokens: set[str] = set()


def active_token_count() -> int:
    return len(_active_tokens)


async def acquire_token() -> str:
    await simulate_latency()
    token = secrets.token_hex(8)
    _active_tokens.add(token)
    logger.debug(f"Acquired payables token {token}")
    return token


async def release_token(token: str) -> None:
    await simulate_latency()
    _active_tokens.discard(token)
    logger.debug(f"Released payables token {token}")


@asynccontextmanager
async def payables_session() -> AsyncIterator[str]:
    """Hold a payables token for the duration of the block."""
    token = await acquire_token()
    try:
        yield token
    finally:
        await release_token(token)


# ============================================================================
# Booking
# ============================================================================

REFERENCE_DRAW_ATTEMPTS = 50


def new_reference(taken: Optional[set[str]] = None) -> str:
    """
    Fabricate a reference such as ``AP-2025-48213``.

    When ``taken`` is given the reference is distinct from every entry in it
    and is added to it.

    Raises:
        PayablesError: if no free reference was drawn within
            REFERENCE_DRAW_ATTEMPTS tries
    """
    year = datetime.now(timezone.utc).year
    for _ in range(REFERENCE_DRAW_ATTEMPTS):
        reference = f"{AP_REFERENCE_PREFIX}-{year}-{random.randint(10000, 99999)}"
        if taken is None:
            return reference
        if reference not in taken:
            taken.add(reference)
            return reference
    raise PayablesError("Could not draw a free booking reference")


async def book_invoice(
    invoice: dict[str, Any],
    token: str,
    taken: Optional[set[str]] = None,
) -> BookingResult:
    """
    Book one invoice and return its fabricated reference.

    There is no idempotency: booking the same invoice twice yields two
    references.
    """
    if not token:
        raise PayablesError("Booking requires a payables token")
    await simulate_latency()
    result = BookingResult(
        reference=new_reference(taken),
        invoice_number=_as_text(invoice.get("invoice_number")),
        supplier_number=invoice.get("supplier_number"),
        amount=invoice_amount(invoice),
        currency=_as_text(invoice.get("currency")),
        booked_at=utc_now_iso(),
    )
    logger.info(f"Booked invoice {result.invoice_number} as {result.reference}")
    return result


async def book_invoices(invoices: list[dict[str, Any]]) -> list[BookingResult]:
    """
    Book a batch of invoices under a single payables token.

    Bookings run concurrently; results are returned in input order. The
    first failing booking fails the whole batch. References are distinct
    within the batch.
    """
    issued: set[str] = set()
    async with payables_session() as token:
        results = await asyncio.gather(
            *(book_invoice(invoice, token, issued) for invoice in invoices)
        )
    return list(results)


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)
