"""
Command-line interface for the Invoice Capture Service.

Provides the following commands:
- serve: Run the HTTP API
- extract: Send one invoice document to the OCR vendor and print the records
- supplier: Resolve a supplier number
- rates: Show the exchange-rate table
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from .config import (
    API_HOST,
    API_PORT,
    DEFAULT_TARGET_CURRENCY,
    EXCHANGE_RATES,
    EXTRACTION_VARIANT,
    ExtractionVariant,
    logger,
)
from .exceptions import UpstreamError
from .extractor import extract_invoice_file, write_extracted_invoices
from .rules import resolve_supplier_number
from .services import table_rate


# Create Typer app
app = typer.Typer(
    name="invoice-capture",
    help="Invoice Capture Service CLI",
    add_completion=False,
)


@app.command()
def serve(
    host: str = typer.Option(API_HOST, "--host", help="Interface to bind"),
    port: int = typer.Option(API_PORT, "--port", "-p", help="Port to listen on"),
) -> None:
    """Run the HTTP API with uvicorn."""
    from .api import run_server
    run_server(host=host, port=port)


@app.command()
def extract(
    file: Path = typer.Option(
        ...,
        "--file",
        "-f",
        help="Invoice document (PDF or image)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    variant: ExtractionVariant = typer.Option(
        EXTRACTION_VARIANT,
        "--variant",
        "-v",
        help="Record shape: raw or business",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the records to this JSON file instead of printing them",
    ),
) -> None:
    """
    Extract invoice records from a document.

    Sends the file to the configured OCR vendor and shapes the predictions
    into raw or business invoice records.
    """
    typer.echo(f"Extracting invoices from: {file}")

    try:
        invoices = asyncio.run(extract_invoice_file(file, variant))
    except UpstreamError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Error during extraction: {e}", err=True)
        logger.exception("Extraction failed")
        raise typer.Exit(code=1)

    if output:
        write_extracted_invoices(invoices, output)
        typer.echo(f"\n[OK] Extracted {len(invoices)} invoice(s) to: {output}")
    else:
        typer.echo(json.dumps(invoices, indent=2, ensure_ascii=False))


@app.command()
def supplier(
    source: str = typer.Option(..., "--source", "-s", help="Seller name on the invoice"),
    country: str = typer.Option("", "--country", "-c", help="Seller country"),
    brand: str = typer.Option("", "--brand", "-b", help="Product brand"),
) -> None:
    """Resolve the payables supplier number for a seller."""
    typer.echo(str(resolve_supplier_number(source, country, brand)))


@app.command()
def rates(
    to: str = typer.Option(DEFAULT_TARGET_CURRENCY, "--to", "-t", help="Quote currency"),
) -> None:
    """Show the exchange-rate table quoted in one currency."""
    target_rate = table_rate(to)
    typer.echo(f"Rates in {to.upper()}:")
    for currency in sorted(EXCHANGE_RATES):
        typer.echo(f"  {currency}: {table_rate(currency) / target_rate:.6f}")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    typer.echo(f"Invoice Capture Service v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
