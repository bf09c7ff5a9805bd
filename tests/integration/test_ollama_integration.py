"""Integration tests against a running Ollama instance.

Set BILL_SCANNER_OLLAMA_INTEGRATION=1 (and optionally BILL_SCANNER_OLLAMA_HOST
and BILL_SCANNER_OLLAMA_MODEL) to run them.
"""

import os

import pytest

from bill_scanner.config import Settings
from bill_scanner.extraction import Billing, InvoiceExtractor
from bill_scanner.models import ExtractedInvoiceData, Section
from bill_scanner.ollama.client import OllamaClient

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not os.environ.get("BILL_SCANNER_OLLAMA_INTEGRATION"),
        reason="BILL_SCANNER_OLLAMA_INTEGRATION not set",
    ),
]

INVOICE_HTML = (
    "<p>Hola, ya está disponible tu factura de Aguas Cordobesas.</p>"
    "<table><tr><td>Total a pagar</td><td>$12.345,67</td></tr>"
    "<tr><td>Vencimiento</td><td>15/03/2026</td></tr>"
    "<tr><td>Nro. de cliente</td><td>998877</td></tr></table>"
)


@pytest.mark.asyncio
async def test_catalog_invoice_is_classified_as_billing() -> None:
    """A formal utility invoice is classified and its total extracted."""
    settings = Settings(ollama_timeout=60.0)
    extractor = InvoiceExtractor(OllamaClient(settings), settings)

    outcome = await extractor.extract_invoice(
        html_body=INVOICE_HTML,
        plain_text="Total a pagar $12.345,67 Vencimiento 15/03/2026",
        subject="Tu factura de Aguas Cordobesas",
        service_name="Aguas Cordobesas",
        section=Section.UTILITIES,
    )

    assert isinstance(outcome, Billing)
    assert isinstance(outcome.data, ExtractedInvoiceData)
    assert outcome.data.amount == pytest.approx(12345.67)
