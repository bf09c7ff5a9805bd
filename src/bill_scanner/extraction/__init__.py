"""Invoice classification and field extraction."""

from bill_scanner.extraction.extractor import (
    SECTION_STRICTNESS,
    Billing,
    ExtractionOutcome,
    InvoiceExtractor,
    NotBilling,
    ProviderError,
    ProviderErrorKind,
    is_strict_section,
)

__all__ = [
    "SECTION_STRICTNESS",
    "Billing",
    "ExtractionOutcome",
    "InvoiceExtractor",
    "NotBilling",
    "ProviderError",
    "ProviderErrorKind",
    "is_strict_section",
]
