"""Invoice extraction: structured completion first, regex as the fallback.

Two modes are supported:

* Catalog mode classifies an email already matched to a known provider and
  extracts its invoice fields. Provider failures degrade to the regex
  extractors, so this mode always yields an answer.
* Discovery mode classifies an email from an unknown sender and also infers
  the service name and category. There is no fallback; a provider failure is
  reported as such.

Callers receive a tagged outcome so that a confident "not a bill" can never
be confused with an unavailable provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Protocol, TypeVar, Union

import structlog
from pydantic import BaseModel

from bill_scanner.config import Settings
from bill_scanner.exceptions import (
    CompletionError,
    CompletionSchemaError,
    CompletionTimeoutError,
    ConfigurationError,
)
from bill_scanner.extraction.prompt import (
    PROMPT_VERSION,
    build_catalog_prompt,
    build_discovery_prompt,
)
from bill_scanner.extraction.regex import (
    extract_account_number,
    extract_amount,
    extract_due_date,
    extract_period,
)
from bill_scanner.extraction.schemas import CatalogInvoiceSchema, DiscoverySchema
from bill_scanner.models import (
    LOCAL_CURRENCY,
    DiscoveredServiceData,
    ExtractedInvoiceData,
    ExtractionMethod,
    Section,
)

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)

# Sections whose emails are formal invoices get strict classification.
# Every Section member must be listed.
SECTION_STRICTNESS: dict[Section, bool] = {
    Section.UTILITIES: True,
    Section.TELECOM: True,
    Section.HEALTH: True,
    Section.TAXES: True,
    Section.STREAMING: False,
    Section.HOME: False,
    Section.TRANSPORT: False,
    Section.OTHER: False,
}


def is_strict_section(section: Section) -> bool:
    """Return the classification strictness for a catalog section.

    Raises:
        ConfigurationError: If the section has no strictness entry.
    """

    try:
        return SECTION_STRICTNESS[section]
    except KeyError as exc:
        raise ConfigurationError(f"No classification strictness defined for section {section!r}") from exc


class CompletionClient(Protocol):
    async def complete(self, prompt: str, schema_model: type[ModelT]) -> ModelT: ...


class ProviderErrorKind(str, Enum):
    """Why the completion provider could not answer."""

    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    SCHEMA = "schema"


@dataclass(frozen=True)
class Billing:
    """The email is a bill; ``data`` holds the extracted fields."""

    data: Union[ExtractedInvoiceData, DiscoveredServiceData]
    # Set when the provider failed and the regex extractors answered instead.
    fallback_from: Optional[ProviderErrorKind] = None


@dataclass(frozen=True)
class NotBilling:
    """The email is not a bill, or was not eligible for classification."""

    reason: str


@dataclass(frozen=True)
class ProviderError:
    """The completion provider failed; nothing is known about the email."""

    kind: ProviderErrorKind
    detail: str = ""


ExtractionOutcome = Union[Billing, NotBilling, ProviderError]


def _error_kind(exc: CompletionError) -> ProviderErrorKind:
    if isinstance(exc, CompletionTimeoutError):
        return ProviderErrorKind.TIMEOUT
    if isinstance(exc, CompletionSchemaError):
        return ProviderErrorKind.SCHEMA
    return ProviderErrorKind.UNAVAILABLE


def extract_with_regex(plain_text: str, subject: str, *, today: Optional[date] = None) -> ExtractedInvoiceData:
    """Extract invoice fields deterministically from ``subject`` and ``plain_text``.

    Only used for catalog providers, so the email is assumed to be a bill and
    the currency is local.
    """

    text = f"{subject}\n{plain_text}"
    return ExtractedInvoiceData(
        is_billing_email=True,
        amount=extract_amount(text),
        currency=LOCAL_CURRENCY,
        due_date=extract_due_date(text, today=today),
        period=extract_period(text),
        account_number=extract_account_number(text),
        extraction_method=ExtractionMethod.REGEX,
    )


class InvoiceExtractor:
    """Classify billing emails and extract invoice fields."""

    def __init__(
        self,
        completion_client: Optional[CompletionClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        from bill_scanner.config import get_settings

        self.settings = settings or get_settings()
        self.completion_client = completion_client

    @property
    def llm_enabled(self) -> bool:
        return self.settings.llm_enabled and self.completion_client is not None

    def _eligible_for_llm(self, body: str) -> bool:
        return self.llm_enabled and len(body) > self.settings.llm_min_body_chars

    async def extract_invoice(
        self,
        *,
        html_body: str,
        plain_text: str,
        subject: str,
        service_name: str,
        section: Section,
        today: Optional[date] = None,
    ) -> ExtractionOutcome:
        """Classify and extract a catalog-matched email.

        Args:
            html_body: Structure-preserving body for the provider.
            plain_text: Stripped text for the regex fallback.
            subject: Email subject.
            service_name: Matched catalog name.
            section: Catalog section of the matched preset.
            today: Reference date for regex dates without a year.

        Returns:
            Billing or NotBilling. Provider failures fall back to regex and
            are recorded on the Billing outcome.
        """

        strict = is_strict_section(section)
        body = html_body or plain_text

        if not self._eligible_for_llm(body):
            return Billing(extract_with_regex(plain_text, subject, today=today))

        prompt = build_catalog_prompt(
            body=body,
            subject=subject,
            service_name=service_name,
            strict=strict,
            max_body_chars=self.settings.llm_max_body_chars,
        )

        try:
            reply = await self.completion_client.complete(prompt, CatalogInvoiceSchema)
        except CompletionError as exc:
            kind = _error_kind(exc)
            logger.warning(
                "llm_extraction_failed_using_regex",
                service=service_name,
                kind=kind.value,
                error=str(exc),
                prompt_version=PROMPT_VERSION,
            )
            return Billing(extract_with_regex(plain_text, subject, today=today), fallback_from=kind)

        if not reply.is_billing_email:
            return NotBilling(reason="classified_not_billing")

        return Billing(
            ExtractedInvoiceData(
                is_billing_email=True,
                amount=reply.amount,
                currency=reply.currency,
                due_date=reply.parsed_due_date(),
                period=reply.period,
                account_number=reply.account_number,
                extraction_method=ExtractionMethod.LLM,
            )
        )

    async def extract_discovery(
        self,
        *,
        html_body: str,
        plain_text: str,
        subject: str,
        sender_email: str,
    ) -> ExtractionOutcome:
        """Classify an email from an unknown sender and identify the service.

        Returns:
            Billing with DiscoveredServiceData, NotBilling (including when the
            provider is disabled or the body is too short), or ProviderError.
        """

        body = html_body or plain_text
        if not self.llm_enabled:
            return NotBilling(reason="llm_disabled")
        if len(body) <= self.settings.llm_min_body_chars:
            return NotBilling(reason="body_too_short")

        prompt = build_discovery_prompt(
            body=body,
            subject=subject,
            sender_email=sender_email,
            max_body_chars=self.settings.llm_max_body_chars,
        )

        try:
            reply = await self.completion_client.complete(prompt, DiscoverySchema)
        except CompletionError as exc:
            kind = _error_kind(exc)
            logger.warning(
                "discovery_extraction_failed",
                sender=sender_email,
                kind=kind.value,
                error=str(exc),
                prompt_version=PROMPT_VERSION,
            )
            return ProviderError(kind=kind, detail=str(exc))

        if not reply.is_billing_email:
            return NotBilling(reason="classified_not_billing")
        if not (reply.service_name or "").strip():
            return NotBilling(reason="missing_service_name")

        return Billing(
            DiscoveredServiceData(
                is_billing_email=True,
                service_name=reply.service_name.strip(),
                category=reply.category,
                amount=reply.amount,
                currency=reply.currency,
                due_date=reply.parsed_due_date(),
                period=reply.period,
            )
        )
