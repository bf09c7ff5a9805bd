"""Unit tests for the service scan agent."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from bill_scanner.agent.scanner import ServiceScanAgent, filter_existing, infer_frequency, merge_detected
from bill_scanner.exceptions import AuthenticationError, CompletionProviderError, GmailAPIError
from bill_scanner.extraction import InvoiceExtractor
from bill_scanner.extraction.schemas import CatalogInvoiceSchema
from bill_scanner.models import (
    DetectedService,
    DetectionSource,
    ExpenseCategory,
    ExtractionMethod,
    Frequency,
    Section,
    ServicePreset,
)

LATEST = datetime(2026, 2, 25, 10, 0, tzinfo=timezone.utc)

PRESETS = (
    ServicePreset(
        name="Edenor",
        category=ExpenseCategory.UTILITIES,
        frequency=Frequency.BIMONTHLY,
        section=Section.UTILITIES,
    ),
    ServicePreset(
        name="Netflix",
        category=ExpenseCategory.ENTERTAINMENT,
        frequency=Frequency.MONTHLY,
        section=Section.STREAMING,
    ),
)

INVOICE_HTML = (
    "<table><tr><td>Total a pagar</td><td>$58.099,00</td></tr>"
    "<tr><td>Vencimiento</td><td>10/03/2026</td></tr></table>"
)
INVOICE_TEXT = "Total a pagar $58.099,00\nVencimiento: 10/03/2026\nNro. Cliente: 123456"
PROMO_HTML = "<p>Aprovechá nuestros descuentos exclusivos para clientes este fin de semana.</p>"


def _add_emails(mailbox, message_factory, service: str, subjects: list[str], spacing_days: int = 30) -> list[str]:
    """Add one email per subject, newest first; returns their ids."""

    ids = []
    for i, subject in enumerate(subjects):
        message_id = f"{service.lower()}-{i}"
        promo = "Promo" in subject
        mailbox.add(
            message_factory(
                message_id,
                sender=f"{service} <facturas@{service.lower()}.com.ar>",
                subject=subject,
                date=LATEST - timedelta(days=spacing_days * i),
                html=PROMO_HTML if promo else INVOICE_HTML,
                text="Promociones" if promo else INVOICE_TEXT,
            ),
            f"({service})",
        )
        ids.append(message_id)
    return ids


def _invoice_handler(prompt: str, schema) -> dict:
    assert schema is CatalogInvoiceSchema
    if "descuentos" in prompt:
        return {"is_billing_email": False}
    return {
        "is_billing_email": True,
        "amount": 58099.0,
        "currency": "ARS",
        "due_date": "2026-03-10",
        "period": "2026-02",
        "account_number": "123456",
    }


def _detected(name: str, sender: str, email_count: int, source: DetectionSource) -> DetectedService:
    return DetectedService(
        name=name,
        provider=name,
        category=ExpenseCategory.OTHER,
        section=Section.OTHER,
        frequency=Frequency.MONTHLY,
        sender_email=sender,
        email_count=email_count,
        latest_email_date=LATEST,
        source=source,
    )


class _StubDiscovery:
    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.result = result or []
        self.error = error
        self.calls: list[tuple] = []

    async def discover(self, user_id, excluded_ids=frozenset(), newer_than=None):
        self.calls.append((user_id, set(excluded_ids), newer_than))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def make_agent(gmail_client, ledger, mock_settings, completion_factory, fake_sleep):
    def factory(handler=_invoice_handler, *, discovery=None, **settings_overrides):
        settings_overrides.setdefault("discovery_enabled", False)
        settings = mock_settings.model_copy(update=settings_overrides)
        completion = completion_factory(handler)
        agent = ServiceScanAgent(
            gmail_client,
            InvoiceExtractor(completion, settings),
            ledger,
            settings,
            discovery=discovery,
            presets=PRESETS,
            sleep=fake_sleep,
        )
        return agent, completion

    return factory


class TestInferFrequency:
    @pytest.mark.parametrize(
        ("spacing_days", "expected"),
        [
            (7, Frequency.WEEKLY),
            (30, Frequency.MONTHLY),
            (60, Frequency.BIMONTHLY),
            (90, Frequency.QUARTERLY),
            (365, Frequency.YEARLY),
        ],
    )
    def test_average_spacing(self, spacing_days: int, expected: Frequency) -> None:
        oldest = LATEST - timedelta(days=spacing_days * 3)

        assert infer_frequency(4, oldest, LATEST) == expected

    def test_same_day_emails_are_weekly(self) -> None:
        assert infer_frequency(3, LATEST, LATEST) == Frequency.WEEKLY


class TestMergeAndFilter:
    def test_catalog_wins_on_name_or_sender_collision(self) -> None:
        catalog = [_detected("Netflix", "info@netflix.com", 2, DetectionSource.CATALOG)]
        discovered = [
            _detected("netflix", "other@netflix.net", 5, DetectionSource.DISCOVERY),
            _detected("Netflix Inc", "INFO@netflix.com", 5, DetectionSource.DISCOVERY),
            _detected("Cursor", "billing@cursor.com", 4, DetectionSource.DISCOVERY),
        ]

        merged = merge_detected(catalog, discovered)

        assert [s.name for s in merged] == ["Cursor", "Netflix"]

    def test_sorted_by_email_count(self) -> None:
        merged = merge_detected(
            [_detected("A", "a@a.com", 1, DetectionSource.CATALOG), _detected("B", "b@b.com", 3, DetectionSource.CATALOG)],
            [_detected("C", "c@c.com", 2, DetectionSource.DISCOVERY)],
        )

        assert [s.email_count for s in merged] == [3, 2, 1]

    def test_filter_existing_by_title_or_provider(self) -> None:
        detected = [
            _detected("Netflix", "info@netflix.com", 2, DetectionSource.CATALOG),
            _detected("Cursor", "billing@cursor.com", 1, DetectionSource.DISCOVERY),
            _detected("Edenor", "facturas@edenor.com", 1, DetectionSource.CATALOG),
        ]

        new, tracked = filter_existing(detected, existing_titles=["netflix"], existing_providers=["EDENOR", ""])

        assert [s.name for s in new] == ["Cursor"]
        assert [s.name for s in tracked] == ["Netflix", "Edenor"]


class TestCatalogScan:
    @pytest.mark.asyncio
    async def test_billing_provider_is_detected(self, make_agent, fake_mailbox, message_factory, ledger) -> None:
        ids = _add_emails(fake_mailbox, message_factory, "Edenor", ["Tu factura Edenor"] * 3)
        agent, completion = make_agent()

        services = await agent.scan("user-1", None, "3m")

        assert len(services) == 1
        service = services[0]
        assert service.name == "Edenor"
        assert service.section == Section.UTILITIES
        assert service.last_amount == 58099.0
        assert service.due_date == date(2026, 3, 10)
        assert service.account_number == "123456"
        assert service.email_count == 3
        # Three emails thirty days apart override the catalog's bimonthly default.
        assert service.frequency == Frequency.MONTHLY
        assert service.sender_email == "facturas@edenor.com.ar"
        assert service.latest_email_date == LATEST
        assert service.source == DetectionSource.CATALOG
        assert service.extraction_method == ExtractionMethod.LLM
        assert len(completion.prompts) == 1
        assert ledger.processed_subset("user-1", ids) == set(ids)

    @pytest.mark.asyncio
    async def test_few_emails_keep_catalog_frequency(self, make_agent, fake_mailbox, message_factory) -> None:
        _add_emails(fake_mailbox, message_factory, "Edenor", ["Tu factura Edenor"] * 2)
        agent, _ = make_agent()

        services = await agent.scan("user-1", None)

        assert services[0].frequency == Frequency.BIMONTHLY

    @pytest.mark.asyncio
    async def test_non_invoice_is_recorded_and_never_reclassified(
        self, make_agent, fake_mailbox, message_factory, ledger
    ) -> None:
        ids = _add_emails(fake_mailbox, message_factory, "Edenor", ["Promo Edenor"])
        agent, completion = make_agent()

        first = await agent.scan("user-1", None)
        second = await agent.scan("user-1", None)

        assert first == []
        assert second == []
        assert ledger.processed_subset("user-1", ids) == set(ids)
        assert len(completion.prompts) == 1
        assert fake_mailbox.calls_of("metadata") == ids

    @pytest.mark.asyncio
    async def test_stops_at_first_billing_candidate(self, make_agent, fake_mailbox, message_factory) -> None:
        _add_emails(
            fake_mailbox,
            message_factory,
            "Edenor",
            ["Promo Edenor", "Tu factura Edenor", "Tu factura Edenor"],
        )
        agent, completion = make_agent()

        services = await agent.scan("user-1", None)

        assert [s.name for s in services] == ["Edenor"]
        assert len(completion.prompts) == 2

    @pytest.mark.asyncio
    async def test_candidates_are_capped_per_service(
        self, make_agent, fake_mailbox, message_factory, ledger
    ) -> None:
        ids = _add_emails(fake_mailbox, message_factory, "Edenor", ["Promo Edenor"] * 7)
        agent, completion = make_agent()

        services = await agent.scan("user-1", None)

        assert services == []
        assert len(completion.prompts) == 5
        assert sorted(fake_mailbox.calls_of("full")) == sorted(ids[:5])
        assert ledger.count("user-1") == 7

    @pytest.mark.asyncio
    async def test_provider_failure_falls_back_to_regex(self, make_agent, fake_mailbox, message_factory) -> None:
        _add_emails(fake_mailbox, message_factory, "Edenor", ["Tu factura Edenor"])

        def unavailable(prompt, schema):
            raise CompletionProviderError("connection refused")

        agent, _ = make_agent(unavailable)

        services = await agent.scan("user-1", None)

        assert services[0].extraction_method == ExtractionMethod.REGEX
        assert services[0].last_amount == 58099.0
        assert services[0].account_number == "123456"

    @pytest.mark.asyncio
    async def test_sleeps_between_section_queries(
        self, make_agent, fake_mailbox, message_factory, fake_sleep
    ) -> None:
        agent, _ = make_agent()

        await agent.scan("user-1", None)

        assert len(fake_mailbox.calls_of("list")) == 2
        assert fake_sleep.delays == [0.2]

    @pytest.mark.asyncio
    async def test_failed_query_is_skipped(
        self, make_agent, fake_mailbox, message_factory, http_error_factory
    ) -> None:
        _add_emails(fake_mailbox, message_factory, "Edenor", ["Tu factura Edenor"])
        _add_emails(fake_mailbox, message_factory, "Netflix", ["Tu factura Netflix"])
        fake_mailbox.errors["list"] = [http_error_factory(500, "backendError")]
        agent, _ = make_agent()

        services = await agent.scan("user-1", None)

        assert [s.name for s in services] == ["Netflix"]

    @pytest.mark.asyncio
    async def test_authentication_failure_aborts(
        self, make_agent, fake_mailbox, message_factory, http_error_factory
    ) -> None:
        _add_emails(fake_mailbox, message_factory, "Edenor", ["Tu factura Edenor"])
        fake_mailbox.errors["list"] = [http_error_factory(401, "authError")]
        agent, _ = make_agent()

        with pytest.raises(AuthenticationError):
            await agent.scan("user-1", None)


class TestDiscoveryIntegration:
    @pytest.mark.asyncio
    async def test_catalog_ids_are_excluded_and_results_merged(
        self, make_agent, fake_mailbox, message_factory
    ) -> None:
        ids = _add_emails(fake_mailbox, message_factory, "Edenor", ["Tu factura Edenor"] * 3)
        cursor = _detected("Cursor", "billing@cursor.com", 4, DetectionSource.DISCOVERY)
        shadowed = _detected("edenor", "otro@edenor.com.ar", 9, DetectionSource.DISCOVERY)
        discovery = _StubDiscovery(result=[cursor, shadowed])
        agent, _ = make_agent(discovery=discovery)

        services = await agent.scan("user-1", None, "6m")

        assert [s.name for s in services] == ["Cursor", "Edenor"]
        assert discovery.calls == [("user-1", set(ids), "6m")]

    @pytest.mark.asyncio
    async def test_discovery_runs_without_catalog_candidates(self, make_agent) -> None:
        cursor = _detected("Cursor", "billing@cursor.com", 4, DetectionSource.DISCOVERY)
        agent, _ = make_agent(discovery=_StubDiscovery(result=[cursor]))

        services = await agent.scan("user-1", None)

        assert [s.name for s in services] == ["Cursor"]

    @pytest.mark.asyncio
    async def test_discovery_failure_keeps_catalog_results(
        self, make_agent, fake_mailbox, message_factory
    ) -> None:
        _add_emails(fake_mailbox, message_factory, "Edenor", ["Tu factura Edenor"])
        agent, _ = make_agent(discovery=_StubDiscovery(error=GmailAPIError("boom", status=500)))

        services = await agent.scan("user-1", None)

        assert [s.name for s in services] == ["Edenor"]

    @pytest.mark.asyncio
    async def test_discovery_authentication_failure_propagates(self, make_agent) -> None:
        agent, _ = make_agent(discovery=_StubDiscovery(error=AuthenticationError("expired", status=401)))

        with pytest.raises(AuthenticationError):
            await agent.scan("user-1", None)

    @pytest.mark.asyncio
    async def test_discovery_scanner_built_when_enabled(self, make_agent) -> None:
        agent, _ = make_agent(discovery_enabled=True)

        assert agent.discovery is not None
