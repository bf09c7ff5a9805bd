"""Service scan agent.

This module provides the agent that orchestrates a full mailbox scan: catalog
queries, idempotency filtering, service matching, per-provider
classification, discovery of unknown senders and the final merge.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from bill_scanner.agent.discovery import DiscoveryScanner
from bill_scanner.catalog import ALL_PRESETS
from bill_scanner.config import Settings
from bill_scanner.exceptions import AuthenticationError, BillScannerError, ConfigurationError, GmailAPIError
from bill_scanner.extraction import Billing, InvoiceExtractor, NotBilling, ProviderError
from bill_scanner.gmail.body import decode_body, decode_html_for_llm
from bill_scanner.gmail.client import GmailClient
from bill_scanner.gmail.matching import match_service
from bill_scanner.gmail.parsing import get_header, message_to_email_info
from bill_scanner.gmail.query_builder import build_service_queries
from bill_scanner.ledger import ProcessedMessageLedger
from bill_scanner.models import (
    DetectedService,
    DetectionSource,
    EmailInfo,
    ExtractedInvoiceData,
    Frequency,
    ProcessedMessageRecord,
    ServicePreset,
)
from bill_scanner.utils import Sleep

logger = structlog.get_logger()

# Fewer supporting emails than this keep the catalog's default frequency.
MIN_EMAILS_FOR_FREQUENCY = 3


def infer_frequency(email_count: int, oldest: datetime, newest: datetime) -> Frequency:
    """Infer a billing frequency from the average spacing of supporting emails."""

    span_days = max(1.0, (newest - oldest).total_seconds() / 86400)
    avg_days_between = span_days / max(1, email_count - 1)

    if avg_days_between <= 10:
        return Frequency.WEEKLY
    if avg_days_between <= 45:
        return Frequency.MONTHLY
    if avg_days_between <= 75:
        return Frequency.BIMONTHLY
    if avg_days_between <= 120:
        return Frequency.QUARTERLY
    return Frequency.YEARLY


def merge_detected(
    catalog: Sequence[DetectedService],
    discovered: Sequence[DetectedService],
) -> list[DetectedService]:
    """Merge discovery results into catalog results and sort by email count.

    A discovered service is dropped when its name or sender collides,
    case-insensitively, with a catalog result.
    """

    names = {d.name.casefold() for d in catalog}
    senders = {d.sender_email.casefold() for d in catalog}

    merged = list(catalog)
    for service in discovered:
        if service.name.casefold() in names or service.sender_email.casefold() in senders:
            logger.debug("discovery_result_shadowed", service=service.name, sender=service.sender_email)
            continue
        merged.append(service)

    merged.sort(key=lambda d: d.email_count, reverse=True)
    return merged


def filter_existing(
    detected: Iterable[DetectedService],
    existing_titles: Iterable[str] = (),
    existing_providers: Iterable[str] = (),
) -> tuple[list[DetectedService], list[DetectedService]]:
    """Split detected services into new ones and ones the caller already tracks.

    A service is already tracked when its name matches an existing title or
    its provider matches an existing provider, ignoring case.

    Returns:
        ``(new, already_tracked)``, each in input order.
    """

    titles = {t.casefold() for t in existing_titles if t}
    providers = {p.casefold() for p in existing_providers if p}

    new: list[DetectedService] = []
    tracked: list[DetectedService] = []
    for service in detected:
        if service.name.casefold() in titles or service.provider.casefold() in providers:
            tracked.append(service)
        else:
            new.append(service)
    return new, tracked


@dataclass
class _ServiceGroup:
    preset: ServicePreset
    emails: list[EmailInfo] = field(default_factory=list)

    @property
    def latest(self) -> EmailInfo:
        return self.emails[0]


class ServiceScanAgent:
    """Scan a mailbox for recurring bills.

    This agent runs the catalog pass, then the discovery pass, and returns
    one DetectedService per billing relationship found.
    """

    def __init__(
        self,
        gmail_client: GmailClient,
        extractor: InvoiceExtractor,
        ledger: ProcessedMessageLedger,
        settings: Settings | None = None,
        *,
        discovery: DiscoveryScanner | None = None,
        presets: tuple[ServicePreset, ...] = ALL_PRESETS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the scan agent.

        Args:
            gmail_client: Gmail API client.
            extractor: Invoice extractor.
            ledger: Processed-message ledger.
            settings: Application settings. If None, uses default settings.
            discovery: Discovery scanner. If None, one is built from the
                other collaborators when discovery is enabled.
            presets: Service catalog.
            sleep: Awaitable sleep used for the inter-query delay.
        """
        from bill_scanner.config import get_settings

        self.settings = settings or get_settings()
        self.gmail_client = gmail_client
        self.extractor = extractor
        self.ledger = ledger
        self.presets = presets
        self._presets_by_name = {p.name: p for p in presets}
        self._sleep = sleep

        if discovery is None and self.settings.discovery_enabled:
            discovery = DiscoveryScanner(gmail_client, extractor, ledger, self.settings, sleep=sleep)
        self.discovery = discovery
        logger.info("scan_agent_initialized", discovery=self.discovery is not None)

    async def scan(
        self,
        user_id: str,
        city: str | None,
        newer_than: str | None = None,
    ) -> list[DetectedService]:
        """Scan the mailbox of ``user_id``.

        Args:
            user_id: Owner of the mailbox, for the ledger.
            city: Household city, used to restrict regional providers.
            newer_than: Gmail lookback window. Defaults to settings.default_newer_than.

        Returns:
            Detected services, most supporting emails first.

        Raises:
            AuthenticationError: If the mailbox rejects the credential.
        """

        newer_than = newer_than or self.settings.default_newer_than
        logger.info("scan_started", user_id=user_id, city=city, newer_than=newer_than)

        seen_ids, candidate_names = await self._list_candidates(city, newer_than)

        processed = self.ledger.processed_subset(user_id, seen_ids) if seen_ids else set()
        new_ids = [mid for mid in seen_ids if mid not in processed]
        logger.info("catalog_candidates", listed=len(seen_ids), already_processed=len(processed), new=len(new_ids))

        detected: list[DetectedService] = []
        if new_ids:
            detected = await self._scan_catalog(user_id, new_ids, candidate_names)

        discovered = await self._discover(user_id, set(seen_ids), newer_than)
        results = merge_detected(detected, discovered)

        logger.info(
            "scan_completed",
            user_id=user_id,
            catalog=len(detected),
            discovered=len(discovered),
            total=len(results),
        )
        return results

    async def _list_candidates(self, city: str | None, newer_than: str) -> tuple[list[str], dict[str, list[str]]]:
        queries = build_service_queries(city, newer_than, self.presets)

        seen_ids: list[str] = []
        candidate_names: dict[str, list[str]] = {}

        for index, service_query in enumerate(queries):
            if index:
                await self._sleep(self.settings.gmail_query_delay_seconds)
            try:
                page = await self.gmail_client.list_messages(
                    service_query.query,
                    page_size=self.settings.gmail_query_max_results,
                )
            except AuthenticationError:
                raise
            except GmailAPIError as exc:
                logger.warning("gmail_query_failed", section=service_query.section.value, error=str(exc))
                continue

            logger.debug("gmail_query_listed", section=service_query.section.value, count=len(page.ids))
            for message_id in page.ids:
                if message_id not in candidate_names:
                    candidate_names[message_id] = service_query.service_names
                    seen_ids.append(message_id)

        return seen_ids, candidate_names

    async def _scan_catalog(
        self,
        user_id: str,
        message_ids: list[str],
        candidate_names: dict[str, list[str]],
    ) -> list[DetectedService]:
        metadata = await self.gmail_client.get_metadata_batch(message_ids)

        matched: list[EmailInfo] = []
        for message in metadata:
            email = message_to_email_info(message)
            if not email.sender and not email.subject:
                continue
            name = match_service(email.subject, email.sender, candidate_names.get(email.message_id, []))
            if name is None:
                logger.debug("catalog_no_match", subject=email.subject, sender=email.sender_email)
                continue
            matched.append(email.model_copy(update={"service_name": name}))

        groups = self._group_by_service(matched)

        candidate_ids = [
            email.message_id
            for group in groups.values()
            for email in group.emails[: self.settings.max_candidates_per_service]
        ]
        bodies = {m.get("id"): m for m in await self.gmail_client.get_full_batch(candidate_ids)}

        billing: dict[str, ExtractedInvoiceData] = {}
        for name, group in groups.items():
            try:
                found = await self._classify_group(group, bodies)
            except (AuthenticationError, ConfigurationError):
                raise
            except (BillScannerError, ValueError) as exc:
                logger.warning("catalog_classification_failed", service=name, error=str(exc))
                continue
            if found is not None:
                billing[name] = found

        self.ledger.mark_processed(
            [
                ProcessedMessageRecord(user_id=user_id, message_id=e.message_id, service_name=e.service_name)
                for e in matched
            ]
        )

        return [
            self._to_detected_service(group, billing[name])
            for name, group in groups.items()
            if name in billing
        ]

    def _group_by_service(self, matched: Sequence[EmailInfo]) -> dict[str, _ServiceGroup]:
        groups: dict[str, _ServiceGroup] = {}
        for email in matched:
            preset = self._presets_by_name.get(email.service_name or "")
            if preset is None:
                continue
            groups.setdefault(preset.name, _ServiceGroup(preset=preset)).emails.append(email)

        for group in groups.values():
            group.emails.sort(key=lambda e: e.date, reverse=True)
        return groups

    async def _classify_group(self, group: _ServiceGroup, bodies: dict[str, dict]) -> ExtractedInvoiceData | None:
        preset = group.preset

        for email in group.emails[: self.settings.max_candidates_per_service]:
            message = bodies.get(email.message_id)
            if not message or not message.get("payload"):
                continue

            payload = message["payload"]
            subject = get_header(message, "Subject") or email.subject
            outcome = await self.extractor.extract_invoice(
                html_body=decode_html_for_llm(payload, self.settings.html_max_chars),
                plain_text=decode_body(payload),
                subject=subject,
                service_name=preset.name,
                section=preset.section,
            )

            if isinstance(outcome, Billing) and isinstance(outcome.data, ExtractedInvoiceData):
                logger.info(
                    "catalog_billing_found",
                    service=preset.name,
                    message_id=email.message_id,
                    method=outcome.data.extraction_method.value,
                )
                return outcome.data
            if isinstance(outcome, NotBilling):
                logger.debug("catalog_candidate_discarded", service=preset.name, subject=subject, reason=outcome.reason)
            elif isinstance(outcome, ProviderError):
                logger.warning("catalog_candidate_unclassified", service=preset.name, kind=outcome.kind.value)

        return None

    def _to_detected_service(self, group: _ServiceGroup, data: ExtractedInvoiceData) -> DetectedService:
        preset = group.preset
        latest = group.latest

        frequency = preset.frequency
        if len(group.emails) >= MIN_EMAILS_FOR_FREQUENCY:
            frequency = infer_frequency(len(group.emails), group.emails[-1].date, latest.date)

        return DetectedService(
            name=preset.name,
            provider=preset.provider_label,
            category=preset.category,
            section=preset.section,
            frequency=frequency,
            last_amount=data.amount,
            currency=data.currency,
            due_date=data.due_date,
            period=data.period,
            account_number=data.account_number,
            sender_email=latest.sender_email,
            email_count=len(group.emails),
            latest_email_date=latest.date,
            source=DetectionSource.CATALOG,
            extraction_method=data.extraction_method,
        )

    async def _discover(self, user_id: str, excluded_ids: set[str], newer_than: str) -> list[DetectedService]:
        if self.discovery is None:
            return []
        try:
            return await self.discovery.discover(user_id, excluded_ids, newer_than)
        except AuthenticationError:
            raise
        except (BillScannerError, ValueError) as exc:
            logger.error("discovery_failed", user_id=user_id, error=str(exc))
            return []
