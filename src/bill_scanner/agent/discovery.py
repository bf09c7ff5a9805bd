"""Discovery of billing senders that are not in the catalog.

A broad keyword search collects recent billing-looking messages, groups them
by sender and asks the completion provider to identify the service behind
each frequent sender's most recent message.
"""

from __future__ import annotations

import asyncio
from collections.abc import Collection, Sequence
from typing import Any

import structlog

from bill_scanner.config import Settings
from bill_scanner.exceptions import AuthenticationError, BillScannerError, ConfigurationError
from bill_scanner.extraction import Billing, InvoiceExtractor, NotBilling, ProviderError
from bill_scanner.gmail.body import decode_body, decode_html_for_llm
from bill_scanner.gmail.client import GmailClient
from bill_scanner.gmail.parsing import get_header, message_to_email_info, sender_domain
from bill_scanner.ledger import ProcessedMessageLedger
from bill_scanner.models import (
    DetectedService,
    DetectionSource,
    DiscoveredServiceData,
    EmailInfo,
    ExpenseCategory,
    ExtractionMethod,
    Frequency,
    ProcessedMessageRecord,
    Section,
)
from bill_scanner.utils import Sleep

logger = structlog.get_logger()

DISCOVERY_KEYWORDS = (
    "(receipt OR invoice OR payment OR charge OR factura OR cobro OR cargo "
    "OR recibo OR suscripción OR subscription)"
)

# Platforms whose mail matches billing keywords but never carries a bill.
NON_BILLING_DOMAINS: frozenset[str] = frozenset(
    {
        "accounts.google.com",
        "googlemail.com",
        "facebookmail.com",
        "twitter.com",
        "x.com",
        "linkedin.com",
        "pinterest.com",
        "reddit.com",
        "quora.com",
        "medium.com",
    }
)


def build_discovery_query(newer_than: str) -> str:
    """Return the broad billing search used by discovery."""
    return f"{DISCOVERY_KEYWORDS} newer_than:{newer_than}"


def is_non_billing_sender(sender_email: str) -> bool:
    return sender_domain(sender_email) in NON_BILLING_DOMAINS


def group_by_sender(emails: Sequence[EmailInfo]) -> dict[str, list[EmailInfo]]:
    """Group emails by normalized sender address, newest first within a group.

    Emails without a sender and emails from denylisted platforms are dropped.
    """

    groups: dict[str, list[EmailInfo]] = {}
    for email in emails:
        if not email.sender_email or is_non_billing_sender(email.sender_email):
            continue
        groups.setdefault(email.sender_email, []).append(email)

    for group in groups.values():
        group.sort(key=lambda e: e.date, reverse=True)
    return groups


def rank_senders(
    groups: dict[str, list[EmailInfo]],
    limit: int,
) -> list[tuple[str, list[EmailInfo]]]:
    """Return the ``limit`` senders with the most emails."""
    return sorted(groups.items(), key=lambda item: len(item[1]), reverse=True)[:limit]


class DiscoveryScanner:
    """Find recurring billing relationships outside the catalog."""

    def __init__(
        self,
        gmail: GmailClient,
        extractor: InvoiceExtractor,
        ledger: ProcessedMessageLedger,
        settings: Settings | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        from bill_scanner.config import get_settings

        self.settings = settings or get_settings()
        self._sleep = sleep
        self.gmail = gmail
        self.extractor = extractor
        self.ledger = ledger

    async def discover(
        self,
        user_id: str,
        excluded_ids: Collection[str] = frozenset(),
        newer_than: str | None = None,
    ) -> list[DetectedService]:
        """Run the discovery pass.

        Args:
            user_id: Owner of the mailbox, for the ledger.
            excluded_ids: Message ids already claimed by the catalog scan.
            newer_than: Gmail lookback window, e.g. "3m".

        Returns:
            Discovered services, one per distinct service name.
        """

        query = build_discovery_query(newer_than or self.settings.default_newer_than)
        listed = await self._list_ids(query)

        candidates = [mid for mid in dict.fromkeys(listed) if mid not in excluded_ids]
        processed = self.ledger.processed_subset(user_id, candidates)
        new_ids = [mid for mid in candidates if mid not in processed]

        logger.info(
            "discovery_candidates",
            listed=len(listed),
            excluded=len(listed) - len(candidates),
            already_processed=len(processed),
            new=len(new_ids),
        )
        if not new_ids:
            return []

        metadata = await self.gmail.get_metadata_batch(new_ids)
        emails = [message_to_email_info(m) for m in metadata]

        top_senders = rank_senders(group_by_sender(emails), self.settings.discovery_max_senders)
        latest_ids = [group[0].message_id for _, group in top_senders]
        bodies = {m.get("id"): m for m in await self.gmail.get_full_batch(latest_ids)}

        discovered: list[DetectedService] = []
        seen_names: set[str] = set()

        try:
            for sender_email, group in top_senders:
                message = bodies.get(group[0].message_id)
                if not message or not message.get("payload"):
                    continue

                try:
                    data = await self._classify(message, sender_email)
                    if data is None:
                        continue
                    service = _to_detected_service(data, sender_email, group)
                except (AuthenticationError, ConfigurationError):
                    raise
                except (BillScannerError, ValueError) as exc:
                    logger.warning("discovery_sender_skipped", sender=sender_email, reason="error", error=str(exc))
                    continue

                key = service.name.casefold()
                if key in seen_names:
                    logger.debug("discovery_duplicate_service", service=service.name, sender=sender_email)
                    continue
                seen_names.add(key)

                logger.info(
                    "discovery_service_found",
                    service=service.name,
                    sender=sender_email,
                    email_count=len(group),
                )
                discovered.append(service)
        finally:
            self.ledger.mark_processed(
                [ProcessedMessageRecord(user_id=user_id, message_id=email.message_id) for email in emails]
            )

        return discovered

    async def _list_ids(self, query: str) -> list[str]:
        max_messages = self.settings.discovery_max_messages
        ids: list[str] = []
        page_token: str | None = None

        logger.debug("discovery_query", query=query)
        while True:
            page = await self.gmail.list_messages(
                query,
                page_size=self.settings.discovery_page_size,
                page_token=page_token,
            )
            ids.extend(page.ids)
            page_token = page.next_page_token
            if not page_token or len(ids) >= max_messages:
                break
            await self._sleep(self.settings.gmail_query_delay_seconds)

        return ids[:max_messages]

    async def _classify(self, message: dict[str, Any], sender_email: str) -> DiscoveredServiceData | None:
        payload = message["payload"]
        outcome = await self.extractor.extract_discovery(
            html_body=decode_html_for_llm(payload, self.settings.html_max_chars),
            plain_text=decode_body(payload),
            subject=get_header(message, "Subject"),
            sender_email=sender_email,
        )

        if isinstance(outcome, Billing) and isinstance(outcome.data, DiscoveredServiceData):
            return outcome.data
        if isinstance(outcome, ProviderError):
            logger.warning("discovery_sender_skipped", sender=sender_email, reason=f"provider_{outcome.kind.value}")
        elif isinstance(outcome, NotBilling):
            logger.debug("discovery_sender_skipped", sender=sender_email, reason=outcome.reason)
        return None


def _to_detected_service(
    data: DiscoveredServiceData,
    sender_email: str,
    group: Sequence[EmailInfo],
) -> DetectedService:
    name = data.service_name or sender_email
    return DetectedService(
        name=name,
        provider=name,
        category=data.category or ExpenseCategory.OTHER,
        section=Section.OTHER,
        frequency=Frequency.MONTHLY,
        last_amount=data.amount,
        currency=data.currency,
        due_date=data.due_date,
        period=data.period,
        account_number=None,
        sender_email=sender_email,
        email_count=len(group),
        latest_email_date=group[0].date,
        source=DetectionSource.DISCOVERY,
        extraction_method=ExtractionMethod.LLM,
    )
