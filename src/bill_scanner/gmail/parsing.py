"""Helpers for parsing Gmail message metadata into internal models."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parseaddr, parsedate_to_datetime
from typing import Any

from bill_scanner.models import EmailInfo

METADATA_HEADERS: tuple[str, ...] = ("From", "Subject", "Date")


def _header_map(message: dict[str, Any]) -> dict[str, str]:
    payload = message.get("payload") or {}
    headers = payload.get("headers") or []
    result: dict[str, str] = {}
    for h in headers:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            # Gmail can include duplicates; keep the first.
            result.setdefault(name.lower(), value)
    return result


def get_header(message: dict[str, Any], name: str) -> str:
    """Return a header value by case-insensitive name, or an empty string."""
    return _header_map(message).get(name.lower(), "")


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _internal_date(message: dict[str, Any]) -> datetime:
    raw = message.get("internalDate")
    try:
        millis = int(raw) if raw is not None else 0
    except (TypeError, ValueError):
        millis = 0
    return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)


def sender_address(from_raw: str) -> str:
    """Extract the lowercased address from a From header.

    "Netflix <info@mailer.netflix.com>" -> "info@mailer.netflix.com". Headers
    without an angle-bracket address are returned as-is, lowercased.
    """

    _, addr = parseaddr(from_raw or "")
    return (addr or from_raw or "").strip().lower()


def sender_domain(address: str) -> str:
    """Return the domain part of an address, or an empty string."""
    _, _, domain = address.rpartition("@")
    return domain.lower() if "@" in address else ""


def message_to_email_info(message: dict[str, Any]) -> EmailInfo:
    """Convert a Gmail API message (format=metadata or full) to EmailInfo.

    The Date header is preferred; internalDate is the fallback when the header
    is missing or unparseable.
    """

    hm = _header_map(message)
    from_raw = hm.get("from", "")

    return EmailInfo(
        message_id=str(message.get("id") or ""),
        sender=from_raw,
        sender_email=sender_address(from_raw),
        subject=hm.get("subject", ""),
        date=_parse_date(hm.get("date")) or _internal_date(message),
    )
