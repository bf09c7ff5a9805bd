"""Mapping of email headers to catalog service names."""

from __future__ import annotations

from collections.abc import Iterable


def match_service(subject: str, sender: str, service_names: Iterable[str]) -> str | None:
    """Return the longest service name found in the subject or sender.

    Longest-first keeps a short name ("Aguas") from pre-empting a more
    specific one ("Aguas Cordobesas").

    Args:
        subject: Subject header.
        sender: Raw From header.
        service_names: Candidate catalog names.

    Returns:
        The matching name, or None.
    """

    haystack = f"{subject} {sender}".casefold()
    for name in sorted(service_names, key=len, reverse=True):
        if name and name.casefold() in haystack:
            return name
    return None
