"""Decoding of Gmail message payloads (format=full) into text.

Two outputs are produced: fully stripped plain text for the regex
extractors, and a structure-preserving HTML snippet for the completion
provider, where totals laid out in tables must stay aligned with their
labels.
"""

from __future__ import annotations

import base64
import re
from typing import Any

from bs4 import BeautifulSoup

_BLOCK_TAGS = ["br", "p", "div", "tr", "li", "h1", "h2", "h3", "h4", "h5", "h6", "table"]
_SPACES_RE = re.compile(r"[ \t\xa0]+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


def decode_base64url(data: str) -> str:
    """Decode Gmail's base64url body data to text, tolerating missing padding."""

    padded = data + "=" * (-len(data) % 4)
    raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    return raw.decode("utf-8", errors="replace")


def find_part(payload: dict[str, Any], mime_type: str) -> dict[str, Any] | None:
    """Depth-first search for the first part of ``mime_type`` that carries data."""

    body = payload.get("body") or {}
    if (payload.get("mimeType") or "").lower() == mime_type and body.get("data"):
        return payload

    for part in payload.get("parts") or []:
        found = find_part(part, mime_type)
        if found is not None:
            return found
    return None


def strip_html(html: str) -> str:
    """Convert HTML to plain text keeping line structure."""

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["style", "script", "head"]):
        tag.decompose()
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")
    for tag in soup.find_all("td"):
        tag.insert_before(" ")

    text = soup.get_text()
    text = _SPACES_RE.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _BLANK_LINES_RE.sub("\n", text)
    return text.strip()


def clean_html_for_llm(html: str, max_chars: int = 4000) -> str:
    """Remove style/script blocks but keep table markup, then truncate."""

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["style", "script"]):
        tag.decompose()
    return str(soup)[:max_chars]


def decode_body(payload: dict[str, Any]) -> str:
    """Decode a message payload into plain text.

    Prefers text/plain; falls back to stripped text/html, then to a
    single-part body.
    """

    plain = find_part(payload, "text/plain")
    if plain is not None:
        return decode_base64url(plain["body"]["data"])

    html_part = find_part(payload, "text/html")
    if html_part is not None:
        return strip_html(decode_base64url(html_part["body"]["data"]))

    data = (payload.get("body") or {}).get("data")
    if data:
        decoded = decode_base64url(data)
        if (payload.get("mimeType") or "").lower() == "text/html":
            return strip_html(decoded)
        return decoded

    return ""


def decode_html_for_llm(payload: dict[str, Any], max_chars: int = 4000) -> str:
    """Decode a message payload into cleaned HTML for the completion provider.

    Falls back to plain text when the message has no HTML part.
    """

    html_part = find_part(payload, "text/html")
    if html_part is not None:
        return clean_html_for_llm(decode_base64url(html_part["body"]["data"]), max_chars)

    data = (payload.get("body") or {}).get("data")
    if data and (payload.get("mimeType") or "").lower() == "text/html":
        return clean_html_for_llm(decode_base64url(data), max_chars)

    return decode_body(payload)
