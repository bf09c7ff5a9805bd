"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any

import httplib2
import pytest
from googleapiclient.errors import HttpError


def make_http_error(status: int, reason: str = "") -> HttpError:
    """Build a googleapiclient HttpError the way the library raises it."""

    content = json.dumps(
        {"error": {"code": status, "message": reason or "error", "errors": [{"reason": reason}]}}
    ).encode("utf-8")
    return HttpError(httplib2.Response({"status": status}), content)


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def make_message(
    message_id: str,
    *,
    sender: str,
    subject: str,
    date: datetime,
    html: str | None = None,
    text: str | None = None,
) -> dict[str, Any]:
    """Build a Gmail API message resource (format=full)."""

    headers = [
        {"name": "From", "value": sender},
        {"name": "Subject", "value": subject},
        {"name": "Date", "value": format_datetime(date)},
        {"name": "To", "value": "me@example.com"},
    ]
    parts = []
    if text is not None:
        parts.append({"mimeType": "text/plain", "body": {"data": _b64(text)}})
    if html is not None:
        parts.append({"mimeType": "text/html", "body": {"data": _b64(html)}})

    return {
        "id": message_id,
        "threadId": f"t-{message_id}",
        "internalDate": str(int(date.timestamp() * 1000)),
        "payload": {"mimeType": "multipart/alternative", "headers": headers, "body": {}, "parts": parts},
    }


class _Request:
    def __init__(self, fn: Callable[[], Any]) -> None:
        self._fn = fn

    def execute(self, **kwargs: Any) -> Any:
        return self._fn()


class FakeMailbox:
    """In-memory stand-in for the Gmail service resource.

    Search results are keyed by a substring of the query; a query returns
    the ids of every key it contains. Errors queued under a message id (or
    under ``"list"``) are raised, one per call, before normal results.
    """

    def __init__(self) -> None:
        self.store: dict[str, dict[str, Any]] = {}
        self.search: dict[str, list[str]] = {}
        self.errors: dict[str, list[Exception]] = {}
        self.calls: list[tuple[str, str]] = []

    def add(self, message: dict[str, Any], *search_keys: str) -> None:
        self.store[message["id"]] = message
        for key in search_keys:
            self.search.setdefault(key, []).append(message["id"])

    # Resource chain: service.users().messages().list(...).execute()
    def users(self) -> "FakeMailbox":
        return self

    def messages(self) -> "FakeMailbox":
        return self

    def list(self, userId: str, q: str, maxResults: int, pageToken: str | None = None) -> _Request:
        return _Request(lambda: self._list(q, maxResults, pageToken))

    def get(self, userId: str, id: str, format: str, metadataHeaders: list[str] | None = None) -> _Request:
        return _Request(lambda: self._get(id, format, metadataHeaders or []))

    def _raise_queued(self, key: str) -> None:
        queued = self.errors.get(key)
        if queued:
            raise queued.pop(0)

    def _list(self, query: str, page_size: int, page_token: str | None) -> dict[str, Any]:
        self.calls.append(("list", query))
        self._raise_queued("list")

        ids: list[str] = []
        for key, key_ids in self.search.items():
            if key in query:
                ids.extend(i for i in key_ids if i not in ids)

        start = int(page_token or 0)
        page = ids[start : start + page_size]
        response: dict[str, Any] = {"messages": [{"id": i, "threadId": f"t-{i}"} for i in page]}
        if start + page_size < len(ids):
            response["nextPageToken"] = str(start + page_size)
        return response

    def _get(self, message_id: str, format: str, headers: list[str]) -> dict[str, Any]:
        self.calls.append((format, message_id))
        self._raise_queued(message_id)

        message = self.store.get(message_id)
        if message is None:
            raise make_http_error(404, "notFound")
        if format == "full":
            return message

        wanted = {h.lower() for h in headers}
        return {
            "id": message["id"],
            "internalDate": message["internalDate"],
            "payload": {
                "headers": [h for h in message["payload"]["headers"] if h["name"].lower() in wanted]
            },
        }

    def calls_of(self, kind: str) -> list[str]:
        return [target for call_kind, target in self.calls if call_kind == kind]


class FakeCompletion:
    """Completion provider returning canned replies.

    ``handler(prompt, schema_model)`` returns a dict validated against the
    schema, or raises.
    """

    def __init__(self, handler: Callable[[str, type], Any]) -> None:
        self.handler = handler
        self.prompts: list[str] = []

    async def complete(self, prompt: str, schema_model: type) -> Any:
        self.prompts.append(prompt)
        reply = self.handler(prompt, schema_model)
        return schema_model.model_validate(reply)


class FakeSleep:
    """Awaitable sleep that records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def mock_settings(tmp_path):
    """Provide settings isolated from the environment and the real filesystem."""
    from bill_scanner.config import Settings

    return Settings(
        _env_file=None,
        ollama_host="http://test:11434",
        ollama_model="test-model",
        gmail_access_token=None,
        ledger_db_path=tmp_path / "ledger.sqlite3",
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def fake_mailbox() -> FakeMailbox:
    return FakeMailbox()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def gmail_client(mock_settings, fake_mailbox, fake_sleep):
    """GmailClient wired to the in-memory mailbox and the fake clock."""
    from bill_scanner.gmail.client import GmailClient

    return GmailClient(settings=mock_settings, service=fake_mailbox, sleep=fake_sleep)


@pytest.fixture
def ledger(mock_settings):
    from bill_scanner.ledger import ProcessedMessageLedger

    repo = ProcessedMessageLedger(mock_settings.ledger_db_path)
    repo.initialize()
    return repo


@pytest.fixture
def message_factory() -> Callable[..., dict[str, Any]]:
    return make_message


@pytest.fixture
def http_error_factory() -> Callable[..., HttpError]:
    return make_http_error


@pytest.fixture
def completion_factory() -> Callable[[Callable[[str, type], Any]], FakeCompletion]:
    return FakeCompletion


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_headers_message() -> dict:
    """Provide a metadata-format message with mixed-case header names."""
    return {
        "id": "msg123456",
        "payload": {
            "headers": [
                {"name": "SUBJECT", "value": "Factura"},
                {"name": "From", "value": "EPEC <facturas@epec.com.ar>"},
            ]
        },
    }


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo logging configuration done by CLI tests so later tests don't write to a closed capture stream."""

    import structlog

    yield
    structlog.reset_defaults()
