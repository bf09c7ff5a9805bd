"""Unit tests for Gmail client."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from bill_scanner.exceptions import (
    AuthenticationError,
    ConfigurationError,
    GmailAPIError,
    RateLimitExceededError,
)
from bill_scanner.gmail.client import GmailClient, to_gmail_error

WHEN = datetime(2026, 2, 1, tzinfo=timezone.utc)


def _seed(fake_mailbox, message_factory, count: int) -> list[str]:
    ids = []
    for i in range(count):
        message = message_factory(
            f"m{i}",
            sender="Netflix <info@mailer.netflix.com>",
            subject=f"Recibo {i}",
            date=WHEN - timedelta(days=i),
            text="Gracias",
        )
        fake_mailbox.add(message, "Netflix")
        ids.append(message["id"])
    return ids


class TestGmailClient:
    """Test suite for GmailClient class."""

    def test_gmail_client_initialization(self, mock_settings) -> None:
        """Test that Gmail client is properly initialized."""
        client = GmailClient(settings=mock_settings)

        assert client.settings is mock_settings
        assert client._service is None
        assert client.retry_policy.max_retries == 3

    @pytest.mark.asyncio
    async def test_missing_access_token_raises(self, mock_settings) -> None:
        """Test that calls fail fast when no access token is configured."""
        client = GmailClient(settings=mock_settings)

        with pytest.raises(ConfigurationError):
            await client.list_messages("factura")

    @pytest.mark.asyncio
    async def test_list_messages_pages(self, gmail_client, fake_mailbox, message_factory) -> None:
        _seed(fake_mailbox, message_factory, 3)

        first = await gmail_client.list_messages("(Netflix) (cobro)", page_size=2)
        second = await gmail_client.list_messages("(Netflix) (cobro)", page_size=2, page_token=first.next_page_token)

        assert first.ids == ["m0", "m1"]
        assert first.next_page_token == "2"
        assert second.ids == ["m2"]
        assert second.next_page_token is None

    @pytest.mark.asyncio
    async def test_get_metadata_returns_allow_listed_headers(self, gmail_client, fake_mailbox, message_factory) -> None:
        _seed(fake_mailbox, message_factory, 1)

        message = await gmail_client.get_metadata("m0")

        names = {h["name"] for h in message["payload"]["headers"]}
        assert names == {"From", "Subject", "Date"}

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried_with_backoff(
        self, gmail_client, fake_mailbox, message_factory, fake_sleep, http_error_factory
    ) -> None:
        _seed(fake_mailbox, message_factory, 1)
        fake_mailbox.errors["m0"] = [http_error_factory(429), http_error_factory(429)]

        message = await gmail_client.get_full("m0")

        assert message["id"] == "m0"
        assert fake_sleep.delays == [1.0, 2.0]
        assert fake_mailbox.calls_of("full") == ["m0", "m0", "m0"]

    @pytest.mark.asyncio
    async def test_rate_limit_exhaustion_raises(
        self, gmail_client, fake_mailbox, message_factory, fake_sleep, http_error_factory
    ) -> None:
        _seed(fake_mailbox, message_factory, 1)
        fake_mailbox.errors["m0"] = [http_error_factory(429) for _ in range(4)]

        with pytest.raises(RateLimitExceededError):
            await gmail_client.get_full("m0")

        assert fake_sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(
        self, gmail_client, fake_mailbox, message_factory, fake_sleep, http_error_factory
    ) -> None:
        _seed(fake_mailbox, message_factory, 1)
        fake_mailbox.errors["m0"] = [http_error_factory(500, "backendError")]

        with pytest.raises(GmailAPIError) as excinfo:
            await gmail_client.get_full("m0")

        assert excinfo.value.status == 500
        assert "backendError" in excinfo.value.body
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_unauthorized_raises_authentication_error(
        self, gmail_client, fake_mailbox, http_error_factory
    ) -> None:
        fake_mailbox.errors["list"] = [http_error_factory(401, "authError")]

        with pytest.raises(AuthenticationError):
            await gmail_client.list_messages("factura")

    @pytest.mark.asyncio
    async def test_fetch_in_batches_keeps_order_and_pauses(
        self, gmail_client, fake_mailbox, message_factory, fake_sleep
    ) -> None:
        ids = _seed(fake_mailbox, message_factory, 12)

        messages = await gmail_client.get_metadata_batch(ids)

        assert [m["id"] for m in messages] == ids
        # 12 ids in batches of 5: two pauses.
        assert fake_sleep.delays == [0.15, 0.15]

    @pytest.mark.asyncio
    async def test_fetch_in_batches_skips_failed_items(
        self, gmail_client, fake_mailbox, message_factory, http_error_factory
    ) -> None:
        ids = _seed(fake_mailbox, message_factory, 3)
        fake_mailbox.errors["m1"] = [http_error_factory(404, "notFound")]

        messages = await gmail_client.get_full_batch(ids)

        assert [m["id"] for m in messages] == ["m0", "m2"]

    @pytest.mark.asyncio
    async def test_fetch_in_batches_aborts_on_authentication_failure(
        self, gmail_client, fake_mailbox, message_factory, http_error_factory
    ) -> None:
        ids = _seed(fake_mailbox, message_factory, 3)
        fake_mailbox.errors["m2"] = [http_error_factory(401)]

        with pytest.raises(AuthenticationError):
            await gmail_client.get_full_batch(ids)


class TestToGmailError:
    def test_403_rate_limit_reason_is_rate_limit(self, http_error_factory) -> None:
        error = to_gmail_error(http_error_factory(403, "userRateLimitExceeded"), "list")
        assert isinstance(error, RateLimitExceededError)

    def test_plain_403_is_permanent(self, http_error_factory) -> None:
        error = to_gmail_error(http_error_factory(403, "forbidden"), "list")
        assert type(error) is GmailAPIError
        assert error.status == 403
