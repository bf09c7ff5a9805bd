"""Gmail API client implementation.

This module provides a client for the three mailbox operations the scanner
needs: search listing, metadata fetch and full-message fetch.

Notes:
    The Google API client is synchronous. This project wraps those calls using
    `asyncio.to_thread` so the rest of the codebase can remain async-friendly.
    Credentials are a caller-supplied bearer access token; acquiring or
    refreshing it is the caller's job.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog
from googleapiclient.errors import HttpError

from bill_scanner.config import Settings
from bill_scanner.exceptions import (
    AuthenticationError,
    ConfigurationError,
    GmailAPIError,
    RateLimitExceededError,
)
from bill_scanner.gmail.parsing import METADATA_HEADERS
from bill_scanner.utils import RetryPolicy, Sleep

logger = structlog.get_logger()

T = TypeVar("T")

_RATE_LIMIT_REASON_RE = re.compile(r"(user)?RateLimitExceeded|quotaExceeded", re.IGNORECASE)


@dataclass(frozen=True)
class MessagePage:
    """One page of a messages.list response."""

    ids: list[str] = field(default_factory=list)
    next_page_token: str | None = None


def is_rate_limited(exc: BaseException) -> bool:
    """Retry predicate: only rate-limit signals are transient."""
    return isinstance(exc, RateLimitExceededError)


def to_gmail_error(exc: HttpError, operation: str) -> GmailAPIError:
    """Convert a googleapiclient HttpError into a typed error."""

    status = getattr(exc.resp, "status", None)
    try:
        status = int(status) if status is not None else None
    except (TypeError, ValueError):
        status = None

    content = exc.content
    body = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else str(content or "")
    message = f"Gmail API error during {operation} ({status}): {body[:500]}"

    if status == 429 or (status == 403 and _RATE_LIMIT_REASON_RE.search(body)):
        return RateLimitExceededError(message, status=status, body=body)
    if status == 401:
        return AuthenticationError(message, status=status, body=body)
    return GmailAPIError(message, status=status, body=body)


class GmailClient:
    """Gmail API client for billing-email retrieval.

    Every call retries on rate-limit responses with exponential backoff; any
    other error aborts that call with a GmailAPIError carrying status and body.
    """

    def __init__(
        self,
        access_token: str | None = None,
        settings: Settings | None = None,
        *,
        service: Any | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize Gmail client.

        Args:
            access_token: Bearer token. Falls back to settings.gmail_access_token.
            settings: Application settings. If None, uses default settings.
            service: Pre-built Gmail service resource (tests inject fakes here).
            retry_policy: Override of the rate-limit retry policy.
            sleep: Awaitable sleep used for backoff and inter-batch delays.
        """
        from bill_scanner.config import get_settings

        self.settings = settings or get_settings()
        self._access_token = access_token or self.settings.gmail_access_token
        self._service: Any | None = service
        self._credentials: Any | None = None
        self._sleep = sleep
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=self.settings.max_retries,
            base_delay=self.settings.retry_base_delay,
            retryable=is_rate_limited,
            sleep=sleep,
        )
        logger.info("gmail_client_initialized", injected_service=service is not None)

    async def list_messages(
        self,
        query: str,
        *,
        page_size: int = 20,
        page_token: str | None = None,
    ) -> MessagePage:
        """List one page of message ids matching a search query.

        Args:
            query: Gmail search query string.
            page_size: Maximum ids in the page.
            page_token: Continuation token from a previous page.

        Returns:
            The page of ids and the next continuation token, if any.

        Raises:
            GmailAPIError: If the API request fails.
        """

        logger.debug("listing_messages", query=query, page_size=page_size, page_token=page_token)

        def request(service: Any) -> Any:
            params: dict[str, Any] = {"userId": "me", "q": query, "maxResults": page_size}
            if page_token:
                params["pageToken"] = page_token
            return service.users().messages().list(**params)

        response = await self._execute("list_messages", request)
        ids = [m["id"] for m in response.get("messages") or [] if m.get("id")]
        return MessagePage(ids=ids, next_page_token=response.get("nextPageToken") or None)

    async def get_metadata(
        self,
        message_id: str,
        headers: Sequence[str] = METADATA_HEADERS,
    ) -> dict[str, Any]:
        """Get a message with only the allow-listed headers.

        Raises:
            GmailAPIError: If the API request fails.
        """

        def request(service: Any) -> Any:
            return (
                service.users()
                .messages()
                .get(userId="me", id=message_id, format="metadata", metadataHeaders=list(headers))
            )

        return await self._execute("get_metadata", request)

    async def get_full(self, message_id: str) -> dict[str, Any]:
        """Get a message with its full MIME payload.

        Raises:
            GmailAPIError: If the API request fails.
        """

        def request(service: Any) -> Any:
            return service.users().messages().get(userId="me", id=message_id, format="full")

        return await self._execute("get_full", request)

    async def fetch_in_batches(
        self,
        message_ids: Sequence[str],
        fetch: Callable[[str], Awaitable[T]],
    ) -> list[T]:
        """Fetch messages in small concurrent batches with a pause in between.

        Results keep the input order. A message whose fetch fails with a
        non-authentication error is logged and left out; an authentication
        failure aborts the whole fetch.

        Args:
            message_ids: Ids to fetch.
            fetch: Per-id coroutine, e.g. ``self.get_metadata``.

        Returns:
            Successfully fetched results in input order.
        """

        batch_size = max(1, self.settings.gmail_batch_size)
        results: list[T] = []

        for start in range(0, len(message_ids), batch_size):
            batch = message_ids[start : start + batch_size]
            outcomes = await asyncio.gather(*(fetch(mid) for mid in batch), return_exceptions=True)

            for message_id, outcome in zip(batch, outcomes):
                if isinstance(outcome, AuthenticationError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    logger.warning("gmail_fetch_failed", message_id=message_id, error=str(outcome))
                    continue
                results.append(outcome)

            if start + batch_size < len(message_ids):
                await self._sleep(self.settings.gmail_batch_delay_seconds)

        return results

    async def get_metadata_batch(self, message_ids: Sequence[str]) -> list[dict[str, Any]]:
        """Batched :meth:`get_metadata` over many ids."""
        return await self.fetch_in_batches(message_ids, self.get_metadata)

    async def get_full_batch(self, message_ids: Sequence[str]) -> list[dict[str, Any]]:
        """Batched :meth:`get_full` over many ids."""
        return await self.fetch_in_batches(message_ids, self.get_full)

    async def _execute(self, operation: str, request_factory: Callable[[Any], Any]) -> dict[str, Any]:
        service = self._get_service()

        def run() -> dict[str, Any]:
            # httplib2 connections are not thread-safe; each call gets its own.
            return request_factory(service).execute(**self._execute_kwargs())

        async def attempt() -> dict[str, Any]:
            try:
                return await asyncio.to_thread(run)
            except HttpError as exc:
                raise to_gmail_error(exc, operation) from exc
            except GmailAPIError:
                raise
            except Exception as exc:  # noqa: BLE001
                raise GmailAPIError(f"Gmail {operation} failed: {exc}") from exc

        return await self.retry_policy.run(attempt, name=f"gmail_{operation}")

    def _execute_kwargs(self) -> dict[str, Any]:
        if self._credentials is None:
            return {}

        import google_auth_httplib2
        import httplib2

        return {"http": google_auth_httplib2.AuthorizedHttp(self._credentials, http=httplib2.Http())}

    def _get_service(self) -> Any:
        if self._service is None:
            if not self._access_token:
                raise ConfigurationError(
                    "No Gmail access token configured. Pass --access-token or set "
                    "BILL_SCANNER_GMAIL_ACCESS_TOKEN."
                )
            self._service = self._build_service(self._access_token)
        return self._service

    def _build_service(self, access_token: str) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from google.oauth2.credentials import Credentials
        from googleapiclient.discovery import build

        self._credentials = Credentials(token=access_token)
        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", credentials=self._credentials, cache_discovery=False)
