"""Custom exceptions for Bill Scanner."""


class BillScannerError(Exception):
    """Base exception for all Bill Scanner errors."""


class GmailAPIError(BillScannerError):
    """Exception raised for Gmail API related errors.

    Carries the HTTP status (when known) and the raw response body.
    """

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class RateLimitExceededError(GmailAPIError):
    """Exception raised when rate-limit retries are exhausted."""


class AuthenticationError(GmailAPIError):
    """Exception raised for authentication failures."""


class ConfigurationError(BillScannerError):
    """Exception raised for configuration related errors."""


class CompletionError(BillScannerError):
    """Base exception for structured-completion provider failures."""


class CompletionTimeoutError(CompletionError):
    """Exception raised when a completion call exceeds its deadline."""


class CompletionProviderError(CompletionError):
    """Exception raised when the completion provider is unreachable or fails."""


class CompletionSchemaError(CompletionError):
    """Exception raised when provider output does not match the schema."""


class LedgerError(BillScannerError):
    """Exception raised for idempotency ledger failures."""
