"""Data models for Bill Scanner.

This module contains Pydantic models for data validation and serialization.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from bill_scanner.models.email_info import EmailInfo

MAX_AMOUNT = 10_000_000

PERIOD_PATTERN = r"^\d{4}-\d{2}$"


class Section(str, Enum):
    """Catalog section; drives search keywords and classification strictness."""

    UTILITIES = "utilities"
    TELECOM = "telecom"
    STREAMING = "streaming"
    TAXES = "taxes"
    HOME = "home"
    HEALTH = "health"
    TRANSPORT = "transport"
    OTHER = "other"


class ExpenseCategory(str, Enum):
    """Expense category enumeration."""

    GROCERIES = "GROCERIES"
    UTILITIES = "UTILITIES"
    RENT = "RENT"
    FOOD = "FOOD"
    TRANSPORT = "TRANSPORT"
    HEALTH = "HEALTH"
    ENTERTAINMENT = "ENTERTAINMENT"
    EDUCATION = "EDUCATION"
    HOME = "HOME"
    OTHER = "OTHER"


class Frequency(str, Enum):
    """Recurring billing frequency enumeration."""

    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    BIMONTHLY = "BIMONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class Currency(str, Enum):
    """Invoice currency enumeration."""

    ARS = "ARS"
    USD = "USD"


LOCAL_CURRENCY = Currency.ARS


class ExtractionMethod(str, Enum):
    """How invoice fields were obtained."""

    LLM = "llm"
    REGEX = "regex"


class ServicePreset(BaseModel):
    """A known recurring-billing provider from the static catalog."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Display name, also used as search keyword")
    provider: Optional[str] = Field(default=None, description="Company behind the service")
    category: ExpenseCategory = Field(description="Expense category")
    frequency: Frequency = Field(description="Expected billing frequency")
    regions: tuple[str, ...] = Field(
        default=(),
        description="Provinces where the service operates; empty means nationwide",
    )
    section: Section = Field(description="Catalog section")
    scannable: bool = Field(
        default=True,
        description="Whether the name is specific enough to search the mailbox for",
    )

    @property
    def provider_label(self) -> str:
        return self.provider or self.name

    @property
    def is_nationwide(self) -> bool:
        return not self.regions


class ServiceQuery(BaseModel):
    """A compiled mailbox search for one catalog section."""

    section: Section = Field(description="Catalog section the query covers")
    query: str = Field(description="Gmail search expression")
    service_names: list[str] = Field(description="Preset names included in the query")


class ExtractedInvoiceData(BaseModel):
    """Invoice fields extracted from a single catalog-matched email."""

    is_billing_email: bool = Field(description="Whether the email is an invoice or charge")
    amount: Optional[float] = Field(default=None, gt=0, lt=MAX_AMOUNT, description="Total amount")
    currency: Currency = Field(default=LOCAL_CURRENCY, description="Amount currency")
    due_date: Optional[date] = Field(default=None, description="Due date")
    period: Optional[str] = Field(
        default=None, pattern=PERIOD_PATTERN, description="Billing period as YYYY-MM"
    )
    account_number: Optional[str] = Field(
        default=None, max_length=50, description="Client, supply or account number"
    )
    extraction_method: ExtractionMethod = Field(description="LLM or regex fallback")


class DiscoveredServiceData(BaseModel):
    """Classification and invoice fields for an email from an unknown sender."""

    is_billing_email: bool = Field(description="Whether the email notifies a charge")
    service_name: Optional[str] = Field(default=None, max_length=60, description="Short brand name")
    category: Optional[ExpenseCategory] = Field(default=None, description="Coarse category")
    amount: Optional[float] = Field(default=None, gt=0, lt=MAX_AMOUNT, description="Amount charged")
    currency: Currency = Field(default=LOCAL_CURRENCY, description="Amount currency")
    due_date: Optional[date] = Field(default=None, description="Charge or due date")
    period: Optional[str] = Field(
        default=None, pattern=PERIOD_PATTERN, description="Billing period as YYYY-MM"
    )


class DetectionSource(str, Enum):
    """Which scan path produced a detected service."""

    CATALOG = "catalog"
    DISCOVERY = "discovery"


class DetectedService(BaseModel):
    """One inferred recurring billing relationship."""

    name: str = Field(description="Service name (catalog name or inferred brand)")
    provider: str = Field(description="Provider label")
    category: ExpenseCategory = Field(description="Expense category")
    section: Section = Field(description="Catalog section, OTHER for discovered services")
    frequency: Frequency = Field(description="Inferred or default billing frequency")
    last_amount: Optional[float] = Field(default=None, description="Most recent invoice amount")
    currency: Currency = Field(default=LOCAL_CURRENCY, description="Currency of last_amount")
    due_date: Optional[date] = Field(default=None, description="Most recent due date")
    period: Optional[str] = Field(default=None, description="Most recent billing period")
    account_number: Optional[str] = Field(default=None, description="Client or account number")
    sender_email: str = Field(description="Sender address of the supporting emails")
    email_count: int = Field(ge=1, description="Number of supporting emails")
    latest_email_date: datetime = Field(description="Timestamp of the most recent supporting email")
    source: DetectionSource = Field(default=DetectionSource.CATALOG)
    extraction_method: Optional[ExtractionMethod] = Field(default=None)


class ProcessedMessageRecord(BaseModel):
    """Ledger row: a message id already considered for a user."""

    user_id: str = Field(description="Owner of the mailbox")
    message_id: str = Field(description="Gmail message ID")
    service_name: Optional[str] = Field(default=None, description="Matched catalog name, if any")
    processed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Write timestamp",
    )


__all__ = [
    "MAX_AMOUNT",
    "LOCAL_CURRENCY",
    "Currency",
    "DetectedService",
    "DetectionSource",
    "DiscoveredServiceData",
    "EmailInfo",
    "ExpenseCategory",
    "ExtractedInvoiceData",
    "ExtractionMethod",
    "Frequency",
    "ProcessedMessageRecord",
    "Section",
    "ServicePreset",
    "ServiceQuery",
]
