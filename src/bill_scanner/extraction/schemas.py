"""Reply schemas for the structured-completion provider.

The field descriptions are sent to the model as part of the JSON schema,
so they are written in the language of the emails.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bill_scanner.models import MAX_AMOUNT, Currency, ExpenseCategory, PERIOD_PATTERN

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

CURRENCY_DESCRIPTION = (
    "Moneda del monto. 'USD' si el email menciona USD, US$, dollars, o el servicio cobra "
    "internacionalmente. 'ARS' si menciona pesos, $ sin calificador USD, o el servicio es argentino."
)


class _ReplySchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @field_validator("due_date", check_fields=False)
    @classmethod
    def _calendar_date(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            date.fromisoformat(value)
        return value

    def parsed_due_date(self) -> Optional[date]:
        due = getattr(self, "due_date", None)
        return date.fromisoformat(due) if due else None


class CatalogInvoiceSchema(_ReplySchema):
    """Classification and invoice fields for an email from a known provider."""

    is_billing_email: bool = Field(
        description=(
            "true si este email es una factura, cobro, resumen de cuenta o notificación de pago "
            "del servicio indicado. false si es publicidad, newsletter, confirmación de login, "
            "o mención casual del servicio."
        )
    )
    amount: Optional[float] = Field(
        default=None,
        gt=0,
        lt=MAX_AMOUNT,
        description="Monto total a pagar, solo el número sin símbolo $. null si is_billing_email es false.",
    )
    currency: Currency = Field(default=Currency.ARS, description=CURRENCY_DESCRIPTION)
    due_date: Optional[str] = Field(
        default=None,
        pattern=DATE_PATTERN,
        description="Fecha de vencimiento (NO emisión) en formato YYYY-MM-DD. null si is_billing_email es false.",
    )
    period: Optional[str] = Field(
        default=None,
        pattern=PERIOD_PATTERN,
        description="Período de facturación en formato YYYY-MM (ej: 2026-02). null si is_billing_email es false.",
    )
    account_number: Optional[str] = Field(
        default=None,
        max_length=50,
        description="Número de cliente, suministro, NIS o cuenta. null si is_billing_email es false.",
    )


class DiscoverySchema(_ReplySchema):
    """Classification, service identity and invoice fields for an unknown sender."""

    is_billing_email: bool = Field(
        description=(
            "true si este email notifica un cobro, pago procesado, cargo a tarjeta, factura, "
            "renovación de suscripción, o cualquier transacción monetaria. false si es publicidad, "
            "newsletter, notificación de seguridad, actualización de producto, o no implica un cobro."
        )
    )
    service_name: Optional[str] = Field(
        default=None,
        max_length=60,
        description=(
            "Nombre comercial corto del servicio o empresa que cobra. Ej: 'Cursor', 'GitHub', "
            "'AWS', 'Notion'. null si is_billing_email es false."
        ),
    )
    category: Optional[ExpenseCategory] = Field(
        default=None,
        description=(
            "Categoría del servicio. ENTERTAINMENT para streaming/suscripciones digitales. "
            "UTILITIES para servicios públicos. EDUCATION para herramientas de aprendizaje. "
            "HOME para servicios del hogar. OTHER si no encaja. null si is_billing_email es false."
        ),
    )
    amount: Optional[float] = Field(
        default=None,
        gt=0,
        lt=MAX_AMOUNT,
        description="Monto total cobrado, solo el número. null si is_billing_email es false.",
    )
    currency: Currency = Field(default=Currency.ARS, description=CURRENCY_DESCRIPTION)
    due_date: Optional[str] = Field(
        default=None,
        pattern=DATE_PATTERN,
        description="Fecha del cobro o vencimiento en formato YYYY-MM-DD. null si is_billing_email es false.",
    )
    period: Optional[str] = Field(
        default=None,
        pattern=PERIOD_PATTERN,
        description="Período facturado en formato YYYY-MM. null si is_billing_email es false.",
    )
