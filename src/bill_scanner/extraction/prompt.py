"""Prompt contract for classifying billing emails and extracting invoice fields."""

from __future__ import annotations

PROMPT_VERSION = "bill-extract-v1"

MAX_BODY_CHARS = 6000


def build_classification_criteria(service_name: str, *, strict: bool) -> str:
    """Return the step-1 rules for a catalog email.

    Strict criteria accept only formal invoices issued by the provider itself;
    loose criteria also accept receipts, renewals and card charges.
    """

    if strict:
        return (
            f'- is_billing_email: true SOLO si el email es una factura, cobro, resumen de cuenta o '
            f'notificación de pago DIRECTAMENTE de "{service_name}".\n'
            f"- is_billing_email: false si es publicidad, newsletter, spam, confirmación de cuenta, "
            f'o simplemente menciona "{service_name}" sin ser un cobro.'
        )

    return (
        f"- is_billing_email: true si el email indica que se realizó un cobro, pago, cargo, "
        f"renovación de suscripción, recibo de pago, o cualquier transacción monetaria "
        f'relacionada con "{service_name}". Incluye "payment receipt", "renewal", '
        f'"tu pago fue procesado", "cargo realizado", "suscripción renovada", etc.\n'
        f"- is_billing_email: false si es publicidad, newsletter, recomendaciones de contenido, "
        f"novedades del catálogo, o no tiene relación con un cobro/pago."
    )


def build_catalog_prompt(
    *,
    body: str,
    subject: str,
    service_name: str,
    strict: bool,
    max_body_chars: int = MAX_BODY_CHARS,
) -> str:
    """Build the prompt for an email already matched to a catalog provider.

    Args:
        body: Structure-preserving HTML (or plain text) of the email.
        subject: Email subject.
        service_name: Matched catalog name.
        strict: Whether to apply strict classification criteria.
        max_body_chars: Body slice length.

    Returns:
        Prompt string.
    """

    criteria = build_classification_criteria(service_name, strict=strict)

    return (
        "Sos un extractor de datos de facturas y cobros.\n"
        f'Analizá el siguiente email de "{service_name}".\n\n'
        "PASO 1 - CLASIFICACIÓN:\n"
        f"{criteria}\n"
        "- Si is_billing_email es false, poné null en todos los demás campos (excepto currency).\n\n"
        "PASO 2 - EXTRACCIÓN (solo si is_billing_email es true):\n"
        "- amount: monto TOTAL a pagar (no subtotales ni impuestos individuales). Solo el número.\n"
        '- currency: "USD" si el cobro es en dólares (USD, US$, dollars). "ARS" si es en pesos argentinos.\n'
        "- due_date: fecha de VENCIMIENTO o fecha del cobro/pago. Formato YYYY-MM-DD.\n"
        '- period: período que cubre la factura (ej: enero 2026 → "2026-01"). Formato YYYY-MM.\n'
        "- account_number: número de cliente, suministro, NIS o cuenta.\n"
        "- Si un dato no aparece claramente en el email, poné null. No inventes datos.\n\n"
        f"ASUNTO: {subject}\n\n"
        "CONTENIDO DEL EMAIL:\n"
        f"{(body or '')[:max_body_chars]}"
    )


def build_discovery_prompt(
    *,
    body: str,
    subject: str,
    sender_email: str,
    max_body_chars: int = MAX_BODY_CHARS,
) -> str:
    """Build the prompt for an email from a sender outside the catalog."""

    return (
        "Sos un clasificador de emails de cobros y facturación.\n"
        "Analizá el siguiente email y determiná si es una factura, cobro, recibo de pago, "
        "renovación de suscripción o cargo monetario.\n\n"
        "PASO 1 - CLASIFICACIÓN:\n"
        "- is_billing_email: true si el email notifica un cobro, pago procesado, cargo a tarjeta, "
        "factura, renovación de suscripción, o cualquier transacción monetaria.\n"
        "- is_billing_email: false si es publicidad, newsletter, notificación de seguridad, "
        "confirmación de registro/login, actualización de producto, o cualquier email que NO "
        "implique un cobro o pago.\n"
        "- Si is_billing_email es false, poné null en todos los demás campos (excepto currency).\n\n"
        "PASO 2 - IDENTIFICACIÓN (solo si is_billing_email es true):\n"
        "- service_name: nombre comercial corto del servicio o empresa que cobra "
        '(ej: "Cursor", "GitHub", "AWS", "Notion"). No uses el nombre legal completo.\n'
        "- category: categoría que mejor describe el servicio.\n"
        "- amount: monto total cobrado (solo el número).\n"
        '- currency: "USD" si el cobro es en dólares (USD, US$, dollars). "ARS" si es en pesos argentinos.\n'
        "- due_date: fecha del cobro o vencimiento. Formato YYYY-MM-DD.\n"
        "- period: período facturado. Formato YYYY-MM.\n"
        "- Si un dato no aparece claramente, poné null. No inventes datos.\n\n"
        f"REMITENTE: {sender_email}\n"
        f"ASUNTO: {subject}\n\n"
        "CONTENIDO DEL EMAIL:\n"
        f"{(body or '')[:max_body_chars]}"
    )
