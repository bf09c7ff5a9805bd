"""Deterministic invoice field extraction for Spanish-language bills.

These parsers are the fallback of catalog-mode extraction when the
completion provider is unavailable. All of them are pure, case-insensitive
and pattern-ordered: the first pattern with a valid match wins.
"""

from __future__ import annotations

import re
from datetime import date

from bill_scanner.catalog.regions import normalize_text
from bill_scanner.models import MAX_AMOUNT

MONTHS: dict[str, int] = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

_MIN_YEAR = 2000
_MAX_YEAR = 2099

# ─── Amount ──────────────────────────────────────────────────────────

_CURRENCY_PREFIX = r"(?:US\$|U\$S|USD|ARS|\$)"
_NUMBER = r"(\d[\d.,]*\d|\d)"

AMOUNT_PATTERNS: tuple[re.Pattern[str], ...] = (
    # "$58.099,00", "$ 58.099", "US$ 12.99", "ARS 1.234"
    re.compile(_CURRENCY_PREFIX + r"\s?" + _NUMBER, re.IGNORECASE),
    # "Total a pagar: $58.099", "Saldo: $ 58.099,00"
    re.compile(
        r"(?:total|saldo|importe|monto|pagar)[^\d$]{0,20}?" + _CURRENCY_PREFIX + r"\s?" + _NUMBER,
        re.IGNORECASE,
    ),
)


def parse_amount(raw: str) -> float | None:
    """Parse an amount written with either Argentine or US separators.

    With both separators present, the last one is the decimal point. With a
    single kind of separator, three digits after the last one (or more than
    one occurrence) means a thousands separator: "58.099" is 58099 while
    "58.09" is 58.09.
    """

    s = (raw or "").strip()
    if not s:
        return None

    last_comma = s.rfind(",")
    last_dot = s.rfind(".")
    if last_comma >= 0 and last_dot >= 0:
        if last_comma > last_dot:
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif last_comma >= 0 or last_dot >= 0:
        sep = "," if last_comma >= 0 else "."
        parts = s.split(sep)
        if len(parts) > 2 or len(parts[-1]) == 3:
            s = s.replace(sep, "")
        else:
            s = s.replace(sep, ".")

    try:
        return round(float(s), 2)
    except ValueError:
        return None


def _is_plausible_amount(value: float | None) -> bool:
    return value is not None and 0 < value < MAX_AMOUNT


def extract_amount(text: str) -> float | None:
    """Return the largest plausible currency amount in the text.

    The invoice total is assumed to be the largest figure on the page.
    """

    amounts: list[float] = []
    for pattern in AMOUNT_PATTERNS:
        for match in pattern.finditer(text):
            value = parse_amount(match.group(1))
            if _is_plausible_amount(value):
                amounts.append(value)  # type: ignore[arg-type]

    return max(amounts) if amounts else None


# ─── Due date ────────────────────────────────────────────────────────

_NUMERIC_DATE = r"(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})\b"

DUE_DATE_PATTERNS: tuple[re.Pattern[str], ...] = (
    # "Vencimiento: 02/03/26", "Vence: 02/03/2026", "Vto: 02-03-2026"
    re.compile(r"(?:vencimiento|vence|vto\.?)[:\s]+" + _NUMERIC_DATE, re.IGNORECASE),
    # "Fecha de vencimiento 02/03/2026"
    re.compile(r"fecha\s+de\s+vencimiento[:\s]+" + _NUMERIC_DATE, re.IGNORECASE),
    # Date a few characters after the keyword: "Vencimiento de la factura 02/03/2026"
    re.compile(r"(?:vencimiento|vence)[\s\S]{0,30}?" + _NUMERIC_DATE, re.IGNORECASE),
)

VERBAL_DUE_DATE = re.compile(
    r"(?:vencimiento|vence)[\s\S]{0,30}?(\d{1,2})\s+de\s+([^\W\d_]+)(?:\s+(?:de|del)\s+(\d{4}))?",
    re.IGNORECASE,
)


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _month_number(name: str) -> int | None:
    return MONTHS.get(normalize_text(name))


def extract_due_date(text: str, today: date | None = None) -> date | None:
    """Extract the due date following a "vencimiento"/"vence" keyword.

    Args:
        text: Plain text to scan.
        today: Reference date for verbal dates without a year.

    Returns:
        The due date, or None.
    """

    for pattern in DUE_DATE_PATTERNS:
        for match in pattern.finditer(text):
            day, month, year = (int(g) for g in match.groups())
            if year < 100:
                year += 2000
            if not _MIN_YEAR <= year <= _MAX_YEAR:
                continue
            parsed = _safe_date(year, month, day)
            if parsed is not None:
                return parsed

    for match in VERBAL_DUE_DATE.finditer(text):
        month = _month_number(match.group(2))
        if month is None:
            continue
        year = int(match.group(3)) if match.group(3) else (today or date.today()).year
        if not _MIN_YEAR <= year <= _MAX_YEAR:
            continue
        parsed = _safe_date(year, month, int(match.group(1)))
        if parsed is not None:
            return parsed

    return None


# ─── Billing period ──────────────────────────────────────────────────

_PERIOD_KEYWORD = r"(?:per[ií]odo|\bmes)(?:\s+de)?[:\s]+"

PERIOD_MONTH_YEAR = re.compile(_PERIOD_KEYWORD + r"(\d{1,2})[/\-](\d{4})\b", re.IGNORECASE)
PERIOD_YEAR_MONTH = re.compile(_PERIOD_KEYWORD + r"(\d{4})[/\-](\d{1,2})\b", re.IGNORECASE)
PERIOD_VERBAL_PATTERNS: tuple[re.Pattern[str], ...] = (
    # "Mes: Febrero 2026", "Factura del mes de febrero de 2026"
    re.compile(r"\bmes(?:\s+de)?[:\s]+([^\W\d_]+)(?:\s+de)?\s+(\d{4})", re.IGNORECASE),
    # "Período Enero 2026"
    re.compile(r"per[ií]odo[:\s]+([^\W\d_]+)(?:\s+de)?\s+(\d{4})", re.IGNORECASE),
)


def _format_period(year: int, month: int) -> str | None:
    if 1 <= month <= 12 and _MIN_YEAR <= year <= _MAX_YEAR:
        return f"{year:04d}-{month:02d}"
    return None


def extract_period(text: str) -> str | None:
    """Extract the billing period as "YYYY-MM"."""

    for match in PERIOD_MONTH_YEAR.finditer(text):
        period = _format_period(int(match.group(2)), int(match.group(1)))
        if period:
            return period

    for match in PERIOD_YEAR_MONTH.finditer(text):
        period = _format_period(int(match.group(1)), int(match.group(2)))
        if period:
            return period

    for pattern in PERIOD_VERBAL_PATTERNS:
        for match in pattern.finditer(text):
            month = _month_number(match.group(1))
            if month is None:
                continue
            period = _format_period(int(match.group(2)), month)
            if period:
                return period

    return None


# ─── Account number ──────────────────────────────────────────────────

_NUMBER_ABBR = r"n(?:ro\.?|°|º|úmero|umero)\s*(?:de\s+)?"
_TOKEN = r"([A-Za-z0-9][A-Za-z0-9\-/.]*)"

ACCOUNT_NUMBER_PATTERNS: tuple[re.Pattern[str], ...] = (
    # "Nro. Cliente: 123456", "N° de cliente 123456"
    re.compile(_NUMBER_ABBR + r"cliente[:\s]+" + _TOKEN, re.IGNORECASE),
    # "NIS: 123456"
    re.compile(r"\bNIS[:\s]+(\d[\d\-/.]*)", re.IGNORECASE),
    # "Nro. Suministro: 123456"
    re.compile(_NUMBER_ABBR + r"suministro[:\s]+" + _TOKEN, re.IGNORECASE),
    # "Nro. de cuenta: 123456"
    re.compile(_NUMBER_ABBR + r"cuenta[:\s]+" + _TOKEN, re.IGNORECASE),
)

# Bare keywords; the token must contain a digit ("cuenta de Netflix" is prose).
LOOSE_ACCOUNT_NUMBER_PATTERNS: tuple[re.Pattern[str], ...] = (
    # "Cuenta Nro: 123456", "Cuenta: 123456"
    re.compile(r"\bcuenta\s*(?:n(?:ro\.?|°|º)[:\s]*)?[:\s]+" + _TOKEN, re.IGNORECASE),
    # "Cliente: 123456"
    re.compile(r"\bcliente[:\s]+" + _TOKEN, re.IGNORECASE),
)


def extract_account_number(text: str) -> str | None:
    """Extract a client, supply or account number.

    Tokens must be 3 to 50 characters long. After an explicit number label
    ("Nro. de cuenta") any alphanumeric token is accepted; after a bare
    "cuenta" or "cliente" the token must also contain a digit.
    """

    for pattern in ACCOUNT_NUMBER_PATTERNS:
        for match in pattern.finditer(text):
            value = _clean_token(match.group(1))
            if 3 <= len(value) <= 50:
                return value

    for pattern in LOOSE_ACCOUNT_NUMBER_PATTERNS:
        for match in pattern.finditer(text):
            value = _clean_token(match.group(1))
            if 3 <= len(value) <= 50 and any(ch.isdigit() for ch in value):
                return value
    return None


def _clean_token(raw: str) -> str:
    return raw.strip().rstrip("./-")
