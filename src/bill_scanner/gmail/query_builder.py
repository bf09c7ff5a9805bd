"""Gmail search query construction.

Queries use catalog service names as keywords instead of sender domains,
grouped per catalog section so each section can carry its own billing
vocabulary.
"""

from __future__ import annotations

from bill_scanner.catalog import ALL_PRESETS, SECTION_ORDER, applies_to_region, detect_region
from bill_scanner.models import Section, ServicePreset, ServiceQuery

BILLING_KEYWORDS_BY_SECTION: dict[Section, str] = {
    Section.UTILITIES: "factura OR vencimiento OR cuenta OR cobro OR liquidación",
    Section.TELECOM: "factura OR cuenta OR resumen OR cobro",
    Section.STREAMING: "cobro OR cargo OR suscripción OR factura OR receipt OR payment",
    Section.HEALTH: 'factura OR cuota OR "estado de cuenta" OR cobro',
    Section.TAXES: "vencimiento OR boleta OR liquidación OR pago",
}

DEFAULT_BILLING_KEYWORDS = "factura OR cobro OR cuenta"


def _name_term(name: str) -> str:
    # Multi-word names need exact-phrase matching.
    return f'"{name}"' if " " in name else name


def build_service_queries(
    city: str | None,
    newer_than: str | None = "6m",
    presets: tuple[ServicePreset, ...] = ALL_PRESETS,
) -> list[ServiceQuery]:
    """Build one Gmail search query per catalog section.

    Args:
        city: Household city used to resolve the region.
        newer_than: Gmail relative time window (e.g. "7d", "3m"); falsy disables it.
        presets: Catalog to build from.

    Returns:
        Queries in section order; sections without applicable presets are skipped.
    """

    region = detect_region(city)
    time_clause = f" newer_than:{newer_than}" if newer_than else ""

    grouped: dict[Section, list[ServicePreset]] = {}
    for preset in presets:
        if not preset.scannable:
            continue
        if not applies_to_region(preset, region):
            continue
        grouped.setdefault(preset.section, []).append(preset)

    queries: list[ServiceQuery] = []
    for section in SECTION_ORDER:
        section_presets = grouped.get(section)
        if not section_presets:
            continue

        keywords = BILLING_KEYWORDS_BY_SECTION.get(section, DEFAULT_BILLING_KEYWORDS)
        names_clause = " OR ".join(_name_term(p.name) for p in section_presets)
        queries.append(
            ServiceQuery(
                section=section,
                query=f"({names_clause}) ({keywords}){time_clause}",
                service_names=[p.name for p in section_presets],
            )
        )

    return queries
