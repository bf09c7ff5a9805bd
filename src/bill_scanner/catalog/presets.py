"""Static catalog of known recurring-billing providers."""

from __future__ import annotations

from bill_scanner.catalog.regions import detect_region, normalize_text
from bill_scanner.models import ExpenseCategory, Frequency, Section, ServicePreset

_U = ExpenseCategory.UTILITIES
_BI = Frequency.BIMONTHLY
_MO = Frequency.MONTHLY


def _utility(name: str, *regions: str, provider: str | None = None, frequency: Frequency = _BI) -> ServicePreset:
    return ServicePreset(
        name=name,
        provider=provider or name,
        category=_U,
        frequency=frequency,
        regions=regions,
        section=Section.UTILITIES,
    )


_PATAGONIA = ("Neuquén", "Río Negro", "Chubut", "Santa Cruz", "Tierra del Fuego")

ALL_PRESETS: tuple[ServicePreset, ...] = (
    # Electricity
    _utility("Edenor", "CABA", "Buenos Aires"),
    _utility("Edesur", "CABA", "Buenos Aires"),
    _utility("EDELAP", "Buenos Aires"),
    _utility("EDEN", "Buenos Aires"),
    _utility("EDEA", "Buenos Aires"),
    _utility("EDES", "Buenos Aires"),
    _utility("EPEC", "Córdoba", frequency=_MO),
    _utility("EPE", "Santa Fe"),
    _utility("EDEMSA", "Mendoza"),
    _utility("EDET", "Tucumán"),
    _utility("EDESA", "Salta"),
    _utility("ENERSA", "Entre Ríos"),
    _utility("EMSA", "Misiones"),
    _utility("DPEC", "Corrientes"),
    _utility("SECHEEP", "Chaco"),
    _utility("Energía San Juan", "San Juan"),
    _utility("EDESAL", "San Luis"),
    _utility("EJE", "Jujuy"),
    _utility("EPEN", "Neuquén"),
    _utility("EDERSA", "Río Negro"),
    _utility("APE", "La Pampa"),
    _utility("EC SAPEM", "Catamarca"),
    _utility("EDELAR", "La Rioja"),
    _utility("EDESE", "Santiago del Estero"),
    _utility("REFSA", "Formosa"),
    _utility("SPSE", "Santa Cruz"),
    _utility("DPE TDF", "Tierra del Fuego"),
    # Gas
    _utility("MetroGas", "CABA", "Buenos Aires"),
    _utility("Naturgy", "Buenos Aires", provider="Naturgy BAN"),
    _utility("Camuzzi Gas Pampeana", "Buenos Aires", "La Pampa", provider="Camuzzi"),
    _utility("Camuzzi Gas del Sur", *_PATAGONIA, provider="Camuzzi"),
    _utility("Litoral Gas", "Santa Fe", "Buenos Aires"),
    _utility("Ecogas", "Córdoba", "Catamarca", "La Rioja", "Mendoza", "San Juan", "San Luis"),
    _utility("Gasnor", "Tucumán", "Salta", "Jujuy", "Santiago del Estero"),
    _utility("Gasnea", "Entre Ríos", "Corrientes", "Misiones", "Chaco", "Formosa"),
    # Water
    _utility("AySA", "CABA", "Buenos Aires"),
    _utility("ABSA", "Buenos Aires"),
    _utility("Aguas Cordobesas", "Córdoba"),
    _utility("Aguas Santafesinas", "Santa Fe", provider="ASSA"),
    _utility("AYSAM", "Mendoza"),
    _utility("SAT", "Tucumán"),
    _utility("Aguas del Norte", "Salta"),
    _utility("SAMEEP", "Chaco"),
    _utility("Aguas de Corrientes", "Corrientes"),
    _utility("OSSE San Juan", "San Juan", provider="OSSE"),
    # Telecom
    ServicePreset(name="Personal", provider="Telecom", category=_U, frequency=_MO, section=Section.TELECOM),
    ServicePreset(name="Claro", category=_U, frequency=_MO, section=Section.TELECOM),
    ServicePreset(name="Movistar", category=_U, frequency=_MO, section=Section.TELECOM),
    ServicePreset(name="Fibertel", provider="Telecom", category=_U, frequency=_MO, section=Section.TELECOM),
    ServicePreset(name="Flow", provider="Telecom", category=_U, frequency=_MO, section=Section.TELECOM),
    ServicePreset(
        name="Telecentro",
        category=_U,
        frequency=_MO,
        regions=("CABA", "Buenos Aires"),
        section=Section.TELECOM,
    ),
    ServicePreset(name="DirecTV", category=_U, frequency=_MO, section=Section.TELECOM),
    # Streaming
    ServicePreset(name="Netflix", category=ExpenseCategory.ENTERTAINMENT, frequency=_MO, section=Section.STREAMING),
    ServicePreset(name="Spotify", category=ExpenseCategory.ENTERTAINMENT, frequency=_MO, section=Section.STREAMING),
    ServicePreset(name="Disney+", category=ExpenseCategory.ENTERTAINMENT, frequency=_MO, section=Section.STREAMING),
    ServicePreset(name="Max", category=ExpenseCategory.ENTERTAINMENT, frequency=_MO, section=Section.STREAMING),
    ServicePreset(
        name="YouTube Premium",
        provider="YouTube",
        category=ExpenseCategory.ENTERTAINMENT,
        frequency=_MO,
        section=Section.STREAMING,
    ),
    ServicePreset(
        name="Amazon Prime",
        provider="Amazon",
        category=ExpenseCategory.ENTERTAINMENT,
        frequency=_MO,
        section=Section.STREAMING,
    ),
    ServicePreset(name="Paramount+", category=ExpenseCategory.ENTERTAINMENT, frequency=_MO, section=Section.STREAMING),
    ServicePreset(name="Crunchyroll", category=ExpenseCategory.ENTERTAINMENT, frequency=_MO, section=Section.STREAMING),
    # Taxes
    ServicePreset(name="Monotributo", category=ExpenseCategory.OTHER, frequency=_MO, section=Section.TAXES),
    ServicePreset(
        name="Ingresos Brutos",
        category=ExpenseCategory.OTHER,
        frequency=_MO,
        section=Section.TAXES,
        scannable=False,
    ),
    ServicePreset(
        name="ABL", category=ExpenseCategory.OTHER, frequency=_BI, regions=("CABA",), section=Section.TAXES
    ),
    ServicePreset(
        name="ARBA",
        category=ExpenseCategory.OTHER,
        frequency=_BI,
        regions=("Buenos Aires",),
        section=Section.TAXES,
    ),
    ServicePreset(
        name="Inmobiliario", category=ExpenseCategory.OTHER, frequency=_BI, section=Section.TAXES, scannable=False
    ),
    ServicePreset(
        name="Patente", category=ExpenseCategory.TRANSPORT, frequency=_BI, section=Section.TAXES, scannable=False
    ),
    # Home
    ServicePreset(name="Alquiler", category=ExpenseCategory.RENT, frequency=_MO, section=Section.HOME, scannable=False),
    ServicePreset(name="Expensas", category=ExpenseCategory.RENT, frequency=_MO, section=Section.HOME, scannable=False),
    ServicePreset(
        name="Seguro hogar", category=ExpenseCategory.HOME, frequency=_MO, section=Section.HOME, scannable=False
    ),
    ServicePreset(
        name="Cuota colegio", category=ExpenseCategory.EDUCATION, frequency=_MO, section=Section.HOME, scannable=False
    ),
    ServicePreset(
        name="Cuota jardín", category=ExpenseCategory.EDUCATION, frequency=_MO, section=Section.HOME, scannable=False
    ),
    # Health
    ServicePreset(name="Prepaga", category=ExpenseCategory.HEALTH, frequency=_MO, section=Section.HEALTH, scannable=False),
    ServicePreset(name="OSDE", category=ExpenseCategory.HEALTH, frequency=_MO, section=Section.HEALTH),
    ServicePreset(name="Swiss Medical", category=ExpenseCategory.HEALTH, frequency=_MO, section=Section.HEALTH),
    ServicePreset(name="Galeno", category=ExpenseCategory.HEALTH, frequency=_MO, section=Section.HEALTH),
    # Transport
    ServicePreset(
        name="Seguro auto", category=ExpenseCategory.TRANSPORT, frequency=_MO, section=Section.TRANSPORT, scannable=False
    ),
    ServicePreset(
        name="Cochera", category=ExpenseCategory.TRANSPORT, frequency=_MO, section=Section.TRANSPORT, scannable=False
    ),
)

SECTION_ORDER: tuple[Section, ...] = (
    Section.UTILITIES,
    Section.TELECOM,
    Section.STREAMING,
    Section.HOME,
    Section.TAXES,
    Section.HEALTH,
    Section.TRANSPORT,
    Section.OTHER,
)

SECTION_LABELS: dict[Section, str] = {
    Section.UTILITIES: "Servicios públicos",
    Section.TELECOM: "Comunicación",
    Section.STREAMING: "Suscripciones",
    Section.TAXES: "Impuestos",
    Section.HOME: "Hogar",
    Section.HEALTH: "Salud",
    Section.TRANSPORT: "Transporte",
    Section.OTHER: "Otros servicios detectados",
}

_BY_NAME: dict[str, ServicePreset] = {p.name: p for p in ALL_PRESETS}


def get_preset(name: str) -> ServicePreset | None:
    """Return the catalog preset with exactly this name."""
    return _BY_NAME.get(name)


def applies_to_region(preset: ServicePreset, region: str | None) -> bool:
    """Nationwide presets always apply; restricted ones only to their regions."""

    if preset.is_nationwide:
        return True
    return region is not None and region in preset.regions


def suggested_presets(
    city: str | None,
    presets: tuple[ServicePreset, ...] = ALL_PRESETS,
) -> dict[Section, list[ServicePreset]]:
    """Group the presets applicable to a household city by section.

    Sections without presets are omitted; order follows SECTION_ORDER.
    """

    region = detect_region(city)
    grouped: dict[Section, list[ServicePreset]] = {}
    for section in SECTION_ORDER:
        matching = [p for p in presets if p.section == section and applies_to_region(p, region)]
        if matching:
            grouped[section] = matching
    return grouped


def search_presets(
    query: str,
    city: str | None,
    presets: tuple[ServicePreset, ...] = ALL_PRESETS,
) -> list[ServicePreset]:
    """Search presets by name or provider, ignoring case and accents.

    Presets restricted to a different province than the city's are hidden;
    when the city does not resolve, every preset is searchable.
    """

    needle = normalize_text(query)
    if len(needle) < 2:
        return []

    region = detect_region(city)
    results: list[ServicePreset] = []
    for preset in presets:
        if region is not None and not applies_to_region(preset, region):
            continue
        if needle in normalize_text(preset.name) or needle in normalize_text(preset.provider_label):
            results.append(preset)
    return results
