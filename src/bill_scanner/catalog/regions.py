"""City to province resolution for region-restricted presets."""

from __future__ import annotations

import unicodedata

PROVINCES: tuple[str, ...] = (
    "CABA",
    "Buenos Aires",
    "Catamarca",
    "Chaco",
    "Chubut",
    "Córdoba",
    "Corrientes",
    "Entre Ríos",
    "Formosa",
    "Jujuy",
    "La Pampa",
    "La Rioja",
    "Mendoza",
    "Misiones",
    "Neuquén",
    "Río Negro",
    "Salta",
    "San Juan",
    "San Luis",
    "Santa Cruz",
    "Santa Fe",
    "Santiago del Estero",
    "Tierra del Fuego",
    "Tucumán",
)

# Keys are lowercase without diacritics.
CITY_TO_PROVINCE: dict[str, str] = {
    # CABA and the neighbourhoods geocoders return in its place
    "buenos aires": "CABA",
    "caba": "CABA",
    "ciudad autonoma de buenos aires": "CABA",
    "capital federal": "CABA",
    "palermo": "CABA",
    "belgrano": "CABA",
    "recoleta": "CABA",
    "caballito": "CABA",
    "almagro": "CABA",
    "villa crespo": "CABA",
    "chacarita": "CABA",
    "colegiales": "CABA",
    "nunez": "CABA",
    "devoto": "CABA",
    "villa devoto": "CABA",
    "villa urquiza": "CABA",
    "saavedra": "CABA",
    "flores": "CABA",
    "floresta": "CABA",
    "boedo": "CABA",
    "san telmo": "CABA",
    "la boca": "CABA",
    "barracas": "CABA",
    "san cristobal": "CABA",
    "monserrat": "CABA",
    "retiro": "CABA",
    "puerto madero": "CABA",
    "villa del parque": "CABA",
    "villa pueyrredon": "CABA",
    "parque patricios": "CABA",
    "liniers": "CABA",
    "mataderos": "CABA",
    "villa lugano": "CABA",
    "villa soldati": "CABA",
    "pompeya": "CABA",
    "nueva pompeya": "CABA",
    "parque chacabuco": "CABA",
    "constitucion": "CABA",
    "balvanera": "CABA",
    "once": "CABA",
    "congreso": "CABA",
    "microcentro": "CABA",
    # Buenos Aires province
    "la plata": "Buenos Aires",
    "mar del plata": "Buenos Aires",
    "bahia blanca": "Buenos Aires",
    "quilmes": "Buenos Aires",
    "lomas de zamora": "Buenos Aires",
    "lanus": "Buenos Aires",
    "avellaneda": "Buenos Aires",
    "moron": "Buenos Aires",
    "san isidro": "Buenos Aires",
    "tigre": "Buenos Aires",
    "pilar": "Buenos Aires",
    "zarate": "Buenos Aires",
    "campana": "Buenos Aires",
    "junin": "Buenos Aires",
    "tandil": "Buenos Aires",
    "olavarria": "Buenos Aires",
    "necochea": "Buenos Aires",
    "pergamino": "Buenos Aires",
    "san nicolas": "Buenos Aires",
    "san miguel": "Buenos Aires",
    "san fernando": "Buenos Aires",
    "san martin": "Buenos Aires",
    "tres de febrero": "Buenos Aires",
    "vicente lopez": "Buenos Aires",
    "martinez": "Buenos Aires",
    "olivos": "Buenos Aires",
    "florida": "Buenos Aires",
    "temperley": "Buenos Aires",
    "banfield": "Buenos Aires",
    "ezeiza": "Buenos Aires",
    "merlo": "Buenos Aires",
    "moreno": "Buenos Aires",
    "ituzaingo": "Buenos Aires",
    "berazategui": "Buenos Aires",
    "florencio varela": "Buenos Aires",
    "almirante brown": "Buenos Aires",
    "escobar": "Buenos Aires",
    # Córdoba
    "cordoba": "Córdoba",
    "rio cuarto": "Córdoba",
    "villa maria": "Córdoba",
    "carlos paz": "Córdoba",
    "villa carlos paz": "Córdoba",
    "alta gracia": "Córdoba",
    # Santa Fe
    "rosario": "Santa Fe",
    "santa fe": "Santa Fe",
    "rafaela": "Santa Fe",
    "venado tuerto": "Santa Fe",
    "reconquista": "Santa Fe",
    # Mendoza
    "mendoza": "Mendoza",
    "san rafael": "Mendoza",
    "godoy cruz": "Mendoza",
    # Tucumán
    "tucuman": "Tucumán",
    "san miguel de tucuman": "Tucumán",
    # Salta
    "salta": "Salta",
    "oran": "Salta",
    "tartagal": "Salta",
    # Entre Ríos
    "parana": "Entre Ríos",
    "concordia": "Entre Ríos",
    "gualeguaychu": "Entre Ríos",
    # Misiones
    "posadas": "Misiones",
    "obera": "Misiones",
    "eldorado": "Misiones",
    # Corrientes
    "corrientes": "Corrientes",
    "goya": "Corrientes",
    # Chaco
    "resistencia": "Chaco",
    "presidencia roque saenz pena": "Chaco",
    "saenz pena": "Chaco",
    # Cuyo and north-west
    "san juan": "San Juan",
    "san luis": "San Luis",
    "villa mercedes": "San Luis",
    "jujuy": "Jujuy",
    "san salvador de jujuy": "Jujuy",
    "catamarca": "Catamarca",
    "san fernando del valle de catamarca": "Catamarca",
    "la rioja": "La Rioja",
    "santiago del estero": "Santiago del Estero",
    "formosa": "Formosa",
    # Patagonia
    "viedma": "Río Negro",
    "bariloche": "Río Negro",
    "san carlos de bariloche": "Río Negro",
    "cipolletti": "Río Negro",
    "general roca": "Río Negro",
    "neuquen": "Neuquén",
    "santa rosa": "La Pampa",
    "rawson": "Chubut",
    "comodoro rivadavia": "Chubut",
    "trelew": "Chubut",
    "puerto madryn": "Chubut",
    "rio gallegos": "Santa Cruz",
    "caleta olivia": "Santa Cruz",
    "el calafate": "Santa Cruz",
    "ushuaia": "Tierra del Fuego",
    "rio grande": "Tierra del Fuego",
}


def normalize_text(text: str) -> str:
    """Lowercase, strip diacritics and surrounding whitespace."""

    decomposed = unicodedata.normalize("NFD", text.casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).strip()


def detect_region(city: str | None) -> str | None:
    """Resolve a household city to its province.

    Exact lookups win; otherwise the first table key contained in the city
    (or containing it) is used, so "Córdoba Capital" resolves to Córdoba.

    Args:
        city: Free-text city name, possibly with accents.

    Returns:
        Province name, or None when the city is empty or unknown.
    """

    if not city:
        return None
    normalized = normalize_text(city)
    if not normalized:
        return None

    exact = CITY_TO_PROVINCE.get(normalized)
    if exact:
        return exact

    for key, province in CITY_TO_PROVINCE.items():
        if key in normalized or normalized in key:
            return province
    return None
