"""Static service catalog and region resolution.

The catalog is a read-only input to query construction and service matching.
"""

from .presets import (
    ALL_PRESETS,
    SECTION_LABELS,
    SECTION_ORDER,
    applies_to_region,
    get_preset,
    search_presets,
    suggested_presets,
)
from .regions import detect_region, normalize_text

__all__ = [
    "ALL_PRESETS",
    "SECTION_LABELS",
    "SECTION_ORDER",
    "applies_to_region",
    "detect_region",
    "get_preset",
    "normalize_text",
    "search_presets",
    "suggested_presets",
]
