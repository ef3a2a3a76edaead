"""
Caller location normalisation.

Callers name neighbourhoods; the pickup schedule is keyed by region or city.
"""

from typing import Dict, Mapping, Optional

DEFAULT_SYNONYMS: Dict[str, str] = {
    "boro park": "Brooklyn",
    "borough park": "Brooklyn",
    "flatbush": "Brooklyn",
    "midwood": "Brooklyn",
    "williamsburg": "Brooklyn",
    "crown heights": "Brooklyn",
    "kensington": "Brooklyn",
    "toms river": "Lakewood",
    "jackson": "Lakewood",
    "howell": "Lakewood",
    "five towns": "Far Rockaway",
    "lawrence": "Far Rockaway",
    "cedarhurst": "Far Rockaway",
    "woodmere": "Far Rockaway",
    "kew gardens hills": "Queens",
    "forest hills": "Queens",
}


class LocationNormalizer:
    """Maps neighbourhood aliases to the canonical region used by the schedule."""

    def __init__(self, synonyms: Optional[Mapping[str, str]] = None):
        table = dict(DEFAULT_SYNONYMS)
        table.update(synonyms or {})
        self._synonyms = {self._key(alias): canonical for alias, canonical in table.items()}

    @staticmethod
    def _key(value: str) -> str:
        return " ".join(str(value).lower().split())

    def normalize(self, location: Optional[str]) -> Optional[str]:
        """Return the canonical region for a known alias, else the input unchanged."""
        if location is None:
            return None
        return self._synonyms.get(self._key(location), location)
