import logging
from typing import Any, Dict, Iterable, List, Optional, Set

import pycountry

logger = logging.getLogger(__name__)

POPULAR_COUNTRY_CODES = [
    "us", "gb", "de", "fr", "it", "es", "ca", "au", "jp", "br",
    "ru", "cn", "in", "mx", "nl", "se", "no", "dk", "fi", "pl",
]

SEARCH_RESULT_LIMIT = 20


def load_iso_countries() -> Dict[str, str]:
    """ISO 3166-1 alpha-2 code (lowercase) -> English short name, from pycountry."""
    return {country.alpha_2.lower(): country.name for country in pycountry.countries}


class CountryData:
    """Lookup and validation over ISO 3166-1 alpha-2 countries.

    Codes are handled case-insensitively and always returned lowercase.
    Lookups for unknown codes return ``None`` rather than raising.
    """

    def __init__(self, countries: Optional[Dict[str, str]] = None, popular: Optional[Iterable[str]] = None):
        source = load_iso_countries() if countries is None else countries
        self._countries = {code.lower(): name for code, name in source.items()}
        self._popular = [code.lower() for code in (POPULAR_COUNTRY_CODES if popular is None else popular)]

    @property
    def total(self) -> int:
        return len(self._countries)

    def is_valid_code(self, code: Any) -> bool:
        if not code or not isinstance(code, str):
            return False
        return code.lower() in self._countries

    def get_name(self, code: Any) -> Optional[str]:
        if not isinstance(code, str):
            return None
        return self._countries.get(code.lower())

    def get_code(self, name: str) -> Optional[str]:
        if not name:
            return None
        wanted = name.lower()
        for code, country_name in self._countries.items():
            if country_name.lower() == wanted:
                return code
        return None

    def list_all_codes(self) -> Set[str]:
        return set(self._countries)

    def get_all_countries(self) -> Dict[str, str]:
        return dict(self._countries)

    def get_countries_for_dropdown(self) -> List[Dict[str, str]]:
        entries = [{"code": code, "name": name} for code, name in self._countries.items()]
        return sorted(entries, key=lambda entry: entry["name"].casefold())

    def search(self, query: Optional[str]) -> List[Dict[str, str]]:
        """Match ``query`` against country names and codes.

        Queries shorter than two characters return nothing; at most
        ``SEARCH_RESULT_LIMIT`` matches are returned.
        """
        if not query or len(query) < 2:
            return []

        needle = query.lower()
        matches = [
            {"code": code, "name": name}
            for code, name in self._countries.items()
            if needle in name.lower() or needle in code
        ]
        logger.debug(f"Country search '{query}' matched {len(matches)} countries")
        return matches[:SEARCH_RESULT_LIMIT]

    def get_popular_countries(self) -> List[Dict[str, str]]:
        return [
            {"code": code, "name": self._countries[code]}
            for code in self._popular
            if code in self._countries
        ]


# Default catalog used when no other is injected
country_data = CountryData()
