"""
Location Parser.

Builds the venue/city pair and the display location string for an event from
the listing title, the adapter-provided region and the raw location text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from agenda_ingest.ingestion.normalization.text_utils import (
    BRAZIL_UFS,
    KNOWN_CITIES,
    fold_accents,
    is_bare_place,
    is_known_city,
    normalize_ws,
)

logger = logging.getLogger(__name__)

DEFAULT_CITY = "São Paulo, SP"

_CANONICAL_CITIES = {fold_accents(c): c for c in KNOWN_CITIES}

_EM_CITY = re.compile(
    r"\bem\s+(?P<city>"
    + "|".join(re.escape(c) for c in sorted(KNOWN_CITIES, key=len, reverse=True))
    + r")\b",
    re.IGNORECASE,
)
_LOCAL_VENUE = re.compile(
    r"\blocal\s*:?\s+(?P<venue>[^,|\-–—]+?)(?:\s*[,|\-–—]|$)", re.IGNORECASE
)
_UF_SUFFIX = re.compile(r"\s*(?:[-/,]\s*|\s+)(?P<uf>[A-Z]{2})$")


@dataclass
class ParsedLocation:
    """Structured location extracted for an event."""

    venue: str | None = None
    city: str | None = None
    state: str | None = None
    location: str = DEFAULT_CITY


def canonical_city(name: str | None) -> str | None:
    """Known-city spelling for ``name`` ("porto velho" -> "Porto Velho"), else the trimmed input."""
    text = normalize_ws(name)
    if not text:
        return None
    city, _ = split_uf(text)
    return _CANONICAL_CITIES.get(fold_accents(city), city)


def split_uf(text: str) -> tuple[str, str | None]:
    """'Porto Velho - RO' -> ('Porto Velho', 'RO')."""
    m = _UF_SUFFIX.search(text)
    if m and m.group("uf") in BRAZIL_UFS:
        return text[: m.start()].strip(" ,-/"), m.group("uf")
    return text, None


class LocationParser:
    """
    Resolve venue and city for a candidate.

    City precedence: an explicit "em <city>" phrase in the title, then the
    adapter-provided region, then the raw location string. The display string
    is "<venue> - <city>", either part alone, or ``default_city``.
    """

    def __init__(self, default_city: str = DEFAULT_CITY) -> None:
        self.default_city = default_city

    def parse(
        self,
        title: str | None,
        raw_location: str | None = None,
        region: str | None = None,
    ) -> ParsedLocation:
        title = normalize_ws(title)
        raw_location = normalize_ws(raw_location)
        region = normalize_ws(region)

        loc_venue, loc_city, loc_state = self.parse_raw_location(raw_location)

        venue = self.extract_venue(title) or loc_venue

        city = None
        state = None
        m = _EM_CITY.search(title)
        if m:
            city = canonical_city(m.group("city"))
        elif region:
            city, state = split_uf(region)
            city = canonical_city(city)
        elif loc_city:
            city, state = loc_city, loc_state

        return ParsedLocation(
            venue=venue,
            city=city,
            state=state or loc_state,
            location=self.build_location(venue, city),
        )

    def build_location(self, venue: str | None, city: str | None) -> str:
        if venue and city:
            return f"{venue} - {city}"
        if venue:
            return venue
        if city:
            return city
        return self.default_city

    @staticmethod
    def extract_venue(title: str | None) -> str | None:
        """Venue named in the title with "local ..." ("Show X local Bar do Zé")."""
        if not title:
            return None
        m = _LOCAL_VENUE.search(title)
        if not m:
            return None
        venue = m.group("venue").strip()
        return venue or None

    @staticmethod
    def parse_raw_location(
        raw: str | None,
    ) -> tuple[str | None, str | None, str | None]:
        """
        Split a raw location into (venue, city, state).

        "Teatro Municipal, Porto Velho - RO" -> ("Teatro Municipal", "Porto Velho", "RO")
        "Porto Velho, RO" -> (None, "Porto Velho", "RO")
        "Arena Multiuso" -> ("Arena Multiuso", None, None)
        """
        if not raw:
            return None, None, None

        if is_bare_place(raw) or is_known_city(raw):
            city, state = split_uf(raw)
            return None, canonical_city(city), state

        parts = [p.strip() for p in re.split(r"\s*,\s*|\s+[-–—]\s+", raw) if p.strip()]
        if len(parts) == 1:
            return parts[0], None, None

        state = None
        if parts[-1] in BRAZIL_UFS:
            state = parts.pop()

        city_idx = None
        for idx in range(len(parts) - 1, -1, -1):
            if is_known_city(split_uf(parts[idx])[0]):
                city_idx = idx
                break
        if city_idx is None:
            # Last segment is usually the city for Brazilian listings.
            city_idx = len(parts) - 1 if len(parts) > 1 else None

        city = None
        if city_idx is not None:
            city, uf = split_uf(parts[city_idx])
            city = canonical_city(city)
            state = state or uf
            parts = parts[:city_idx]

        venue = parts[0] if parts else None
        return venue, city, state
