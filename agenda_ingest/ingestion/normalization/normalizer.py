"""
Text normalizer.

Turns a RawCandidate into NormalizedFields: canonical title, calendar date and
time, venue/city/location, cleaned description, price and a content hash.
Rejections are raised as NormalizationRejection carrying the reason code.

Usage:
    normalizer = TextNormalizer()
    try:
        fields = normalizer.normalize(candidate)
    except NormalizationRejection as rejection:
        reason = rejection.reason
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from agenda_ingest.ingestion.normalization.currency import CurrencyParser
from agenda_ingest.ingestion.normalization.date_parser import (
    parse_event_time,
    resolve_event_date,
)
from agenda_ingest.ingestion.normalization.location_parser import (
    DEFAULT_CITY,
    LocationParser,
)
from agenda_ingest.ingestion.normalization.text_utils import (
    fold_accents,
    normalize_ws,
    strip_or_none,
)
from agenda_ingest.ingestion.normalization.title_extractor import TitleExtractor
from agenda_ingest.schemas.event import PriceInfo, RawCandidate

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 2000


@dataclass(frozen=True)
class NormalizedFields:
    """Normalizer output for one candidate, before classification."""

    title: str
    date: date
    time: time
    location: str
    image_url: str
    source_id: str
    source_url: str
    content_hash: str
    venue: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    description: Optional[str] = None
    price: Optional[PriceInfo] = None
    organizer: Optional[str] = None
    date_is_fallback: bool = False


def normalize_image_url(url: Optional[str]) -> Optional[str]:
    """Protocol-relative and plain-http image URLs become https."""
    url = strip_or_none(url)
    if not url:
        return None
    if url.startswith("//"):
        return "https:" + url
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


def compute_content_hash(title: str, event_date: date, venue: Optional[str]) -> str:
    """Stable hash of title, date and venue (accent- and case-insensitive)."""
    key = "_".join(
        (
            fold_accents(normalize_ws(title)),
            event_date.isoformat(),
            fold_accents(normalize_ws(venue)),
        )
    )
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


class TextNormalizer:
    """Normalize raw candidates into structured fields."""

    def __init__(
        self,
        title_extractor: Optional[TitleExtractor] = None,
        location_parser: Optional[LocationParser] = None,
        default_city: str = DEFAULT_CITY,
    ):
        self.title_extractor = title_extractor or TitleExtractor()
        self.location_parser = location_parser or LocationParser(default_city)

    @classmethod
    def from_config(cls, config: dict, default_city: str = DEFAULT_CITY) -> "TextNormalizer":
        """Build from the ``normalizer`` section of the ingestion config."""
        extractor = TitleExtractor(
            min_length=int(config.get("min_title_length", 10)),
            recovery_min_line=int(config.get("title_recovery_min_line", 15)),
        )
        return cls(title_extractor=extractor, location_parser=LocationParser(default_city))

    def normalize(
        self, candidate: RawCandidate, today: Optional[date] = None
    ) -> NormalizedFields:
        """
        Normalize one candidate.

        Raises:
            NormalizationRejection: title_unrecoverable or title_too_short
        """
        raw_title = normalize_ws(candidate.title)
        title = self.title_extractor.extract(raw_title, candidate.description)

        resolved = resolve_event_date(
            candidate.raw_date or raw_title, today
        )
        event_time = parse_event_time(candidate.raw_date, raw_title)

        parsed_location = self.location_parser.parse(
            raw_title, candidate.raw_location, candidate.region
        )

        description = strip_or_none(candidate.description)
        if description and len(description) > MAX_DESCRIPTION_LENGTH:
            description = description[:MAX_DESCRIPTION_LENGTH].rsplit(" ", 1)[0]

        price = CurrencyParser.parse_price(candidate.raw_price) or CurrencyParser.find_price(
            description
        )

        if resolved.is_fallback:
            logger.debug(
                f"No usable date for {candidate.source_url} ({candidate.raw_date!r}), "
                f"using {resolved.value}"
            )

        return NormalizedFields(
            title=title,
            date=resolved.value,
            time=event_time,
            location=parsed_location.location,
            image_url=normalize_image_url(candidate.image_url) or "",
            source_id=candidate.source_id,
            source_url=candidate.source_url,
            content_hash=compute_content_hash(title, resolved.value, parsed_location.venue),
            venue=parsed_location.venue,
            city=parsed_location.city,
            state=parsed_location.state,
            description=description,
            price=price,
            organizer=strip_or_none(candidate.organizer),
            date_is_fallback=resolved.is_fallback,
        )

