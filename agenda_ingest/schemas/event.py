# agenda_ingest/schemas/event.py
"""
Event records flowing through the ingestion pipeline.

RawCandidate is what a source adapter yields; NormalizedEvent is the cleaned,
classified record handed to deduplication and storage. Both are immutable.
"""

import datetime as dt
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from agenda_ingest.ingestion.normalization.text_utils import (
    is_bare_person_name,
    is_bare_place,
)

MIN_TITLE_LENGTH = 10
DEFAULT_EVENT_TIME = dt.time(19, 0)
DEFAULT_PLACEHOLDER_MARKERS = ("placeholder", "default", "no-image", "sem-imagem")


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def is_placeholder_image(
    url: Optional[str], markers: Iterable[str] = DEFAULT_PLACEHOLDER_MARKERS
) -> bool:
    """True when the image URL is missing or points to a known placeholder."""
    if not url or not url.strip():
        return True
    lowered = url.lower()
    return any(marker in lowered for marker in markers)


# ============================================================================
# ENUMS
# ============================================================================


class SourceId(str, Enum):
    """Built-in source identifiers. Registered adapters may add more."""

    EVENTBRITE = "eventbrite"
    SYMPLA = "sympla"


class EventCategory(str, Enum):
    """Event domains, in classifier priority order."""

    MUSIC = "music"
    THEATRE = "theatre"
    EDUCATION = "education"
    PARTY = "party"
    SPORTS = "sports"
    BUSINESS = "business"
    GENERAL = "general"

    @property
    def store_label(self) -> str:
        """Label written to the ``categoria`` column."""
        return _STORE_LABELS[self]

    @classmethod
    def from_label(cls, value: str) -> "EventCategory":
        """Accept either the enum value ("music") or the store label ("Música")."""
        for member in cls:
            if value == member.value or value == member.store_label:
                return member
        raise ValueError(f"Unknown event category: {value}")


_STORE_LABELS = {
    EventCategory.MUSIC: "Música",
    EventCategory.THEATRE: "Teatro",
    EventCategory.EDUCATION: "Educação",
    EventCategory.PARTY: "Festa",
    EventCategory.SPORTS: "Esporte",
    EventCategory.BUSINESS: "Negócios",
    EventCategory.GENERAL: "Geral",
}


# ============================================================================
# SUPPORTING MODELS
# ============================================================================


class PriceInfo(BaseModel):
    """Ticket price extracted from listing text."""

    model_config = ConfigDict(frozen=True)

    is_free: bool = False
    minimum_price: Optional[Decimal] = Field(default=None, ge=0)
    maximum_price: Optional[Decimal] = Field(default=None, ge=0)
    currency: str = "BRL"

    @model_validator(mode="after")
    def validate_range(self) -> "PriceInfo":
        if (
            self.minimum_price is not None
            and self.maximum_price is not None
            and self.maximum_price < self.minimum_price
        ):
            raise ValueError("maximum_price must be >= minimum_price")
        return self


# ============================================================================
# RAW CANDIDATE
# ============================================================================


class RawCandidate(BaseModel):
    """A listing exactly as a source adapter produced it."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    title: str
    description: Optional[str] = None
    raw_date: Optional[str] = None
    raw_location: Optional[str] = None
    image_url: Optional[str] = None
    source_id: str = Field(..., min_length=1)
    source_url: str = Field(..., min_length=1)
    region: Optional[str] = None

    raw_price: Optional[str] = None
    organizer: Optional[str] = None
    scraped_at: datetime = Field(default_factory=_utc_now)


# ============================================================================
# NORMALIZED EVENT
# ============================================================================


class NormalizedEvent(BaseModel):
    """
    An accepted, cleaned and classified event ready for storage.

    Title and image invariants are enforced here so no code path can build an
    event that violates them.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    date: dt.date
    time: dt.time = DEFAULT_EVENT_TIME
    venue: Optional[str] = None
    city: Optional[str] = None
    location: str
    category: EventCategory = EventCategory.GENERAL
    is_regional: bool = False
    quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    image_url: str
    source_id: str
    source_url: str
    content_hash: str

    description: Optional[str] = None
    price: Optional[PriceInfo] = None
    tags: List[str] = Field(default_factory=list)
    organizer: Optional[str] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if len(v) < MIN_TITLE_LENGTH:
            raise ValueError(f"title must have at least {MIN_TITLE_LENGTH} characters")
        if is_bare_place(v):
            raise ValueError(f"title is a bare place name: {v!r}")
        if is_bare_person_name(v):
            raise ValueError(f"title is a bare person name: {v!r}")
        return v

    @field_validator("image_url")
    @classmethod
    def validate_image(cls, v: str) -> str:
        if is_placeholder_image(v):
            raise ValueError("image_url is missing or a placeholder")
        return v

    @property
    def store_category(self) -> str:
        return self.category.store_label
