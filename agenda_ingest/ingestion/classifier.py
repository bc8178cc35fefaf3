"""
Event classifier.

Assigns a category by first keyword match over an ordered list of domains,
flags events whose city is in the regional allow-list, extracts descriptive
tags and computes a [0, 1] quality score used only for ranking and reporting.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from agenda_ingest.ingestion.normalization.text_utils import (
    contains_term,
    find_terms,
    fold_accents,
)
from agenda_ingest.schemas.event import EventCategory, PriceInfo

logger = logging.getLogger(__name__)


# Ordered: the first domain with a keyword hit wins.
CATEGORY_KEYWORDS: tuple[tuple[EventCategory, tuple[str, ...]], ...] = (
    (
        EventCategory.MUSIC,
        (
            "show", "shows", "música", "musica", "concert", "concerto", "banda",
            "dj", "rock", "samba", "pagode", "sertanejo", "forró", "funk", "mpb",
            "jazz", "blues", "rap", "hip hop", "gospel", "orquestra", "sinfônica",
            "acústico", "karaokê", "festival de música", "tributo",
        ),
    ),
    (
        EventCategory.THEATRE,
        (
            "teatro", "peça", "espetáculo", "stand-up", "stand up", "comédia",
            "circo", "dança", "ballet", "balé", "ópera", "monólogo",
        ),
    ),
    (
        EventCategory.EDUCATION,
        (
            "workshop", "curso", "palestra", "oficina", "seminário", "treinamento",
            "aula", "masterclass", "mentoria", "simpósio", "capacitação",
        ),
    ),
    (
        EventCategory.PARTY,
        (
            "festa", "balada", "party", "baile", "réveillon", "carnaval", "arraiá",
            "arraial", "rave", "open bar", "after",
        ),
    ),
    (
        EventCategory.SPORTS,
        (
            "esporte", "corrida", "marathon", "maratona", "meia maratona",
            "caminhada", "ciclismo", "pedal", "futebol", "vôlei", "basquete",
            "jiu-jitsu", "torneio", "campeonato", "triathlon", "trail", "run",
            "motocross", "copa",
        ),
    ),
    (
        EventCategory.BUSINESS,
        (
            "congresso", "conferência", "feira de negócios", "networking", "summit",
            "empreendedorismo", "startup", "fórum", "expo", "meetup", "rodada de negócios",
        ),
    ),
)

_DISTANCE = re.compile(r"\b\d{1,2}\s*k(?:m)?\b", re.IGNORECASE)

TAG_KEYWORDS: dict[str, tuple[str, ...]] = {
    # genres
    "rock": ("rock",),
    "samba": ("samba",),
    "pagode": ("pagode",),
    "sertanejo": ("sertanejo", "sertaneja"),
    "forro": ("forró",),
    "funk": ("funk",),
    "mpb": ("mpb",),
    "jazz": ("jazz",),
    "eletronica": ("eletrônica", "techno", "house music"),
    "gospel": ("gospel", "louvor"),
    # audience
    "infantil": ("infantil", "crianças", "kids"),
    "familia": ("família", "familiar"),
    # format
    "online": ("online", "ao vivo pela internet", "transmissão"),
    "ao-ar-livre": ("ao ar livre", "praça", "parque"),
    "nacional": ("turnê nacional", "tour nacional"),
}

# Weights sum to 1.0
QUALITY_WEIGHTS: dict[str, float] = {
    "description": 0.15,
    "long_description": 0.15,
    "venue": 0.20,
    "price": 0.15,
    "organizer": 0.10,
    "source_reliability": 0.25,
}

LONG_DESCRIPTION_CHARS = 80
DEFAULT_SOURCE_RELIABILITY = 0.5


@dataclass(frozen=True)
class Classification:
    """Classifier output for one event."""

    category: EventCategory
    is_regional: bool
    quality_score: float
    tags: list[str] = field(default_factory=list)


class EventClassifier:
    """
    Classify normalized events.

    Args:
        regional_cities: Cities flagged as regional (matched accent-insensitively)
        source_reliability: Per-source reliability in [0, 1]
    """

    def __init__(
        self,
        regional_cities: Iterable[str] = (),
        source_reliability: Optional[dict[str, float]] = None,
        category_keywords: Sequence[tuple[EventCategory, Sequence[str]]] = CATEGORY_KEYWORDS,
    ):
        self.regional_cities = {fold_accents(c) for c in regional_cities}
        self.source_reliability = dict(source_reliability or {})
        self.category_keywords = tuple(category_keywords)

    # ------------------------------------------------------------------
    # Category
    # ------------------------------------------------------------------

    def categorize(self, title: str, description: Optional[str] = None) -> EventCategory:
        """First domain with a keyword in the title; the description is the fallback."""
        for text in (title, description):
            if not text:
                continue
            for category, keywords in self.category_keywords:
                if any(contains_term(text, kw) for kw in keywords):
                    return category
            if _DISTANCE.search(text):
                return EventCategory.SPORTS
        return EventCategory.GENERAL

    # ------------------------------------------------------------------
    # Region
    # ------------------------------------------------------------------

    def is_regional(self, city: Optional[str]) -> bool:
        if not city:
            return False
        return fold_accents(city.strip()) in self.regional_cities

    # ------------------------------------------------------------------
    # Quality score
    # ------------------------------------------------------------------

    def quality_score(
        self,
        description: Optional[str] = None,
        venue: Optional[str] = None,
        price: Optional[PriceInfo] = None,
        organizer: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> float:
        """
        Weighted sum of listing completeness and source reliability.

        Returns:
            Score between 0.0 and 1.0
        """
        score = 0.0
        if description:
            score += QUALITY_WEIGHTS["description"]
            if len(description) > LONG_DESCRIPTION_CHARS:
                score += QUALITY_WEIGHTS["long_description"]
        if venue:
            score += QUALITY_WEIGHTS["venue"]
        if price is not None:
            score += QUALITY_WEIGHTS["price"]
        if organizer:
            score += QUALITY_WEIGHTS["organizer"]

        reliability = self.source_reliability.get(source_id or "", DEFAULT_SOURCE_RELIABILITY)
        score += QUALITY_WEIGHTS["source_reliability"] * max(0.0, min(1.0, reliability))

        return round(min(1.0, max(0.0, score)), 4)

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def extract_tags(
        self,
        title: str,
        description: Optional[str] = None,
        price: Optional[PriceInfo] = None,
        is_regional: bool = False,
    ) -> list[str]:
        text = " ".join(t for t in (title, description) if t)
        tags = [tag for tag, terms in TAG_KEYWORDS.items() if find_terms(text, terms)]
        if price is not None and price.is_free:
            tags.append("gratuito")
        if is_regional:
            tags.append("regional")
        return tags

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def classify(
        self,
        title: str,
        description: Optional[str] = None,
        *,
        city: Optional[str] = None,
        venue: Optional[str] = None,
        price: Optional[PriceInfo] = None,
        organizer: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> Classification:
        category = self.categorize(title, description)
        regional = self.is_regional(city)
        return Classification(
            category=category,
            is_regional=regional,
            quality_score=self.quality_score(description, venue, price, organizer, source_id),
            tags=self.extract_tags(title, description, price, regional),
        )
