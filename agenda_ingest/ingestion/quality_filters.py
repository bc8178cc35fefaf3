"""
Rule-based quality and relevance filters for raw candidates.

Why:
- Listing sites mix real public events with placeholders, adult content,
  private gatherings (birthdays, weddings) and course/tour advertising.

This module provides:
- issue reporting with reason codes
- keep/reject decision before any normalization work is spent
- a post-normalization title guard
- configurable term lists (ingestion.yaml ``filters`` section)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from agenda_ingest.ingestion.normalization.text_utils import (
    find_terms,
    is_bare_person_name,
    is_bare_place,
)
from agenda_ingest.schemas.event import (
    DEFAULT_PLACEHOLDER_MARKERS,
    MIN_TITLE_LENGTH,
    RawCandidate,
)

logger = logging.getLogger(__name__)

# Reason codes
MISSING_IMAGE = "missing_image"
PLACEHOLDER_IMAGE = "placeholder_image"
DENYLISTED_CONTENT = "denylisted_content"
PERSONAL_EVENT = "personal_event"
GENERIC_LISTING = "generic_listing"
TITLE_TOO_SHORT = "title_too_short"
BARE_PLACE_TITLE = "bare_place_title"
BARE_PERSON_TITLE = "bare_person_title"


@dataclass(frozen=True)
class QualityIssue:
    """A single reason to drop (error) or flag (warning) a candidate."""

    level: str  # "warning"|"error"
    code: str
    message: str


@dataclass
class QualityResult:
    """Filter verdict for one candidate."""

    keep: bool
    issues: list[QualityIssue] = field(default_factory=list)

    def errors(self) -> list[QualityIssue]:
        return [i for i in self.issues if i.level == "error"]

    def warnings(self) -> list[QualityIssue]:
        return [i for i in self.issues if i.level == "warning"]

    @property
    def reason(self) -> str | None:
        """Code of the first error, used as the rejection reason."""
        errors = self.errors()
        return errors[0].code if errors else None


DEFAULT_EXPLICIT_TERMS: tuple[str, ...] = (
    "fuck", "shit", "porno", "sex", "nude", "naked", "strip", "xxx", "erotic",
    "erótico", "sensual", "fetish", "bdsm", "swing", "orgia", "putaria",
    "safadeza", "tesão", "gostosa", "gostoso",
)
DEFAULT_PERSONAL_TERMS: tuple[str, ...] = (
    "aniversário", "birthday", "festa de aniversário", "casamento", "wedding",
    "formatura", "reunião", "meeting", "particular", "chá de bebê",
    "chá revelação",
)
DEFAULT_GENERIC_TERMS: tuple[str, ...] = (
    "curso online", "curso gratuito", "curso completo", "tour virtual",
    "city tour", "passeio turístico", "anuncie aqui", "publicidade", "compre já",
    "oferta imperdível",
)


class QualityFilter:
    """
    Decide whether a raw candidate is worth normalizing.

    Checks, in order: image present and not a placeholder, no explicit terms,
    no personal-gathering terms, no generic course/tour/ad language. Terms match
    whole words, ignoring case and accents, in the title or the description.
    """

    def __init__(
        self,
        explicit_terms: Sequence[str] = DEFAULT_EXPLICIT_TERMS,
        personal_terms: Sequence[str] = DEFAULT_PERSONAL_TERMS,
        generic_terms: Sequence[str] = DEFAULT_GENERIC_TERMS,
        placeholder_markers: Sequence[str] = DEFAULT_PLACEHOLDER_MARKERS,
        min_title_length: int = MIN_TITLE_LENGTH,
    ):
        self.explicit_terms = tuple(explicit_terms)
        self.personal_terms = tuple(personal_terms)
        self.generic_terms = tuple(generic_terms)
        self.placeholder_markers = tuple(m.lower() for m in placeholder_markers)
        self.min_title_length = min_title_length

    @classmethod
    def from_config(
        cls, filters: dict[str, Any], min_title_length: int = MIN_TITLE_LENGTH
    ) -> "QualityFilter":
        """Build from the ``filters`` section of the ingestion config."""
        return cls(
            explicit_terms=filters.get("explicit_terms") or DEFAULT_EXPLICIT_TERMS,
            personal_terms=filters.get("personal_terms") or DEFAULT_PERSONAL_TERMS,
            generic_terms=filters.get("generic_terms") or DEFAULT_GENERIC_TERMS,
            placeholder_markers=filters.get("placeholder_markers")
            or DEFAULT_PLACEHOLDER_MARKERS,
            min_title_length=min_title_length,
        )

    # ------------------------------------------------------------------
    # Pre-normalization
    # ------------------------------------------------------------------

    def accept(self, candidate: RawCandidate) -> bool:
        return self.evaluate(candidate).keep

    def evaluate(self, candidate: RawCandidate) -> QualityResult:
        """Evaluate a candidate and decide keep/drop."""
        issues: list[QualityIssue] = []

        image_issue = self._check_image(candidate.image_url)
        if image_issue:
            issues.append(image_issue)

        text = " ".join(t for t in (candidate.title, candidate.description) if t)
        for code, terms, label in (
            (DENYLISTED_CONTENT, self.explicit_terms, "explicit content"),
            (PERSONAL_EVENT, self.personal_terms, "personal gathering"),
            (GENERIC_LISTING, self.generic_terms, "generic listing"),
        ):
            hits = find_terms(text, terms)
            if hits:
                issues.append(
                    QualityIssue("error", code, f"{label}: {', '.join(hits[:3])}")
                )

        if not candidate.description:
            issues.append(QualityIssue("warning", "missing_description", "no description"))

        keep = not any(i.level == "error" for i in issues)
        return QualityResult(keep=keep, issues=issues)

    def _check_image(self, url: str | None) -> QualityIssue | None:
        if not url or not url.strip():
            return QualityIssue("error", MISSING_IMAGE, "candidate has no image")
        lowered = url.lower()
        for marker in self.placeholder_markers:
            if marker in lowered:
                return QualityIssue(
                    "error", PLACEHOLDER_IMAGE, f"image looks like a placeholder ({marker})"
                )
        return None

    # ------------------------------------------------------------------
    # Post-normalization
    # ------------------------------------------------------------------

    def check_title(self, title: str) -> QualityIssue | None:
        """Guard applied to the normalized title before classification."""
        if len(title.strip()) < self.min_title_length:
            return QualityIssue(
                "error", TITLE_TOO_SHORT, f"title shorter than {self.min_title_length}"
            )
        if is_bare_place(title):
            return QualityIssue("error", BARE_PLACE_TITLE, f"title is only a place: {title!r}")
        if is_bare_person_name(title):
            return QualityIssue("error", BARE_PERSON_TITLE, f"title is only a name: {title!r}")
        return None

