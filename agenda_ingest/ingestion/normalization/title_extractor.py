"""
Canonical title extraction.

Turns a noisy listing title into the event name: recovers a title from the
description when the listing only shows a place or a person, strips inline
date/time/city details, runs the truncation rules and applies final cleanup.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Sequence

from agenda_ingest.ingestion.errors import NormalizationRejection
from agenda_ingest.ingestion.normalization.date_parser import MONTH_PATTERN
from agenda_ingest.ingestion.normalization.text_utils import (
    KNOWN_CITIES,
    is_bare_person_name,
    is_bare_place,
    normalize_ws,
    strip_weekdays,
)
from agenda_ingest.ingestion.normalization.title_rules import (
    DEFAULT_TITLE_RULES,
    TitleRule,
    apply_rules,
    trim_tail,
)

logger = logging.getLogger(__name__)

TITLE_UNRECOVERABLE = "title_unrecoverable"
TITLE_TOO_SHORT = "title_too_short"

MAX_RECOVERED_LENGTH = 100

_LABELLED_LINE = re.compile(
    r"(?:evento|show|apresentação|apresentacao|curso|workshop|palestra)\s*:\s*(.+)",
    re.IGNORECASE,
)
_TIME_PHRASE = re.compile(
    r"\s*(?:,\s*)?(?<!\w)(?:às|as|a partir das)\s+\d{1,2}(?::\d{2}|h\d{0,2})\b",
    re.IGNORECASE,
)
_DATE_PHRASE = re.compile(
    rf"\s*(?:,\s*)?\b\d{{1,2}}\s*de\s*{MONTH_PATTERN}\w*\.?(?:\s*de\s*\d{{4}})?",
    re.IGNORECASE,
)
_CITY_SUFFIX = re.compile(
    r"\s+em\s+(?P<city>"
    + "|".join(re.escape(c) for c in sorted(KNOWN_CITIES, key=len, reverse=True))
    + r")(?:\s*[-/,]\s*[A-Z]{2})?\s*$",
    re.IGNORECASE,
)


class TitleExtractor:
    """
    Extract a canonical event title.

    Raises NormalizationRejection with ``title_unrecoverable`` when the listing
    title is a bare place/person and the description offers nothing better, and
    ``title_too_short`` when the cleaned title is under ``min_length``.
    """

    def __init__(
        self,
        min_length: int = 10,
        recovery_min_line: int = 15,
        rules: Optional[Sequence[TitleRule]] = None,
    ):
        self.min_length = min_length
        self.recovery_min_line = recovery_min_line
        self.rules = tuple(rules) if rules is not None else DEFAULT_TITLE_RULES

    def extract(self, raw_title: str, description: Optional[str] = None) -> str:
        title = trim_tail(normalize_ws(raw_title))

        if not title or is_bare_place(title) or is_bare_person_name(title):
            recovered = self.recover_from_description(description)
            if not recovered:
                raise NormalizationRejection(TITLE_UNRECOVERABLE, raw_title)
            logger.debug(f"Recovered title {recovered!r} for listing {raw_title!r}")
            title = recovered

        title = self.strip_inline_details(title)
        title = apply_rules(title, self.rules)
        title = self.cleanup(title)

        if len(title) < self.min_length:
            raise NormalizationRejection(TITLE_TOO_SHORT, title)
        return title

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def recover_from_description(self, description: Optional[str]) -> Optional[str]:
        """
        Find a usable title in the description.

        Tried in order: an all-caps line, a labelled line ("Show: ..."), the
        first line at least ``recovery_min_line`` characters long.
        """
        if not description:
            return None
        lines = [normalize_ws(line) for line in description.splitlines()]
        lines = [line for line in lines if line]

        candidates = []
        candidates.extend(
            line for line in lines if len(line) >= 10 and _is_all_caps(line)
        )
        for line in lines:
            m = _LABELLED_LINE.search(line)
            if m:
                candidates.append(m.group(1))
        candidates.extend(line for line in lines if len(line) >= self.recovery_min_line)

        for candidate in candidates:
            candidate = trim_tail(_shorten(candidate))
            if len(candidate) > 10 and not is_bare_place(candidate):
                return candidate
        return None

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def strip_inline_details(self, title: str) -> str:
        """Remove a trailing city, time and date phrase when enough title remains."""
        out = title
        for pattern in (_CITY_SUFFIX, _TIME_PHRASE, _DATE_PHRASE):
            stripped = normalize_ws(pattern.sub(" ", out))
            if len(trim_tail(stripped)) >= self.min_length:
                out = stripped
        return out

    @staticmethod
    def cleanup(title: str) -> str:
        out = strip_weekdays(title)
        out = trim_tail(out)
        return normalize_ws(out)


def _is_all_caps(line: str) -> bool:
    letters = [ch for ch in line if ch.isalpha()]
    return bool(letters) and all(ch.isupper() for ch in letters)


def _shorten(text: str) -> str:
    """Cap recovered text at the first sentence end or a word boundary."""
    if len(text) <= MAX_RECOVERED_LENGTH:
        return text
    sentence = re.split(r"(?<=[.!?])\s", text, maxsplit=1)[0]
    if len(sentence) <= MAX_RECOVERED_LENGTH:
        return sentence
    return text[:MAX_RECOVERED_LENGTH].rsplit(" ", 1)[0]
