"""
Portuguese date and time parsing for event listings.

Dates are soft-required: anything that cannot be parsed resolves to one month
from the reference day instead of raising. All functions take an explicit
``today`` so results are reproducible.
"""

from __future__ import annotations

import calendar
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from agenda_ingest.ingestion.normalization.text_utils import fold_accents

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TIME = time(19, 0)

# Month name (full or abbreviated, accent-folded) -> month number
PORTUGUESE_MONTHS: dict[str, int] = {
    "janeiro": 1, "jan": 1,
    "fevereiro": 2, "fev": 2,
    "marco": 3, "mar": 3,
    "abril": 4, "abr": 4,
    "maio": 5, "mai": 5,
    "junho": 6, "jun": 6,
    "julho": 7, "jul": 7,
    "agosto": 8, "ago": 8,
    "setembro": 9, "set": 9,
    "outubro": 10, "out": 10,
    "novembro": 11, "nov": 11,
    "dezembro": 12, "dez": 12,
}

# Matches the start of any month name ("nov", "novembro", "março").
MONTH_PATTERN = r"(?:jan|fev|mar|abr|mai|jun|jul|ago|set|out|nov|dez)"

_ISO_DATE = re.compile(r"(?<!\d)(\d{4})-(\d{2})-(\d{2})(?!\d)")
_NUMERIC_DATE = re.compile(r"(?<![\d:])(\d{1,2})[/.-](\d{1,2})(?:[/.-](\d{4}|\d{2}))?(?![\d:])")
_PORTUGUESE_DATE = re.compile(
    r"(?<!\d)(\d{1,2})\s*[ºo]?\s*(?:de\s+)?([a-z]{3,9})\.?(?:\s*(?:de\s+|,\s*)?(\d{4}))?",
)

_TIME_WITH_AS = re.compile(r"(?:às|as)\s+(\d{1,2})(?::|h)(\d{2})", re.IGNORECASE)
_TIME_CLOCK = re.compile(r"(?<![\d/])(\d{1,2}):(\d{2})(?!\d)")
_TIME_HOURS = re.compile(r"(?<![\d/])(\d{1,2})h(\d{2})?(?![\w])", re.IGNORECASE)

PAST_WINDOW_DAYS = 365
FUTURE_WINDOW_DAYS = 730


@dataclass(frozen=True)
class ResolvedDate:
    """A parsed date and whether it is the one-month fallback."""

    value: date
    is_fallback: bool = False


def add_one_month(day: date) -> date:
    """Same day next month, clamped to the month's last day."""
    year = day.year + (1 if day.month == 12 else 0)
    month = 1 if day.month == 12 else day.month + 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


def is_reasonable_date(value: date, today: date) -> bool:
    """Within one year back and two years ahead of ``today``."""
    return (
        today - timedelta(days=PAST_WINDOW_DAYS)
        <= value
        <= today + timedelta(days=FUTURE_WINDOW_DAYS)
    )


def _next_occurrence(day: int, month: int, today: date) -> date:
    """Day/month in the current year, or next year if already past."""
    candidate = date(today.year, month, day)
    if candidate < today:
        candidate = date(today.year + 1, month, day)
    return candidate


def _expand_year(raw_year: str) -> int:
    year = int(raw_year)
    return 2000 + year if year < 100 else year


def parse_date_strict(raw: Optional[str], today: Optional[date] = None) -> Optional[date]:
    """
    Parse a free-text date, returning None when nothing matches.

    Accepts ISO dates, DD/MM[/YYYY] (``/``, ``-`` or ``.``), and Portuguese
    phrases such as "30 de nov", "17 de agosto de 2024" or "sáb, 12 out".
    Year-less dates resolve to their next occurrence on or after ``today``.
    """
    if not raw or not raw.strip():
        return None
    today = today or date.today()
    text = raw.strip()

    try:
        m = _ISO_DATE.search(text)
        if m:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

        folded = fold_accents(text)
        for m in _PORTUGUESE_DATE.finditer(folded):
            month = _month_from_word(m.group(2))
            if month is None:
                continue
            day = int(m.group(1))
            if m.group(3):
                return date(int(m.group(3)), month, day)
            return _next_occurrence(day, month, today)

        m = _NUMERIC_DATE.search(text)
        if m:
            day, month = int(m.group(1)), int(m.group(2))
            if m.group(3):
                return date(_expand_year(m.group(3)), month, day)
            return _next_occurrence(day, month, today)
    except ValueError:
        # e.g. 31/02 or 29 de fev in a non-leap year
        logger.debug(f"Impossible calendar date in {raw!r}")
        return None

    return None


def _month_from_word(word: str) -> Optional[int]:
    if word in PORTUGUESE_MONTHS:
        return PORTUGUESE_MONTHS[word]
    # "novembro" / "nov." / "setemb"
    prefix = word[:3]
    if prefix in PORTUGUESE_MONTHS and (
        len(word) == 3 or any(full.startswith(word) for full in PORTUGUESE_MONTHS)
    ):
        return PORTUGUESE_MONTHS[prefix]
    return None


def resolve_event_date(raw: Optional[str], today: Optional[date] = None) -> ResolvedDate:
    """
    Parse ``raw`` or fall back to one month from ``today``.

    Parsed dates outside the reasonable window are treated as unparseable.
    """
    today = today or date.today()
    parsed = parse_date_strict(raw, today)
    if parsed is not None and is_reasonable_date(parsed, today):
        return ResolvedDate(parsed)

    if parsed is not None:
        logger.debug(f"Date {parsed} from {raw!r} outside the accepted window")
    return ResolvedDate(add_one_month(today), is_fallback=True)


def parse_event_date(raw: Optional[str], today: Optional[date] = None) -> date:
    """Parse an event date. Never raises; see ``resolve_event_date``."""
    return resolve_event_date(raw, today).value


def parse_event_time(*texts: Optional[str]) -> time:
    """
    Extract a start time from the given texts, checked in order.

    Recognizes "às 20:30", "20:30", "20h30" and "20h". Defaults to 19:00.
    """
    for text in texts:
        if not text:
            continue
        for pattern in (_TIME_WITH_AS, _TIME_CLOCK, _TIME_HOURS):
            m = pattern.search(text)
            if not m:
                continue
            hour = int(m.group(1))
            minute = int(m.group(2) or 0)
            if 0 <= hour <= 23 and 0 <= minute <= 59:
                return time(hour, minute)
    return DEFAULT_EVENT_TIME


def parse_iso_datetime(raw: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (as found in JSON-LD startDate)."""
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
