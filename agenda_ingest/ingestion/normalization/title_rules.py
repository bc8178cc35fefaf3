"""
Title truncation rules.

Source titles often run the event name straight into the venue, the date or a
race distance ("RESENHA DO ASSISSeu Geraldo Boteco", "... 2025. 5K"). Each rule
here is a pure ``str -> str | None`` function: it returns the shortened title
when it applies, or None. A rule only applies when the retained prefix keeps
at least ``min_length`` characters after trailing connectors are trimmed.

``apply_rules`` runs the ordered list to a fixed point: after any rule changes
the title, evaluation restarts from the first rule.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

logger = logging.getLogger(__name__)

UPPER = "A-ZÁÀÂÃÉÊÍÓÔÕÚÇÜ"
LOWER = "a-záàâãéêíóôõúçü"

# Words that may dangle at the end of a cut title ("Show no", "Festa de").
TRAILING_CONNECTORS = frozenset(
    {"no", "na", "nos", "nas", "em", "com", "e", "de", "do", "da", "dos", "das", "at", "in", "@"}
)
_TRAILING_PUNCT = " \t-–—|!,.;:/&+"

SEPARATORS: tuple[str, ...] = ("|", "!", "–", "—", " - ")

ADDRESS_WORDS: tuple[str, ...] = (
    "Av.", "Avenida", "Rua", "R.", "Alameda", "Travessa", "Rodovia", "Estrada",
)
VENUE_WORDS: tuple[str, ...] = (
    "Praça", "Igreja", "Clube", "Estádio", "Arena", "Centro", "Ginásio", "Teatro",
    "Bar", "Hotel", "Shopping", "Espaço", "Auditório", "Salão", "Boteco",
    "Parque", "Pavilhão", "Casa",
)
_VENUE_TAIL_HINTS = ("clube", "igreja", "centro", "bar", "boteco", "espaço", "arena")
_NAME_CONNECTORS = frozenset({"de", "do", "da", "dos", "das", "e", "d'"})


def trim_tail(text: str) -> str:
    """Drop trailing punctuation and dangling connector words."""
    out = text.strip()
    while True:
        prev = out
        out = out.rstrip(_TRAILING_PUNCT).strip()
        words = out.split()
        if words and words[-1].lower() in TRAILING_CONNECTORS:
            out = " ".join(words[:-1])
        if out == prev:
            return out


def _keep(prefix: str, min_length: int) -> str | None:
    kept = trim_tail(prefix)
    return kept if len(kept) >= min_length else None


@dataclass(frozen=True)
class TitleRule:
    """A named truncation rule."""

    name: str
    min_length: int
    func: Callable[[str, int], str | None]

    def __call__(self, title: str) -> str | None:
        return self.func(title, self.min_length)


# ============================================================================
# RULES
# ============================================================================


def split_at_separator(title: str, min_length: int) -> str | None:
    """'Festival de Inverno | Ingressos' -> 'Festival de Inverno'."""
    positions = sorted(
        idx for sep in SEPARATORS if (idx := title.find(sep)) > 0
    )
    for idx in positions:
        kept = _keep(title[:idx], min_length)
        if kept:
            return kept
    return None


_CAPS_TO_MIXED = re.compile(rf"^([{UPPER}\s]+?)([{UPPER}][{LOWER}].*)$")


def cut_caps_to_mixed(title: str, min_length: int) -> str | None:
    """'RESENHA DO ASSISSeu Geraldo Boteco' -> 'RESENHA DO ASSIS'."""
    m = _CAPS_TO_MIXED.match(title)
    if not m:
        return None
    return _keep(m.group(1), min_length)


_DIA_NUMBER = re.compile(r"^(.+?)\s+dia\s+\d{1,2}\b", re.IGNORECASE)


def cut_at_dia(title: str, min_length: int) -> str | None:
    """'Baile do Havaí dia 12 de outubro' -> 'Baile do Havaí'."""
    m = _DIA_NUMBER.match(title)
    if not m:
        return None
    return _keep(m.group(1), min_length)


_COM_CAPITAL = re.compile(rf"^(.+?)\s+com\s+[{UPPER}]")


def cut_at_com(title: str, min_length: int) -> str | None:
    """'Noite do Forró com Trio Nordestino' -> 'Noite do Forró'."""
    m = _COM_CAPITAL.match(title)
    if not m:
        return None
    return _keep(m.group(1), min_length)


_ADDRESS_RE = re.compile(
    r"\s(?:" + "|".join(re.escape(w) for w in ADDRESS_WORDS) + r")(?=\s|$)"
)
_VENUE_RE = re.compile(
    rf"(?:(?<=[{LOWER}{UPPER}0-9])|\s)(?:"
    + "|".join(re.escape(w) for w in VENUE_WORDS)
    + r")(?![\w])"
)


def cut_at_venue_keyword(title: str, min_length: int) -> str | None:
    """
    'Encontro de Jovens Igreja Batista Central' -> 'Encontro de Jovens'.

    Address words cut when preceded by a space; venue words also cut when glued
    to the previous word. A venue word preceded by a preposition ("Festival de
    Teatro") is part of the name and is left alone.
    """
    cuts = sorted(
        {m.start() for m in _ADDRESS_RE.finditer(title)}
        | {m.start() for m in _VENUE_RE.finditer(title)}
    )
    for idx in cuts:
        prefix = title[:idx]
        words = prefix.split()
        if not words:
            continue
        if words[-1].lower() in _NAME_CONNECTORS:
            continue
        kept = _keep(prefix, min_length)
        if kept:
            return kept
    return None


_YEAR_ACRONYM = re.compile(r"^(.+20\d{2})[A-Z]{2,}")


def cut_year_acronym(title: str, min_length: int) -> str | None:
    """'FESTIVAL DE VERÃO 2025SESC' -> 'FESTIVAL DE VERÃO 2025'."""
    m = _YEAR_ACRONYM.match(title)
    if not m:
        return None
    return _keep(m.group(1), min_length)


_RACE_AFTER_YEAR = re.compile(r"^(.+20\d{2})[.\s]*\d+\s*[kK][mM]?\b.*$")
_RACE_NO_YEAR = re.compile(r"^(.+?)\s*\d+\s*[kK][mM]?\b.*$")


def cut_race_distance(title: str, min_length: int) -> str | None:
    """'2ª PVH CITY HALF MARATHON 2025. 5K' -> '2ª PVH CITY HALF MARATHON 2025'."""
    m = _RACE_AFTER_YEAR.match(title)
    if m:
        return _keep(m.group(1), min_length)
    m = _RACE_NO_YEAR.match(title)
    if m:
        return _keep(m.group(1), min_length)
    return None


_GLUED_BOUNDARY = re.compile(rf"(?<=[{LOWER}])(?=[{UPPER}])")
_TITLE_WORD = re.compile(rf"^[{UPPER}][{LOWER}'’-]+$")


def _is_venue_shaped(fragment: str) -> bool:
    words = fragment.split()
    if not words:
        return False
    lowered = fragment.lower()
    if any(hint in lowered for hint in _VENUE_TAIL_HINTS):
        return True
    return all(_TITLE_WORD.match(w) or w.lower() in _NAME_CONNECTORS for w in words)


def cut_run_together(title: str, min_length: int) -> str | None:
    """'Festa Junina da EscolaClube Recreativo' -> 'Festa Junina da Escola'."""
    for m in _GLUED_BOUNDARY.finditer(title):
        idx = m.start()
        tail = title[idx:]
        if not _is_venue_shaped(tail):
            continue
        kept = _keep(title[:idx], min_length)
        if kept:
            return kept
    return None


_REPEATED = re.compile(r"^(.{10,}?)\s*[-|,]?\s*\1$", re.IGNORECASE)


def drop_repetition(title: str, min_length: int) -> str | None:
    """'Show da Virada Show da Virada' -> 'Show da Virada'."""
    m = _REPEATED.match(title)
    if not m:
        return None
    return _keep(m.group(1), min_length)


DEFAULT_TITLE_RULES: tuple[TitleRule, ...] = (
    TitleRule("separator", 10, split_at_separator),
    TitleRule("caps_to_mixed", 10, cut_caps_to_mixed),
    TitleRule("dia_number", 8, cut_at_dia),
    TitleRule("com_capital", 10, cut_at_com),
    TitleRule("venue_keyword", 10, cut_at_venue_keyword),
    TitleRule("year_acronym", 15, cut_year_acronym),
    TitleRule("race_distance", 15, cut_race_distance),
    TitleRule("run_together", 10, cut_run_together),
    TitleRule("repetition", 10, drop_repetition),
)


def apply_rules(
    title: str, rules: Sequence[TitleRule] | Iterable[TitleRule] = DEFAULT_TITLE_RULES
) -> str:
    """Apply ``rules`` until none of them changes the title."""
    rules = tuple(rules)
    current = title.strip()
    # Every applied rule strictly shortens the title, so this terminates.
    while True:
        for rule in rules:
            result = rule(current)
            if result is not None and result != current:
                logger.debug(f"Title rule {rule.name}: {current!r} -> {result!r}")
                current = result
                break
        else:
            return current
