"""
Shared text helpers for Portuguese event listings.

Accent folding, whitespace cleanup, term matching and the shape checks that
decide whether a title is a bare place name or a bare person name.
"""

from __future__ import annotations

import re
import unicodedata
from functools import lru_cache
from typing import Iterable

_WS = re.compile(r"\s+")

# Brazilian federative units (UF codes).
BRAZIL_UFS: frozenset[str] = frozenset(
    {
        "AC", "AL", "AP", "AM", "BA", "CE", "DF", "ES", "GO", "MA", "MT", "MS",
        "MG", "PA", "PB", "PR", "PE", "PI", "RJ", "RN", "RS", "RO", "RR", "SC",
        "SP", "SE", "TO",
    }
)

STATE_NAMES: tuple[str, ...] = (
    "Acre", "Alagoas", "Amapá", "Amazonas", "Bahia", "Ceará", "Distrito Federal",
    "Espírito Santo", "Goiás", "Maranhão", "Mato Grosso", "Mato Grosso do Sul",
    "Minas Gerais", "Pará", "Paraíba", "Paraná", "Pernambuco", "Piauí",
    "Rio de Janeiro", "Rio Grande do Norte", "Rio Grande do Sul", "Rondônia",
    "Roraima", "Santa Catarina", "São Paulo", "Sergipe", "Tocantins", "Brasil",
)

KNOWN_CITIES: tuple[str, ...] = (
    # capitals and large cities
    "São Paulo", "Rio de Janeiro", "Brasília", "Salvador", "Fortaleza",
    "Belo Horizonte", "Manaus", "Curitiba", "Recife", "Goiânia", "Belém",
    "Porto Alegre", "Guarulhos", "Campinas", "São Luís", "São Gonçalo", "Maceió",
    "Duque de Caxias", "Natal", "Teresina", "Campo Grande", "Nova Iguaçu",
    "São Bernardo do Campo", "João Pessoa", "Santo André", "Osasco",
    "Jaboatão dos Guararapes", "São José dos Campos", "Ribeirão Preto",
    "Uberlândia", "Sorocaba", "Contagem", "Aracaju", "Feira de Santana",
    "Cuiabá", "Joinville", "Juiz de Fora", "Londrina", "Aparecida de Goiânia",
    "Niterói", "Florianópolis", "Vitória", "Palmas", "Macapá", "Rio Branco",
    "Boa Vista", "Santos",
    # Rondônia
    "Porto Velho", "Ji-Paraná", "Ariquemes", "Cacoal", "Vilhena",
    "Rolim de Moura", "Jaru", "Ouro Preto do Oeste", "Guajará-Mirim",
    "Presidente Médici", "Pimenta Bueno", "Buritis", "Nova Mamoré",
    "Candeias do Jamari", "Machadinho d'Oeste", "Espigão d'Oeste",
)

# Words that make a two-token title an event rather than a person.
EVENT_KEYWORDS: frozenset[str] = frozenset(
    {
        "show", "shows", "evento", "festival", "festa", "feira", "curso",
        "teatro", "workshop", "palestra", "corrida", "maratona", "congresso",
        "baile", "carnaval", "rock", "samba", "jazz", "forro", "sertanejo",
        "sertaneja", "funk", "pagode", "expo", "live", "tour", "party", "noite",
        "encontro", "seminario", "simposio", "concerto", "musical", "stand",
        "comedy", "circo", "arraia", "quadrilha", "exposicao", "mostra", "cinema",
        "fest", "open", "summit", "meetup", "conferencia", "torneio", "campeonato",
        "copa", "night", "experience", "tributo", "acustico", "culto", "retiro",
    }
)

WEEKDAYS: tuple[str, ...] = (
    "segunda-feira", "terça-feira", "quarta-feira", "quinta-feira", "sexta-feira",
    "segunda", "terça", "quarta", "quinta", "sexta", "sábado", "domingo",
)

# "Belém, PA" / "Belém/PA" / "Belém - PA"
_PLACE_UF = re.compile(
    r"^(?P<city>[^\W\d_][\w'\s.-]*?)\s*(?:,|/|\s-\s)\s*(?P<uf>[A-Z]{2})$"
)
# "Porto Velho RO"
_PLACE_UF_SPACED = re.compile(r"^(?P<city>[^\W\d_][\w'\s.-]*?)\s+(?P<uf>[A-Z]{2})$")
_PERSON_TITLE = re.compile(r"^[A-ZÀ-Ý][a-zà-ÿ]+ [A-ZÀ-Ý][a-zà-ÿ]+$")
_PERSON_CAPS = re.compile(r"^[A-ZÀ-Ý]+ [A-ZÀ-Ý]+$")


def fold_accents(text: str) -> str:
    """Lowercase and strip diacritics ("São Paulo" -> "sao paulo")."""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def normalize_ws(text: str | None) -> str:
    """Collapse runs of whitespace and trim."""
    if not text:
        return ""
    return _WS.sub(" ", text).strip()


def strip_or_none(text: str | None) -> str | None:
    """Whitespace-normalized text, or None when nothing is left."""
    cleaned = normalize_ws(text)
    return cleaned or None


@lru_cache(maxsize=1024)
def _term_pattern(term: str) -> re.Pattern:
    folded = re.escape(fold_accents(term))
    return re.compile(rf"(?<!\w){folded}(?!\w)")


def contains_term(text: str | None, term: str) -> bool:
    """Whole-word, accent-insensitive, case-insensitive term match."""
    if not text or not term:
        return False
    return _term_pattern(term).search(fold_accents(text)) is not None


def find_terms(text: str | None, terms: Iterable[str]) -> list[str]:
    """Return the terms from ``terms`` present in ``text``."""
    if not text:
        return []
    return [t for t in terms if contains_term(text, t)]


_FOLDED_CITIES = {fold_accents(c) for c in KNOWN_CITIES}
_FOLDED_STATES = {fold_accents(s) for s in STATE_NAMES}


def is_known_city(name: str | None) -> bool:
    if not name:
        return False
    return fold_accents(normalize_ws(name)) in _FOLDED_CITIES


def is_bare_place(title: str | None) -> bool:
    """
    True when the title is only a place.

    Matches "Belém, PA", "Belém/PA", "Belém - PA", "Porto Velho RO" (UF must be
    a real state code) and bare city or state names such as "Ji-Paraná".
    """
    text = normalize_ws(title)
    if not text:
        return False

    folded = fold_accents(text)
    if folded in _FOLDED_CITIES or folded in _FOLDED_STATES:
        return True

    m = _PLACE_UF.match(text)
    if m and m.group("uf") in BRAZIL_UFS:
        city = fold_accents(m.group("city").strip(" ,/-"))
        if city in _FOLDED_CITIES:
            return True
        words = city.split()
        return len(words) <= 3 and not any(w in EVENT_KEYWORDS for w in words)

    # Without punctuation the city itself has to be a known one.
    m = _PLACE_UF_SPACED.match(text)
    if m and m.group("uf") in BRAZIL_UFS:
        return fold_accents(m.group("city")) in _FOLDED_CITIES
    return False


def is_bare_person_name(title: str | None) -> bool:
    """
    True for two capitalized tokens that look like a person ("Maria Silva", "JOAO SOUZA").

    Tokens that are event words ("Festa Junina", "ROCK NIGHT") do not count.
    """
    text = normalize_ws(title)
    if not text or len(text) >= 30:
        return False
    if not (_PERSON_TITLE.match(text) or _PERSON_CAPS.match(text)):
        return False
    tokens = fold_accents(text).split()
    return not any(tok in EVENT_KEYWORDS for tok in tokens)


def strip_weekdays(text: str) -> str:
    """Remove Portuguese weekday names ("sexta-feira", "sábado")."""
    out = text
    for day in WEEKDAYS:
        out = re.sub(rf"(?<!\w){re.escape(day)}(?!\w)", " ", out, flags=re.IGNORECASE)
    return normalize_ws(out)
