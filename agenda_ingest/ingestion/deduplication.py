"""
Event deduplication.

Two checks, cheapest and most authoritative first:

1. Exact: the source URL was already accepted in this run or exists in the store.
2. Fuzzy: the title is at least ``threshold`` similar (normalized Levenshtein)
   to a title accepted earlier in this run or stored within the lookback window.

First seen wins. Check-and-register is serialized on a per-run lock so two
near-identical titles can never both be accepted.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

from agenda_ingest.ingestion.normalization.text_utils import fold_accents, normalize_ws
from agenda_ingest.schemas.event import NormalizedEvent

if TYPE_CHECKING:
    from agenda_ingest.ingestion.persist import EventStore

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.85
DEFAULT_PREFIX_LENGTH = 3


class DuplicateReason(str, Enum):
    """Why a candidate was considered a duplicate."""

    URL_IN_RUN = "duplicate_url_in_run"
    URL_IN_STORE = "duplicate_url_in_store"
    FUZZY_TITLE = "fuzzy_title"


@dataclass(frozen=True)
class DuplicateCheck:
    """Outcome of a duplicate check."""

    is_duplicate: bool
    reason: Optional[DuplicateReason] = None
    matched_title: Optional[str] = None
    similarity: Optional[float] = None


NOT_DUPLICATE = DuplicateCheck(is_duplicate=False)


# ============================================================================
# STRING SIMILARITY
# ============================================================================


def levenshtein_distance(a: str, b: str) -> int:
    """Classic dynamic-programming edit distance (insert/delete/substitute)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + cost,  # substitution
                )
            )
        previous = current
    return previous[-1]


def normalize_title_key(title: str) -> str:
    return normalize_ws(title).casefold()


def title_similarity(a: str, b: str) -> float:
    """
    Similarity in [0, 1]: ``(max_len - distance) / max_len``.

    Case-insensitive and trimmed; two empty titles are identical.
    """
    a, b = normalize_title_key(a), normalize_title_key(b)
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - levenshtein_distance(a, b)) / max_len


def title_prefix(title: str, length: int = DEFAULT_PREFIX_LENGTH) -> str:
    """Accent-folded leading characters used to bucket stored titles."""
    return fold_accents(normalize_ws(title))[:length]


# ============================================================================
# RUN STATE
# ============================================================================


@dataclass
class RunDedupeState:
    """
    Per-run dedupe index.

    ``accepted_titles`` holds titles accepted in this run (compared in full);
    ``lookback_index`` buckets stored titles by prefix.
    """

    accepted_urls: set[str] = field(default_factory=set)
    accepted_titles: list[str] = field(default_factory=list)
    lookback_index: dict[str, list[str]] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class EventDeduplicator:
    """
    Decide whether an event duplicates one already accepted or stored.

    Args:
        store: Event store used for the exact-URL check and lookback seeding
        threshold: Minimum title similarity that counts as a duplicate
        prefix_length: Prefix length for bucketing stored titles
    """

    def __init__(
        self,
        store: Optional["EventStore"] = None,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        prefix_length: int = DEFAULT_PREFIX_LENGTH,
    ):
        if not 0.0 < threshold <= 1.0:
            raise ValueError(f"threshold must be in (0, 1], got {threshold}")
        self.store = store
        self.threshold = threshold
        self.prefix_length = prefix_length
        self.state = RunDedupeState()

    def reset(self) -> None:
        """Start a fresh run index."""
        self.state = RunDedupeState()

    def seed(self, titles: Iterable[str]) -> int:
        """Index previously stored titles (the lookback window). Returns the count."""
        count = 0
        with self.state.lock:
            for title in titles:
                if not title:
                    continue
                key = title_prefix(title, self.prefix_length)
                self.state.lookback_index.setdefault(key, []).append(title)
                count += 1
        logger.debug(f"Seeded dedupe index with {count} stored titles")
        return count

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def is_duplicate(self, event: NormalizedEvent) -> DuplicateCheck:
        """Check ``event`` without registering it."""
        with self.state.lock:
            return self._check(event)

    def register(self, event: NormalizedEvent) -> None:
        """Record an accepted event so later candidates are compared to it."""
        with self.state.lock:
            self._register(event)

    def check_and_register(self, event: NormalizedEvent) -> DuplicateCheck:
        """Atomically check ``event`` and register it when it is not a duplicate."""
        with self.state.lock:
            result = self._check(event)
            if not result.is_duplicate:
                self._register(event)
            return result

    def _register(self, event: NormalizedEvent) -> None:
        self.state.accepted_urls.add(event.source_url)
        self.state.accepted_titles.append(event.title)

    def _check(self, event: NormalizedEvent) -> DuplicateCheck:
        if event.source_url in self.state.accepted_urls:
            return DuplicateCheck(True, DuplicateReason.URL_IN_RUN)

        if self.store is not None and self.store.url_exists(event.source_url):
            return DuplicateCheck(True, DuplicateReason.URL_IN_STORE)

        match = self._best_fuzzy_match(event.title)
        if match is not None:
            matched, score = match
            logger.info(
                f"Fuzzy duplicate ({score:.2f} >= {self.threshold}): "
                f"{event.title!r} ~ {matched!r} [{event.source_url}]"
            )
            return DuplicateCheck(True, DuplicateReason.FUZZY_TITLE, matched, score)

        return NOT_DUPLICATE

    def _best_fuzzy_match(self, title: str) -> Optional[tuple[str, float]]:
        key = title_prefix(title, self.prefix_length)
        candidates = list(self.state.accepted_titles)
        candidates.extend(self.state.lookback_index.get(key, ()))

        best: Optional[tuple[str, float]] = None
        for other in candidates:
            score = title_similarity(title, other)
            if score >= self.threshold and (best is None or score > best[1]):
                best = (other, score)
        return best
