"""
Shared pytest fixtures for the agenda ingestion test suite.

Provides factory fixtures for RawCandidate and NormalizedEvent objects and
in-memory stores, so no test needs a network or a database.
"""

import itertools
from datetime import date, time
from typing import Optional

import pytest

from agenda_ingest.ingestion.operation_logger import InMemoryOperationLogStore, OperationLogger
from agenda_ingest.ingestion.persist import InMemoryEventStore
from agenda_ingest.schemas.event import EventCategory, NormalizedEvent, RawCandidate

# Reference day used by date-sensitive tests
TODAY = date(2026, 3, 1)

_counter = itertools.count(1)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def create_candidate():
    """
    Return a function that creates RawCandidate objects with sensible defaults.

    Every call gets a unique source URL unless one is given.

    Example:
        candidate = create_candidate(title="Noite de Jazz e Blues", image_url=None)
    """

    def _create_candidate(
        title: str = "Workshop de Fotografia Digital",
        source_url: Optional[str] = None,
        **kwargs,
    ) -> RawCandidate:
        n = next(_counter)
        defaults = {
            "title": title,
            "description": "Aprenda técnicas de fotografia com profissionais da área.",
            "raw_date": "2026-03-10",
            "raw_location": "Teatro Municipal, Porto Velho - RO",
            "image_url": f"https://img.example.com/events/{n}.jpg",
            "source_id": "sympla",
            "source_url": source_url or f"https://www.sympla.com.br/evento/{n}",
        }
        defaults.update(kwargs)
        return RawCandidate(**defaults)

    return _create_candidate


@pytest.fixture
def create_event():
    """
    Return a function that creates NormalizedEvent objects with sensible defaults.

    Example:
        event = create_event(title="Festival de Inverno 2026")
    """

    def _create_event(
        title: str = "Workshop de Fotografia Digital",
        source_url: Optional[str] = None,
        **kwargs,
    ) -> NormalizedEvent:
        n = next(_counter)
        defaults = {
            "title": title,
            "date": date(2026, 3, 10),
            "time": time(19, 0),
            "venue": "Teatro Municipal",
            "city": "Porto Velho",
            "location": "Teatro Municipal - Porto Velho",
            "category": EventCategory.EDUCATION,
            "image_url": f"https://img.example.com/events/{n}.jpg",
            "source_id": "sympla",
            "source_url": source_url or f"https://www.sympla.com.br/evento/{n}",
            "content_hash": f"hash-{n}",
        }
        defaults.update(kwargs)
        return NormalizedEvent(**defaults)

    return _create_event


@pytest.fixture
def event_store():
    """In-memory event store with the default dry-run organizer."""
    return InMemoryEventStore()


@pytest.fixture
def operation_logger():
    """Operation logger backed by an in-memory log store."""
    return OperationLogger(InMemoryOperationLogStore())
