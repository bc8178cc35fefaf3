# Persistence layer for ingested events
"""
Persistence Layer for Event Ingestion.

Inserts accepted NormalizedEvent objects into the shared ``eventos`` table.
The store's unique constraint on ``external_url`` is the authoritative guard
against duplicates across concurrent runs; the gateway maps each insert to a
per-record outcome (created / skipped_duplicate / rejected_by_store).
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2.extras import RealDictCursor

from agenda_ingest.ingestion.errors import StoreConstraintError, StoreUnavailableError
from agenda_ingest.schemas.event import NormalizedEvent

logger = logging.getLogger(__name__)

EVENTS_TABLE = "eventos"
USERS_TABLE = "usuarios"


class SaveOutcome(str, Enum):
    """Per-record persistence outcome."""

    CREATED = "created"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    REJECTED_BY_STORE = "rejected_by_store"


@dataclass(frozen=True)
class SaveResult:
    """Result of saving a single event."""

    outcome: SaveOutcome
    event_id: Optional[str] = None
    error: Optional[str] = None


def build_event_row(event: NormalizedEvent, organizer_id: Optional[str]) -> Dict[str, Any]:
    """Map a NormalizedEvent to the ``eventos`` columns."""
    return {
        "titulo": event.title,
        "descricao": event.description or f"Evento encontrado no {event.source_id}",
        "data": event.date.isoformat(),
        "hora": event.time.strftime("%H:%M:%S"),
        "local": event.location,
        "categoria": event.store_category,
        "imagem_url": event.image_url,
        "organizador_id": organizer_id,
        "source": event.source_id,
        "external_url": event.source_url,
    }


# ============================================================================
# STORES
# ============================================================================


class EventStore(ABC):
    """Relational store of events keyed by id, unique on ``external_url``."""

    @abstractmethod
    def url_exists(self, url: str) -> bool:
        """True when an event with this external URL is already stored."""

    @abstractmethod
    def recent_titles(self, days: int) -> List[str]:
        """Titles of events stored within the last ``days`` days."""

    @abstractmethod
    def insert(self, row: Dict[str, Any]) -> Optional[str]:
        """
        Insert an event row.

        Returns:
            The new row id, or None when the URL already exists.

        Raises:
            StoreConstraintError: foreign-key/check/not-null violation
        """

    @abstractmethod
    def resolve_organizer(
        self, organizer_id: Optional[str] = None, email: Optional[str] = None
    ) -> str:
        """
        Return the organizer id that will own inserted events.

        Raises:
            StoreUnavailableError: organizer unknown or store unreachable
        """

    def close(self) -> None:
        """Release resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class PostgresEventStore(EventStore):
    """
    PostgreSQL-backed store.

    Each insert runs in its own transaction: a failed insert is rolled back
    and the connection stays usable for the next record.
    """

    def __init__(self, connection) -> None:
        """Initialize with an active psycopg2 connection."""
        self.conn = connection

    @classmethod
    def connect(cls, params: Dict[str, Any]) -> "PostgresEventStore":
        """Open a connection from psycopg2 parameters (see Settings.get_psycopg2_params)."""
        try:
            conn = psycopg2.connect(**params)
        except psycopg2.OperationalError as e:
            raise StoreUnavailableError(f"Could not connect to the event store: {e}") from e
        return cls(conn)

    def url_exists(self, url: str) -> bool:
        with self.conn.cursor() as cur:
            cur.execute(
                f"SELECT 1 FROM {EVENTS_TABLE} WHERE external_url = %s LIMIT 1", (url,)
            )
            found = cur.fetchone() is not None
        self.conn.rollback()
        return found

    def recent_titles(self, days: int) -> List[str]:
        since = date.today() - timedelta(days=days)
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"SELECT titulo FROM {EVENTS_TABLE} WHERE data >= %s",
                (since.isoformat(),),
            )
            rows = cur.fetchall()
        self.conn.rollback()
        return [row["titulo"] for row in rows if row.get("titulo")]

    def insert(self, row: Dict[str, Any]) -> Optional[str]:
        columns = list(row.keys())
        placeholders = ", ".join(["%s"] * len(columns))
        sql = (
            f"INSERT INTO {EVENTS_TABLE} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) "
            "ON CONFLICT (external_url) DO NOTHING "
            "RETURNING id"
        )
        try:
            with self.conn.cursor() as cur:
                cur.execute(sql, [row[c] for c in columns])
                result = cur.fetchone()
            self.conn.commit()
        except (
            pg_errors.ForeignKeyViolation,
            pg_errors.CheckViolation,
            pg_errors.NotNullViolation,
            pg_errors.UniqueViolation,
            psycopg2.DataError,
        ) as e:
            self.conn.rollback()
            constraint = getattr(getattr(e, "diag", None), "constraint_name", None)
            raise StoreConstraintError(str(e).strip(), constraint=constraint) from e
        except psycopg2.Error:
            self.conn.rollback()
            raise

        if result is None:
            return None
        return str(result[0])

    def resolve_organizer(
        self, organizer_id: Optional[str] = None, email: Optional[str] = None
    ) -> str:
        try:
            with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
                if organizer_id:
                    cur.execute(
                        f"SELECT id FROM {USERS_TABLE} WHERE id = %s", (organizer_id,)
                    )
                elif email:
                    cur.execute(
                        f"SELECT id FROM {USERS_TABLE} WHERE email = %s", (email,)
                    )
                else:
                    raise StoreUnavailableError(
                        "No organizer configured (ORGANIZER_ID or ORGANIZER_EMAIL)"
                    )
                row = cur.fetchone()
            self.conn.rollback()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise StoreUnavailableError(f"Organizer lookup failed: {e}") from e

        if not row:
            raise StoreUnavailableError(
                f"Organizer not found (id={organizer_id!r}, email={email!r})"
            )
        return str(row["id"])

    def close(self) -> None:
        if self.conn is not None and not self.conn.closed:
            self.conn.close()


class InMemoryEventStore(EventStore):
    """
    Store kept in process memory.

    Used for dry runs and tests; enforces the same unique ``external_url`` rule
    and an optional set of known organizers.
    """

    def __init__(
        self,
        organizers: Optional[Dict[str, str]] = None,
        rows: Optional[List[Dict[str, Any]]] = None,
    ):
        # organizer email -> id
        self.organizers = (
            {"dry-run@localhost": "dry-run-organizer"} if organizers is None else dict(organizers)
        )
        self.rows: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        for row in rows or []:
            self.rows[row["external_url"]] = dict(row)

    def url_exists(self, url: str) -> bool:
        with self._lock:
            return url in self.rows

    def recent_titles(self, days: int) -> List[str]:
        since = (date.today() - timedelta(days=days)).isoformat()
        with self._lock:
            return [
                r["titulo"] for r in self.rows.values() if str(r.get("data", "")) >= since
            ]

    def insert(self, row: Dict[str, Any]) -> Optional[str]:
        required = ("titulo", "data", "hora", "local", "imagem_url", "external_url")
        missing = [c for c in required if not row.get(c)]
        if missing:
            raise StoreConstraintError(
                f"null value in column(s) {', '.join(missing)}", constraint="not_null"
            )
        organizer = row.get("organizador_id")
        if organizer is not None and organizer not in self.organizers.values():
            raise StoreConstraintError(
                f"organizador_id {organizer!r} not present in {USERS_TABLE}",
                constraint="eventos_organizador_id_fkey",
            )

        with self._lock:
            if row["external_url"] in self.rows:
                return None
            event_id = str(uuid.uuid4())
            self.rows[row["external_url"]] = {
                **row,
                "id": event_id,
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
            return event_id

    def resolve_organizer(
        self, organizer_id: Optional[str] = None, email: Optional[str] = None
    ) -> str:
        if organizer_id:
            if organizer_id not in self.organizers.values():
                raise StoreUnavailableError(f"Organizer not found (id={organizer_id!r})")
            return organizer_id
        if email:
            if email not in self.organizers:
                raise StoreUnavailableError(f"Organizer not found (email={email!r})")
            return self.organizers[email]
        # Dry runs without explicit organizer use the first known one.
        if not self.organizers:
            raise StoreUnavailableError("No organizers known to the in-memory store")
        return next(iter(self.organizers.values()))


# ============================================================================
# GATEWAY
# ============================================================================


class PersistenceGateway:
    """
    Idempotent insert of accepted events.

    The insert is attempted unconditionally; a URL conflict reported by the
    store becomes ``skipped_duplicate`` and a constraint violation becomes
    ``rejected_by_store``. Neither aborts the run.
    """

    def __init__(self, store: EventStore, organizer_id: Optional[str] = None) -> None:
        self.store = store
        self.organizer_id = organizer_id

    def save(self, event: NormalizedEvent) -> SaveResult:
        row = build_event_row(event, self.organizer_id)
        try:
            event_id = self.store.insert(row)
        except StoreConstraintError as e:
            logger.warning(f"Store rejected '{event.title}' ({event.source_url}): {e}")
            return SaveResult(SaveOutcome.REJECTED_BY_STORE, error=str(e))

        if event_id is None:
            logger.debug(f"URL already stored, skipped: {event.source_url}")
            return SaveResult(SaveOutcome.SKIPPED_DUPLICATE)

        logger.debug(f"Inserted '{event.title}' as {event_id}")
        return SaveResult(SaveOutcome.CREATED, event_id=event_id)
