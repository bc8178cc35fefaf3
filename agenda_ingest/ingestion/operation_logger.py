"""
Operation Logger.

A run-scoped ledger of what one pipeline execution did: how many candidates
were found and how each one ended (inserted, duplicated, rejected, errored).
Counts only grow while the run is open; sealing freezes the run for good.

Conservation rule checked at completion:

    found == inserted + duplicated + rejected + errored

Usage:
    op_logger = OperationLogger()
    run = op_logger.start_operation(kind=OperationType.SCRAPING, scope="multi")
    op_logger.record_found(3)
    op_logger.record_inserted()
    ...
    sealed = op_logger.complete_operation(run.id)
"""

import json
import logging
import random
import string
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

import psycopg2
from psycopg2.extras import Json, RealDictCursor

from agenda_ingest.ingestion.errors import (
    CountConservationError,
    IngestionError,
    RunSealedError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

OPERATION_LOG_TABLE = "scraping_logs"
MAX_STORED_ERRORS = 50


class OperationStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class OperationType(str, Enum):
    SCRAPING = "scraping"
    HEALTH_CHECK = "health_check"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_operation_id(kind: str = "scraping", scope: str = "multi") -> str:
    """Unique operation ID: ``{kind}_{scope}_{timestamp}_{random}``."""
    timestamp = _utc_now().strftime("%Y%m%d%H%M%S")
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"{kind}_{scope}_{timestamp}_{suffix}"


class _CountsView:
    found: int
    inserted: int
    duplicated: int
    rejected: int
    errored: int

    @property
    def dispositioned(self) -> int:
        return self.inserted + self.duplicated + self.rejected + self.errored

    @property
    def is_conserved(self) -> bool:
        return self.found == self.dispositioned

    def to_dict(self) -> Dict[str, int]:
        return {
            "found": self.found,
            "inserted": self.inserted,
            "duplicated": self.duplicated,
            "rejected": self.rejected,
            "errored": self.errored,
        }


@dataclass
class OperationCounts(_CountsView):
    """Per-run disposition counters."""

    found: int = 0
    inserted: int = 0
    duplicated: int = 0
    rejected: int = 0
    errored: int = 0


@dataclass(frozen=True)
class SealedCounts(_CountsView):
    """Counters of a sealed run."""

    found: int = 0
    inserted: int = 0
    duplicated: int = 0
    rejected: int = 0
    errored: int = 0


@dataclass
class OperationRun:
    """
    One bounded pipeline execution.

    Mutable only through OperationLogger while ``status`` is running. Sealing
    freezes counters and collections; any later assignment raises
    RunSealedError.
    """

    id: str
    kind: OperationType
    scope: str
    started_at: datetime = field(default_factory=_utc_now)
    config: Mapping[str, Any] = field(default_factory=dict)
    status: OperationStatus = OperationStatus.RUNNING
    counts: OperationCounts = field(default_factory=OperationCounts)
    rejection_reasons: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    failed_sources: List[str] = field(default_factory=list)
    summary: Mapping[str, Any] = field(default_factory=dict)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("_sealed"):
            raise RunSealedError(f"Operation {self.id} is sealed; cannot set {name}")
        super().__setattr__(name, value)

    @property
    def is_sealed(self) -> bool:
        return bool(self.__dict__.get("_sealed"))

    def _seal(self) -> None:
        object.__setattr__(self, "counts", SealedCounts(**self.counts.to_dict()))
        reasons = MappingProxyType(dict(self.rejection_reasons))
        object.__setattr__(self, "rejection_reasons", reasons)
        object.__setattr__(self, "errors", tuple(self.errors))
        object.__setattr__(self, "failed_sources", tuple(self.failed_sources))
        object.__setattr__(self, "config", MappingProxyType(dict(self.config)))
        object.__setattr__(self, "summary", MappingProxyType(dict(self.summary)))
        object.__setattr__(self, "_sealed", True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "scope": self.scope,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "counts": self.counts.to_dict(),
            "rejection_reasons": dict(self.rejection_reasons),
            "errors": list(self.errors),
            "failed_sources": list(self.failed_sources),
            "config": dict(self.config),
            "summary": dict(self.summary),
        }


# ============================================================================
# SINKS
# ============================================================================


class OperationLogStore(ABC):
    """Where run ledgers are persisted."""

    @abstractmethod
    def open(self, run: OperationRun) -> None:
        """Record that ``run`` started."""

    @abstractmethod
    def close(self, run: OperationRun) -> None:
        """Record the sealed state of ``run``."""

    @abstractmethod
    def recent_stats(self, hours: int = 24) -> Dict[str, Any]:
        """Aggregate counts of runs started within the last ``hours``."""

    @abstractmethod
    def cleanup_orphaned(self, max_age_minutes: int = 60) -> int:
        """Mark runs stuck in ``running`` for too long as failed. Returns the count."""


def _aggregate(rows: List[Mapping[str, Any]], hours: int) -> Dict[str, Any]:
    stats: Dict[str, Any] = {
        "hours": hours,
        "total_operations": len(rows),
        "completed": 0,
        "failed": 0,
        "running": 0,
        "events_found": 0,
        "events_inserted": 0,
        "events_duplicated": 0,
        "events_rejected": 0,
        "errors": 0,
        "avg_duration_ms": None,
    }
    durations = []
    for row in rows:
        status = row.get("status")
        if status in ("completed", "failed", "running"):
            stats[status] += 1
        stats["events_found"] += row.get("events_found") or 0
        stats["events_inserted"] += row.get("events_inserted") or 0
        stats["events_duplicated"] += row.get("events_duplicated") or 0
        stats["events_rejected"] += row.get("events_rejected") or 0
        stats["errors"] += row.get("errors_count") or 0
        if row.get("duration_ms") is not None:
            durations.append(row["duration_ms"])
    if durations:
        stats["avg_duration_ms"] = round(sum(durations) / len(durations))
    return stats


def _row_for(run: OperationRun) -> Dict[str, Any]:
    counts = run.counts
    return {
        "operation_id": run.id,
        "operation_type": run.kind.value,
        "source": run.scope,
        "status": run.status.value,
        "events_found": counts.found,
        "events_inserted": counts.inserted,
        "events_duplicated": counts.duplicated,
        "events_rejected": counts.rejected,
        "errors_count": counts.errored + len(run.failed_sources),
        "duration_ms": run.duration_ms,
        "filters_used": dict(run.config),
        "error_details": {
            "errors": list(run.errors)[:MAX_STORED_ERRORS],
            "rejection_reasons": dict(run.rejection_reasons),
            "failed_sources": list(run.failed_sources),
        },
        "started_at": run.started_at,
        "completed_at": run.completed_at,
    }


class InMemoryOperationLogStore(OperationLogStore):
    """Keeps run rows in memory (dry runs and tests)."""

    def __init__(self) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {}

    def open(self, run: OperationRun) -> None:
        self.rows[run.id] = _row_for(run)

    def close(self, run: OperationRun) -> None:
        self.rows[run.id] = _row_for(run)

    def recent_stats(self, hours: int = 24) -> Dict[str, Any]:
        since = _utc_now() - timedelta(hours=hours)
        rows = [r for r in self.rows.values() if r["started_at"] >= since]
        return _aggregate(rows, hours)

    def cleanup_orphaned(self, max_age_minutes: int = 60) -> int:
        cutoff = _utc_now() - timedelta(minutes=max_age_minutes)
        cleaned = 0
        for row in self.rows.values():
            if row["status"] == "running" and row["started_at"] < cutoff:
                row["status"] = "failed"
                row["completed_at"] = _utc_now()
                row["error_details"] = {"errors": ["orphaned operation"]}
                cleaned += 1
        return cleaned


class PostgresOperationLogStore(OperationLogStore):
    """Persists run ledgers to the ``scraping_logs`` table."""

    def __init__(self, connection) -> None:
        self.conn = connection

    def open(self, run: OperationRun) -> None:
        row = _row_for(run)
        columns = list(row.keys())
        values = [Json(v) if isinstance(v, dict) else v for v in row.values()]
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    f"INSERT INTO {OPERATION_LOG_TABLE} ({', '.join(columns)}) "
                    f"VALUES ({', '.join(['%s'] * len(columns))})",
                    values,
                )
            self.conn.commit()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise StoreUnavailableError(f"Could not open operation log: {e}") from e

    def close(self, run: OperationRun) -> None:
        row = _row_for(run)
        operation_id = row.pop("operation_id")
        row.pop("started_at")
        assignments = ", ".join(f"{col} = %s" for col in row)
        values = [Json(v) if isinstance(v, dict) else v for v in row.values()]
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    f"UPDATE {OPERATION_LOG_TABLE} SET {assignments} WHERE operation_id = %s",
                    [*values, operation_id],
                )
            self.conn.commit()
        except psycopg2.Error:
            self.conn.rollback()
            raise

    def recent_stats(self, hours: int = 24) -> Dict[str, Any]:
        since = _utc_now() - timedelta(hours=hours)
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"SELECT status, events_found, events_inserted, events_duplicated, "
                f"events_rejected, errors_count, duration_ms "
                f"FROM {OPERATION_LOG_TABLE} WHERE started_at >= %s",
                (since,),
            )
            rows = cur.fetchall()
        self.conn.rollback()
        return _aggregate(rows, hours)

    def cleanup_orphaned(self, max_age_minutes: int = 60) -> int:
        cutoff = _utc_now() - timedelta(minutes=max_age_minutes)
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    f"UPDATE {OPERATION_LOG_TABLE} "
                    "SET status = 'failed', completed_at = %s, error_details = %s "
                    "WHERE status = 'running' AND started_at < %s",
                    (_utc_now(), json.dumps({"errors": ["orphaned operation"]}), cutoff),
                )
                cleaned = cur.rowcount
            self.conn.commit()
        except psycopg2.Error:
            self.conn.rollback()
            raise
        return cleaned


# ============================================================================
# LOGGER
# ============================================================================


class OperationLogger:
    """
    Open, update and seal operation runs.

    Record methods act on the current run unless ``operation_id`` is given.
    All updates go through one lock, so concurrent source workers cannot lose
    increments.
    """

    def __init__(self, store: Optional[OperationLogStore] = None) -> None:
        self.store = store
        self.runs: Dict[str, OperationRun] = {}
        self.current_id: Optional[str] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_operation(
        self,
        operation_id: Optional[str] = None,
        kind: OperationType = OperationType.SCRAPING,
        scope: str = "multi",
        config: Optional[Mapping[str, Any]] = None,
    ) -> OperationRun:
        """
        Open a new run.

        Raises:
            StoreUnavailableError: the operation log store could not record it
        """
        kind = OperationType(kind)
        operation_id = operation_id or generate_operation_id(kind.value, scope)
        with self._lock:
            if operation_id in self.runs:
                raise IngestionError(f"Operation {operation_id} already exists")
            run = OperationRun(
                id=operation_id, kind=kind, scope=scope, config=dict(config or {})
            )
            if self.store is not None:
                self.store.open(run)
            self.runs[operation_id] = run
            self.current_id = operation_id

        logger.info(f"Operation started: {operation_id} ({kind.value}, scope={scope})")
        return run

    def complete_operation(
        self, operation_id: Optional[str] = None, summary: Optional[Mapping[str, Any]] = None
    ) -> OperationRun:
        """
        Seal a run as completed.

        Raises:
            CountConservationError: counts do not add up; the run stays open
            RunSealedError: the run was already sealed
        """
        with self._lock:
            run = self._open_run(operation_id)
            counts = run.counts
            if not counts.is_conserved:
                raise CountConservationError(
                    f"Operation {run.id}: found={counts.found} but "
                    f"inserted+duplicated+rejected+errored={counts.dispositioned} "
                    f"({counts.to_dict()})"
                )
            if summary:
                run.summary = {**run.summary, **summary}
            run.status = OperationStatus.COMPLETED
            self._seal(run)

        logger.info(
            f"Operation completed: {run.id} in {run.duration_ms}ms {run.counts.to_dict()}"
        )
        return run

    def fail_operation(
        self,
        operation_id: Optional[str] = None,
        error: Optional[BaseException | str] = None,
        summary: Optional[Mapping[str, Any]] = None,
    ) -> OperationRun:
        """
        Seal a run as failed, keeping the partial counts.

        Candidates found but never dispositioned are counted as errored under an
        explicit "abandoned" entry so the sealed run still balances.
        """
        with self._lock:
            run = self._open_run(operation_id)
            if error is not None:
                run.errors.append(f"run failed: {error}")

            counts = run.counts
            gap = counts.found - counts.dispositioned
            if gap > 0:
                counts.errored += gap
                run.errors.append(f"abandoned {gap} unprocessed candidate(s)")
            elif gap < 0:
                logger.error(
                    f"Operation {run.id} over-counted: found={counts.found}, "
                    f"dispositioned={counts.dispositioned}"
                )
                run.errors.append(
                    f"count conservation violated: found={counts.found}, "
                    f"dispositioned={counts.dispositioned}"
                )

            if summary:
                run.summary = {**run.summary, **summary}
            run.status = OperationStatus.FAILED
            self._seal(run)

        logger.error(f"Operation failed: {run.id}: {error} {run.counts.to_dict()}")
        return run

    def _seal(self, run: OperationRun) -> None:
        completed = _utc_now()
        run.completed_at = completed
        run.duration_ms = int((completed - run.started_at).total_seconds() * 1000)
        run._seal()
        if self.current_id == run.id:
            self.current_id = None
        if self.store is not None:
            try:
                self.store.close(run)
            except (psycopg2.Error, IngestionError) as e:
                # The sealed run is still returned to the caller.
                logger.error(f"Could not persist sealed operation {run.id}: {e}")

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def record_found(self, n: int = 1, operation_id: Optional[str] = None) -> None:
        if n < 0:
            raise ValueError("found count cannot decrease")
        with self._lock:
            self._open_run(operation_id).counts.found += n

    def record_inserted(self, operation_id: Optional[str] = None) -> None:
        with self._lock:
            self._open_run(operation_id).counts.inserted += 1

    def record_duplicated(self, operation_id: Optional[str] = None) -> None:
        with self._lock:
            self._open_run(operation_id).counts.duplicated += 1

    def record_rejected(self, reason: str, operation_id: Optional[str] = None) -> None:
        with self._lock:
            run = self._open_run(operation_id)
            run.counts.rejected += 1
            run.rejection_reasons[reason] = run.rejection_reasons.get(reason, 0) + 1

    def record_error(
        self, error: BaseException | str, operation_id: Optional[str] = None
    ) -> None:
        """Count a per-record error."""
        with self._lock:
            run = self._open_run(operation_id)
            run.counts.errored += 1
            run.errors.append(str(error))

    def record_source_failure(
        self, source_id: str, error: BaseException | str, operation_id: Optional[str] = None
    ) -> None:
        """Note a source that produced nothing because its adapter failed."""
        with self._lock:
            run = self._open_run(operation_id)
            run.failed_sources.append(source_id)
            run.errors.append(f"{source_id}: {error}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, operation_id: str) -> OperationRun:
        return self.runs[operation_id]

    def recent_stats(self, hours: int = 24) -> Dict[str, Any]:
        if self.store is None:
            rows = [_row_for(r) for r in self.runs.values()]
            since = _utc_now() - timedelta(hours=hours)
            return _aggregate([r for r in rows if r["started_at"] >= since], hours)
        return self.store.recent_stats(hours)

    def cleanup_orphaned(self, max_age_minutes: int = 60) -> int:
        if self.store is None:
            return 0
        cleaned = self.store.cleanup_orphaned(max_age_minutes)
        if cleaned:
            logger.warning(f"Marked {cleaned} orphaned operation(s) as failed")
        return cleaned

    def _open_run(self, operation_id: Optional[str]) -> OperationRun:
        operation_id = operation_id or self.current_id
        if operation_id is None:
            raise IngestionError("No operation in progress")
        run = self.runs.get(operation_id)
        if run is None:
            raise IngestionError(f"Unknown operation {operation_id}")
        if run.is_sealed:
            raise RunSealedError(f"Operation {operation_id} is sealed")
        return run
