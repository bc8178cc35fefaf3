"""
Ingestion Orchestrator.

Drives one ingestion run through a fixed sequence of phases:

    idle -> authenticating -> health_checking -> configuring -> scraping
         -> processing -> persisting -> reporting -> done

with ``failed`` reachable from any non-terminal phase. Sources are scraped
concurrently (one worker thread each, with retry and timeout); everything
after scraping is sequential. Per-record problems are counted and never
abort the run; per-source failures never affect other sources. Every run
ends with a sealed OperationRun.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from itertools import islice
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

import psycopg2
from pydantic import ValidationError

from agenda_ingest.configs.config import Config
from agenda_ingest.configs.settings import Settings, get_settings
from agenda_ingest.ingestion.adapters import BaseSourceAdapter
from agenda_ingest.ingestion.classifier import EventClassifier
from agenda_ingest.ingestion.deduplication import EventDeduplicator
from agenda_ingest.ingestion.errors import (
    AdapterError,
    ConfigurationError,
    IngestionError,
    InvalidTransitionError,
    NormalizationRejection,
    RunCancelledError,
)
from agenda_ingest.ingestion.factory import AdapterFactory
from agenda_ingest.ingestion.health import HealthMonitor, HealthReport
from agenda_ingest.ingestion.normalization.normalizer import NormalizedFields, TextNormalizer
from agenda_ingest.ingestion.operation_logger import (
    OperationLogger,
    OperationLogStore,
    OperationRun,
    OperationStatus,
    OperationType,
)
from agenda_ingest.ingestion.persist import (
    EventStore,
    PersistenceGateway,
    SaveOutcome,
    SaveResult,
)
from agenda_ingest.ingestion.quality_filters import QualityFilter
from agenda_ingest.ingestion.resilience import CircuitBreaker, RetryPolicy, retry_call
from agenda_ingest.ingestion.run_config import RunConfig, RunConfigBuilder
from agenda_ingest.monitoring.events import emit_event
from agenda_ingest.monitoring.logging import with_context
from agenda_ingest.schemas.event import NormalizedEvent, RawCandidate

logger = logging.getLogger(__name__)

# Rejection reasons decided by the orchestrator itself
OUT_OF_REGION = "out_of_region"
CATEGORY_FILTERED = "category_filtered"
OUTSIDE_DATE_RANGE = "outside_date_range"
INVALID_EVENT = "invalid_event"


class PipelineState(str, Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    HEALTH_CHECKING = "health_checking"
    CONFIGURING = "configuring"
    SCRAPING = "scraping"
    PROCESSING = "processing"
    PERSISTING = "persisting"
    REPORTING = "reporting"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.DONE, PipelineState.FAILED)


PHASE_ORDER: List[PipelineState] = [
    PipelineState.IDLE,
    PipelineState.AUTHENTICATING,
    PipelineState.HEALTH_CHECKING,
    PipelineState.CONFIGURING,
    PipelineState.SCRAPING,
    PipelineState.PROCESSING,
    PipelineState.PERSISTING,
    PipelineState.REPORTING,
    PipelineState.DONE,
]


def check_transition(current: PipelineState, new: PipelineState) -> None:
    """
    Allow only the next phase in order, or ``failed`` from a non-terminal phase.

    Raises:
        InvalidTransitionError
    """
    if current.is_terminal:
        raise InvalidTransitionError(f"Run already finished ({current.value})")
    if new is PipelineState.FAILED:
        return
    if PHASE_ORDER.index(new) != PHASE_ORDER.index(current) + 1:
        raise InvalidTransitionError(f"Cannot go from {current.value} to {new.value}")


@dataclass(frozen=True)
class ProgressEvent:
    """Phase change or progress inside a phase."""

    phase: PipelineState
    completed: int
    total: int
    run_id: Optional[str] = None
    message: Optional[str] = None


ProgressListener = Callable[[ProgressEvent], None]


class CancellationToken:
    """Cooperative cancellation, checked at every phase transition."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str) -> None:
        if self.cancelled:
            raise RunCancelledError(f"Run cancelled before {where}")


@dataclass
class SourceScrapeResult:
    """What one source produced in the scraping phase."""

    source_id: str
    candidates: List[RawCandidate] = field(default_factory=list)
    error: Optional[str] = None
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "found": len(self.candidates),
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class RunResult:
    """Outcome of one orchestrated run."""

    run: OperationRun
    state: PipelineState
    source_results: Dict[str, SourceScrapeResult] = field(default_factory=dict)
    health: Dict[str, HealthReport] = field(default_factory=dict)
    saved: List[SaveResult] = field(default_factory=list)
    accepted: List[NormalizedEvent] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.DONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "run": self.run.to_dict(),
            "sources": {k: v.to_dict() for k, v in self.source_results.items()},
            "health": {k: v.to_dict() for k, v in self.health.items()},
            "saved": {
                outcome.value: sum(1 for s in self.saved if s.outcome is outcome)
                for outcome in SaveOutcome
            },
        }


class ReportSink(Protocol):
    """Receives the sealed result of every run."""

    def publish(self, result: RunResult) -> None:
        ...


@dataclass
class _RunContext:
    config: RunConfig
    token: CancellationToken
    today: date
    run: Optional[OperationRun] = None
    state: PipelineState = PipelineState.IDLE
    organizer_id: Optional[str] = None
    adapters: Dict[str, BaseSourceAdapter] = field(default_factory=dict)
    health: Dict[str, HealthReport] = field(default_factory=dict)
    source_results: Dict[str, SourceScrapeResult] = field(default_factory=dict)
    accepted: List[NormalizedEvent] = field(default_factory=list)
    saved: List[SaveResult] = field(default_factory=list)


class IngestionOrchestrator:
    """
    Coordinates adapters, processing stages, persistence and the operation log.

    Responsibilities:
    - Validate the run configuration against the configured sources
    - Scrape sources concurrently with retry, timeout and circuit breaking
    - Push every candidate through filter, normalizer, classifier and deduplicator
    - Persist accepted events idempotently
    - Keep the operation ledger balanced and seal it on every exit path
    """

    def __init__(
        self,
        store: EventStore,
        adapter_factory: Optional[AdapterFactory] = None,
        adapters: Optional[Mapping[str, BaseSourceAdapter]] = None,
        normalizer: Optional[TextNormalizer] = None,
        quality_filter: Optional[QualityFilter] = None,
        classifier: Optional[EventClassifier] = None,
        deduplicator: Optional[EventDeduplicator] = None,
        operation_logger: Optional[OperationLogger] = None,
        health_monitor: Optional[HealthMonitor] = None,
        retry_policy: Optional[RetryPolicy] = None,
        call_timeout_s: Optional[float] = None,
        organizer_id: Optional[str] = None,
        organizer_email: Optional[str] = None,
        lookback_days: int = 30,
        report_sink: Optional[ReportSink] = None,
        today: Optional[Callable[[], date]] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.adapter_factory = adapter_factory
        self._fixed_adapters = dict(adapters) if adapters is not None else None
        if self.adapter_factory is None and self._fixed_adapters is None:
            self.adapter_factory = AdapterFactory()

        self.normalizer = normalizer or TextNormalizer()
        self.quality_filter = quality_filter or QualityFilter()
        self.classifier = classifier or EventClassifier()
        self.deduplicator = deduplicator or EventDeduplicator(store=store)
        self.operation_logger = operation_logger or OperationLogger()
        self.health_monitor = health_monitor or HealthMonitor()
        self.retry_policy = retry_policy or RetryPolicy()
        self.call_timeout_s = call_timeout_s
        self.organizer_id = organizer_id
        self.organizer_email = organizer_email
        self.lookback_days = lookback_days
        self.report_sink = report_sink
        self._today = today or date.today
        self._sleep = sleep

        self.listeners: List[ProgressListener] = []
        self.breakers: Dict[str, CircuitBreaker] = {}
        self.execution_history: List[RunResult] = []

    @classmethod
    def from_config(
        cls,
        store: EventStore,
        settings: Optional[Settings] = None,
        config_path: Optional[str] = None,
        operation_log_store: Optional[OperationLogStore] = None,
        **kwargs: Any,
    ) -> "IngestionOrchestrator":
        """Build every stage from ingestion.yaml and the environment settings."""
        settings = settings or get_settings()
        config = Config.load_ingestion_config(config_path or settings.INGESTION_CONFIG_PATH)
        sources = config.get("sources") or {}
        normalizer_cfg = config.get("normalizer") or {}
        dedupe_cfg = config.get("deduplication") or {}
        regional = config.get("regional") or {}

        factory = AdapterFactory(sources=sources)
        min_title = int(normalizer_cfg.get("min_title_length", 10))
        kwargs.setdefault("adapter_factory", factory)
        kwargs.setdefault(
            "normalizer", TextNormalizer.from_config(normalizer_cfg, settings.DEFAULT_CITY)
        )
        kwargs.setdefault(
            "quality_filter", QualityFilter.from_config(config.get("filters") or {}, min_title)
        )
        kwargs.setdefault(
            "classifier",
            EventClassifier(
                regional_cities=regional.get("cities") or [],
                source_reliability={
                    name: float(cfg.get("reliability", 0.5)) for name, cfg in sources.items()
                },
            ),
        )
        kwargs.setdefault(
            "deduplicator",
            EventDeduplicator(
                store=store,
                threshold=float(dedupe_cfg.get("similarity_threshold", 0.85)),
                prefix_length=int(dedupe_cfg.get("prefix_length", 3)),
            ),
        )
        kwargs.setdefault("operation_logger", OperationLogger(operation_log_store))
        kwargs.setdefault(
            "health_monitor",
            HealthMonitor(float((config.get("health") or {}).get("floor", 70))),
        )
        kwargs.setdefault("retry_policy", RetryPolicy(max_retries=settings.MAX_RETRIES))
        kwargs.setdefault("call_timeout_s", settings.HTTP_TIMEOUT * 2)
        kwargs.setdefault("organizer_id", settings.ORGANIZER_ID)
        kwargs.setdefault("organizer_email", settings.ORGANIZER_EMAIL)
        kwargs.setdefault("lookback_days", int(dedupe_cfg.get("lookback_days", 30)))
        return cls(store=store, **kwargs)

    # ========================================================================
    # CONFIGURATION
    # ========================================================================

    def known_sources(self) -> List[str]:
        if self._fixed_adapters is not None:
            return list(self._fixed_adapters)
        return self.adapter_factory.list_enabled_sources()

    def config_builder(self) -> RunConfigBuilder:
        """Builder that knows which sources this orchestrator can run."""
        return RunConfigBuilder(self.known_sources())

    def add_listener(self, listener: ProgressListener) -> None:
        self.listeners.append(listener)

    def _resolve_adapters(self, source_ids: List[str]) -> Dict[str, BaseSourceAdapter]:
        if self._fixed_adapters is not None:
            missing = [s for s in source_ids if s not in self._fixed_adapters]
            if missing:
                raise ConfigurationError(f"No adapter for source(s): {', '.join(missing)}")
            return {s: self._fixed_adapters[s] for s in source_ids}
        return self.adapter_factory.create_adapters(source_ids)

    # ========================================================================
    # STATE & PROGRESS
    # ========================================================================

    def _transition(
        self,
        ctx: _RunContext,
        new: PipelineState,
        completed: int = 0,
        total: int = 0,
    ) -> None:
        check_transition(ctx.state, new)
        if new not in (PipelineState.FAILED, PipelineState.DONE):
            ctx.token.raise_if_cancelled(new.value)
        ctx.state = new
        self._progress(ctx, completed, total)

    def _progress(
        self, ctx: _RunContext, completed: int, total: int, message: Optional[str] = None
    ) -> None:
        run_id = ctx.run.id if ctx.run is not None else None
        event = ProgressEvent(ctx.state, completed, total, run_id=run_id, message=message)
        emit_event(
            with_context(self.logger, run_id=run_id, stage=ctx.state.value),
            "progress",
            {"phase": ctx.state.value, "completed": completed, "total": total},
            level="debug" if message else "info",
        )
        for listener in self.listeners:
            listener(event)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def run_sync(
        self, config: RunConfig, cancel_token: Optional[CancellationToken] = None
    ) -> RunResult:
        """Blocking wrapper around ``run``."""
        return asyncio.run(self.run(config, cancel_token))

    async def run(
        self, config: RunConfig, cancel_token: Optional[CancellationToken] = None
    ) -> RunResult:
        """
        Execute one ingestion run.

        Always returns a RunResult whose ``run`` is sealed, completed or failed.

        Raises:
            StoreUnavailableError: the operation log could not open the run
        """
        ctx = _RunContext(
            config=config, token=cancel_token or CancellationToken(), today=self._today()
        )
        ctx.run = self.operation_logger.start_operation(
            kind=OperationType.SCRAPING,
            scope=config.sources[0] if len(config.sources) == 1 else "multi",
            config=config.snapshot(),
        )
        log = with_context(self.logger, run_id=ctx.run.id)
        self.deduplicator.reset()

        try:
            self._authenticate(ctx)
            await self._health_check(ctx)
            self._configure(ctx)
            await self._scrape(ctx)
            self._process(ctx)
            self._persist(ctx)
            self._transition(ctx, PipelineState.REPORTING)
            sealed = self.operation_logger.complete_operation(ctx.run.id, self._summary(ctx))
            ctx.run = sealed
            self._transition(ctx, PipelineState.DONE)
        except (IngestionError, ValidationError, psycopg2.Error) as e:
            log.error(f"Run failed in {ctx.state.value}: {e}")
            self._fail(ctx, e)
        except Exception as e:
            log.exception(f"Unexpected error in {ctx.state.value}")
            self._fail(ctx, e)
        finally:
            self._close_adapters(ctx)

        result = RunResult(
            run=ctx.run,
            state=ctx.state,
            source_results=ctx.source_results,
            health=ctx.health,
            saved=ctx.saved,
            accepted=ctx.accepted,
        )
        self.execution_history.append(result)
        self._publish(result)
        return result

    def _fail(self, ctx: _RunContext, error: BaseException) -> None:
        if not ctx.run.is_sealed:
            ctx.run = self.operation_logger.fail_operation(
                ctx.run.id, error, {**self._summary(ctx), "failed_in": ctx.state.value}
            )
        if not ctx.state.is_terminal:
            ctx.state = PipelineState.FAILED
            self._progress(ctx, 0, 0)

    def _publish(self, result: RunResult) -> None:
        if self.report_sink is None:
            return
        try:
            self.report_sink.publish(result)
        except (OSError, ValueError) as e:
            self.logger.error(f"Report sink failed for {result.run.id}: {e}")

    def _close_adapters(self, ctx: _RunContext) -> None:
        if self._fixed_adapters is not None:
            return
        for adapter in ctx.adapters.values():
            adapter.close()

    def _summary(self, ctx: _RunContext) -> Dict[str, Any]:
        return {
            "sources": {k: v.to_dict() for k, v in ctx.source_results.items()},
            "degraded_sources": [k for k, h in ctx.health.items() if h.degraded],
            "accepted": len(ctx.accepted),
        }

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _authenticate(self, ctx: _RunContext) -> None:
        self._transition(ctx, PipelineState.AUTHENTICATING)
        ctx.organizer_id = self.store.resolve_organizer(self.organizer_id, self.organizer_email)
        self.logger.info(f"Events will be owned by organizer {ctx.organizer_id}")

    async def _health_check(self, ctx: _RunContext) -> None:
        self._transition(ctx, PipelineState.HEALTH_CHECKING, 0, len(ctx.config.sources))
        # Adapter construction errors surface in the configuring phase.
        try:
            ctx.adapters = self._resolve_adapters(ctx.config.sources)
        except ConfigurationError as e:
            self.logger.warning(f"Skipping health check: {e}")
            return
        reports = await asyncio.gather(
            *(asyncio.to_thread(self.health_monitor.check, a) for a in ctx.adapters.values())
        )
        ctx.health = {report.source_id: report for report in reports}

    def _configure(self, ctx: _RunContext) -> None:
        self._transition(ctx, PipelineState.CONFIGURING)
        if not ctx.adapters:
            ctx.adapters = self._resolve_adapters(ctx.config.sources)
        seeded = self.deduplicator.seed(self.store.recent_titles(self.lookback_days))
        self.logger.info(
            f"Configured {len(ctx.adapters)} source(s); {seeded} stored titles in lookback"
        )

    async def _scrape(self, ctx: _RunContext) -> None:
        total = len(ctx.adapters)
        self._transition(ctx, PipelineState.SCRAPING, 0, total)
        # Every source task is awaited before a cancellation is re-raised.
        results = await asyncio.gather(
            *(self._scrape_source(ctx, adapter) for adapter in ctx.adapters.values()),
            return_exceptions=True,
        )
        raised = [r for r in results if isinstance(r, BaseException)]
        for result in results:
            if isinstance(result, BaseException):
                continue
            ctx.source_results[result.source_id] = result
            if result.success:
                self.operation_logger.record_found(len(result.candidates), ctx.run.id)
            else:
                self.operation_logger.record_source_failure(
                    result.source_id, result.error, ctx.run.id
                )
        if raised:
            raise raised[0]

    async def _scrape_source(
        self, ctx: _RunContext, adapter: BaseSourceAdapter
    ) -> SourceScrapeResult:
        source_id = adapter.source_id
        log = with_context(self.logger, run_id=ctx.run.id, source_id=source_id)
        filters = ctx.config.to_filters()
        breaker = self.breakers.setdefault(source_id, CircuitBreaker(source_id))
        policy = RetryPolicy(
            max_retries=min(self.retry_policy.max_retries, adapter.config.max_retries),
            backoff_mode=self.retry_policy.backoff_mode,
            base_delay_s=self.retry_policy.base_delay_s,
            max_delay_s=self.retry_policy.max_delay_s,
            jitter=self.retry_policy.jitter,
        )

        def fetch() -> List[RawCandidate]:
            stream = adapter.scrape_events(ctx.config.region.value, filters)
            return list(islice(stream, filters.max_events))

        start = time.monotonic()
        try:
            candidates = await retry_call(
                fetch,
                policy=policy,
                timeout_s=self.call_timeout_s,
                source_id=source_id,
                breaker=breaker,
                is_cancelled=lambda: ctx.token.cancelled,
                sleep=self._sleep,
            )
        except AdapterError as e:
            log.error(f"Source failed: {e}")
            return SourceScrapeResult(
                source_id, error=str(e), duration_ms=int((time.monotonic() - start) * 1000)
            )

        log.info(f"Scraped {len(candidates)} candidate(s)")
        return SourceScrapeResult(
            source_id, candidates, duration_ms=int((time.monotonic() - start) * 1000)
        )

    def _process(self, ctx: _RunContext) -> None:
        candidates = [c for r in ctx.source_results.values() for c in r.candidates]
        self._transition(ctx, PipelineState.PROCESSING, 0, len(candidates))
        for i, candidate in enumerate(candidates, start=1):
            try:
                event = self.process_candidate(ctx, candidate)
            except Exception as e:
                # Unexpected per-record failure: count it and keep going.
                self.logger.exception(f"Error processing {candidate.source_url}")
                self.operation_logger.record_error(
                    f"{candidate.source_url}: {type(e).__name__}: {e}", ctx.run.id
                )
                continue
            if event is not None:
                ctx.accepted.append(event)
            if i % 50 == 0:
                self._progress(ctx, i, len(candidates), message="processing")
        self.logger.info(f"Accepted {len(ctx.accepted)} of {len(candidates)} candidate(s)")

    def process_candidate(
        self, ctx: _RunContext, candidate: RawCandidate
    ) -> Optional[NormalizedEvent]:
        """
        Run one candidate through every stage up to deduplication.

        Returns the accepted event, or None after recording why it was dropped.
        """
        run_id = ctx.run.id
        quality = self.quality_filter.evaluate(candidate)
        if not quality.keep:
            self._reject(run_id, quality.reason, candidate)
            return None

        try:
            fields = self.normalizer.normalize(candidate, ctx.today)
        except NormalizationRejection as e:
            self._reject(run_id, e.reason, candidate, e.detail)
            return None

        issue = self.quality_filter.check_title(fields.title)
        if issue is not None:
            self._reject(run_id, issue.code, candidate, issue.message)
            return None

        classification = self.classifier.classify(
            fields.title,
            fields.description,
            city=fields.city,
            venue=fields.venue,
            price=fields.price,
            organizer=fields.organizer,
            source_id=fields.source_id,
        )

        if not ctx.config.region.admits(classification.is_regional):
            self._reject(run_id, OUT_OF_REGION, candidate)
            return None
        if not ctx.config.admits_category(classification.category):
            self._reject(run_id, CATEGORY_FILTERED, candidate, classification.category.value)
            return None
        if not fields.date_is_fallback and not self._in_date_range(ctx, fields):
            self._reject(run_id, OUTSIDE_DATE_RANGE, candidate, fields.date.isoformat())
            return None

        try:
            event = NormalizedEvent(
                title=fields.title,
                date=fields.date,
                time=fields.time,
                venue=fields.venue,
                city=fields.city,
                location=fields.location,
                category=classification.category,
                is_regional=classification.is_regional,
                quality_score=classification.quality_score,
                image_url=fields.image_url,
                source_id=fields.source_id,
                source_url=fields.source_url,
                content_hash=fields.content_hash,
                description=fields.description,
                price=fields.price,
                tags=classification.tags,
                organizer=fields.organizer,
            )
        except ValidationError as e:
            self._reject(run_id, INVALID_EVENT, candidate, str(e.errors()[0].get("msg")))
            return None

        check = self.deduplicator.check_and_register(event)
        if check.is_duplicate:
            self.operation_logger.record_duplicated(run_id)
            return None
        return event

    def _in_date_range(self, ctx: _RunContext, fields: NormalizedFields) -> bool:
        horizon = ctx.today + timedelta(days=ctx.config.options.date_range.days)
        return ctx.today <= fields.date <= horizon

    def _reject(
        self, run_id: str, reason: str, candidate: RawCandidate, detail: Optional[str] = None
    ) -> None:
        self.logger.debug(
            f"Rejected ({reason}) {candidate.source_url}" + (f": {detail}" if detail else "")
        )
        self.operation_logger.record_rejected(reason, run_id)

    def _persist(self, ctx: _RunContext) -> None:
        total = len(ctx.accepted)
        self._transition(ctx, PipelineState.PERSISTING, 0, total)
        gateway = PersistenceGateway(self.store, ctx.organizer_id)
        for event in ctx.accepted:
            result = gateway.save(event)
            ctx.saved.append(result)
            if result.outcome is SaveOutcome.CREATED:
                self.operation_logger.record_inserted(ctx.run.id)
            elif result.outcome is SaveOutcome.SKIPPED_DUPLICATE:
                self.operation_logger.record_duplicated(ctx.run.id)
            else:
                self.operation_logger.record_rejected(result.outcome.value, ctx.run.id)

    # ========================================================================
    # HISTORY & STATS
    # ========================================================================

    def get_execution_history(
        self, source_id: Optional[str] = None, limit: int = 10
    ) -> List[RunResult]:
        """Get execution history, optionally filtered by source."""
        results = self.execution_history
        if source_id:
            results = [r for r in results if source_id in r.source_results]
        return results[-limit:]

    def get_execution_stats(self) -> Dict[str, Any]:
        """Get aggregate statistics about runs executed by this orchestrator."""
        results = self.execution_history
        if not results:
            return {"total_executions": 0}

        successful = sum(1 for r in results if r.run.status is OperationStatus.COMPLETED)
        total_found = sum(r.run.counts.found for r in results)
        total_inserted = sum(r.run.counts.inserted for r in results)

        return {
            "total_executions": len(results),
            "successful_executions": successful,
            "success_rate": successful / len(results) * 100,
            "total_events_found": total_found,
            "total_events_inserted": total_inserted,
            "average_events_per_run": total_found / len(results),
        }

    def check_health(self) -> Dict[str, HealthReport]:
        """Probe every known source outside of a run."""
        adapters = self._resolve_adapters(self.known_sources())
        try:
            return self.health_monitor.check_all(adapters)
        finally:
            if self._fixed_adapters is None:
                for adapter in adapters.values():
                    adapter.close()

