"""
Unit tests for IngestionOrchestrator.

Runs go end to end through static adapters and in-memory stores; the day is
fixed so date-window decisions are reproducible.
"""

from datetime import date

import pytest

from agenda_ingest.ingestion.adapters import (
    AdapterConfig,
    BaseSourceAdapter,
    ProbeResult,
    StaticSourceAdapter,
)
from agenda_ingest.ingestion.classifier import EventClassifier
from agenda_ingest.ingestion.errors import (
    AdapterFatalError,
    AdapterTransientError,
    InvalidTransitionError,
    RunSealedError,
    StoreConstraintError,
)
from agenda_ingest.ingestion.operation_logger import (
    InMemoryOperationLogStore,
    OperationLogger,
    OperationStatus,
)
from agenda_ingest.ingestion.orchestrator import (
    CATEGORY_FILTERED,
    OUT_OF_REGION,
    OUTSIDE_DATE_RANGE,
    CancellationToken,
    IngestionOrchestrator,
    PipelineState,
    check_transition,
)
from agenda_ingest.ingestion.persist import InMemoryEventStore
from agenda_ingest.ingestion.resilience import RetryPolicy
from agenda_ingest.ingestion.run_config import RegionScope, RunConfig, RunOptions
from agenda_ingest.schemas.event import EventCategory

TODAY = date(2026, 3, 1)

# ============================================================================
# FIXTURES
# ============================================================================


async def no_sleep(delay):
    return None


class ScriptedAdapter(BaseSourceAdapter):
    """Raises the scripted errors on successive calls, then returns candidates."""

    def __init__(self, source_id, errors=(), candidates=()):
        self.errors = list(errors)
        self.candidates = list(candidates)
        self.calls = 0
        super().__init__(AdapterConfig(source_id=source_id))

    def _validate_config(self):
        pass

    def scrape_events(self, region, filters):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return iter(self.candidates)


class DegradedAdapter(StaticSourceAdapter):
    """Static adapter whose page lost its structural markers."""

    def probe(self):
        return ProbeResult(self.source_id, reachable=True, markers={"card": False, "title": True})


class RecordingSink:
    def __init__(self):
        self.results = []

    def publish(self, result):
        self.results.append(result)


@pytest.fixture
def store():
    return InMemoryEventStore()


@pytest.fixture
def make_orchestrator(store):
    """Return a function building an orchestrator over the given adapters."""

    def _make(adapters, **kwargs):
        kwargs.setdefault("operation_logger", OperationLogger(InMemoryOperationLogStore()))
        kwargs.setdefault("retry_policy", RetryPolicy(jitter=0))
        return IngestionOrchestrator(
            kwargs.pop("store", store),
            adapters=adapters,
            today=lambda: TODAY,
            sleep=no_sleep,
            **kwargs,
        )

    return _make


@pytest.fixture
def two_events(create_candidate):
    return [
        create_candidate(title="Workshop de Fotografia Digital"),
        create_candidate(title="Noite de Jazz e Blues", raw_date="12/03/2026"),
    ]


def static(source_id, candidates):
    return StaticSourceAdapter(AdapterConfig(source_id=source_id), candidates)


# ============================================================================
# TEST CLASSES
# ============================================================================


class TestTransitions:
    """Tests for the phase state machine."""

    def test_next_phase_allowed(self):
        check_transition(PipelineState.IDLE, PipelineState.AUTHENTICATING)
        check_transition(PipelineState.REPORTING, PipelineState.DONE)

    @pytest.mark.parametrize(
        "current,new",
        [
            (PipelineState.IDLE, PipelineState.SCRAPING),
            (PipelineState.PROCESSING, PipelineState.SCRAPING),
            (PipelineState.SCRAPING, PipelineState.SCRAPING),
        ],
    )
    def test_skipped_or_backward_rejected(self, current, new):
        with pytest.raises(InvalidTransitionError):
            check_transition(current, new)

    def test_failed_from_any_non_terminal(self):
        for state in PipelineState:
            if not state.is_terminal:
                check_transition(state, PipelineState.FAILED)

    def test_terminal_states_are_final(self):
        with pytest.raises(InvalidTransitionError):
            check_transition(PipelineState.DONE, PipelineState.FAILED)
        with pytest.raises(InvalidTransitionError):
            check_transition(PipelineState.FAILED, PipelineState.AUTHENTICATING)


class TestSuccessfulRun:
    """Tests for runs that reach done."""

    def test_events_inserted(self, make_orchestrator, store, two_events):
        orchestrator = make_orchestrator({"sympla": static("sympla", two_events)})
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]))

        assert result.succeeded
        assert result.run.status is OperationStatus.COMPLETED
        assert result.run.is_sealed
        assert result.run.counts.to_dict() == {
            "found": 2,
            "inserted": 2,
            "duplicated": 0,
            "rejected": 0,
            "errored": 0,
        }
        assert len(store.rows) == 2
        row = store.rows[two_events[0].source_url]
        assert row["titulo"] == "Workshop de Fotografia Digital"
        assert row["categoria"] == "Educação"
        assert row["organizador_id"] == "dry-run-organizer"

    def test_second_run_is_idempotent(self, make_orchestrator, store, two_events):
        orchestrator = make_orchestrator({"sympla": static("sympla", two_events)})
        config = RunConfig(sources=["sympla"])
        orchestrator.run_sync(config)
        second = orchestrator.run_sync(config)

        assert second.succeeded
        assert second.run.counts.inserted == 0
        assert second.run.counts.duplicated == 2
        assert len(store.rows) == 2

    def test_progress_phases(self, make_orchestrator, two_events):
        orchestrator = make_orchestrator({"sympla": static("sympla", two_events)})
        events = []
        orchestrator.add_listener(events.append)
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]))

        assert [e.phase for e in events] == [
            PipelineState.AUTHENTICATING,
            PipelineState.HEALTH_CHECKING,
            PipelineState.CONFIGURING,
            PipelineState.SCRAPING,
            PipelineState.PROCESSING,
            PipelineState.PERSISTING,
            PipelineState.REPORTING,
            PipelineState.DONE,
        ]
        assert events[-1].run_id == result.run.id
        assert events[4].total == 2

    def test_report_sink_receives_result(self, make_orchestrator, two_events):
        sink = RecordingSink()
        orchestrator = make_orchestrator(
            {"sympla": static("sympla", two_events)}, report_sink=sink
        )
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]))
        assert sink.results == [result]
        assert result.to_dict()["saved"]["created"] == 2

    def test_report_sink_failure_does_not_fail_run(self, make_orchestrator, two_events):
        class BrokenSink:
            def publish(self, result):
                raise OSError("disk full")

        orchestrator = make_orchestrator(
            {"sympla": static("sympla", two_events)}, report_sink=BrokenSink()
        )
        assert orchestrator.run_sync(RunConfig(sources=["sympla"])).succeeded


class TestDispositions:
    """Tests for per-record outcomes and count conservation."""

    def test_mixed_batch(self, make_orchestrator, create_candidate):
        good = create_candidate(title="Workshop de Fotografia Digital")
        candidates = [
            good,
            create_candidate(title="Espetáculo de Dança Contemporânea", image_url=None),
            create_candidate(title="Festa de Aniversário da Ana"),
            create_candidate(title="Workshop de Fotografia Digital", source_url=good.source_url),
            create_candidate(title="Noite de Jazz e Blues", raw_date="2026-06-01"),
            create_candidate(title="Belém, PA", description=None),
        ]
        orchestrator = make_orchestrator({"sympla": static("sympla", candidates)})
        config = RunConfig(sources=["sympla"], options=RunOptions(require_images=False))
        run = orchestrator.run_sync(config).run

        assert run.counts.to_dict() == {
            "found": 6,
            "inserted": 1,
            "duplicated": 1,
            "rejected": 4,
            "errored": 0,
        }
        assert dict(run.rejection_reasons) == {
            "missing_image": 1,
            "personal_event": 1,
            OUTSIDE_DATE_RANGE: 1,
            "title_unrecoverable": 1,
        }
        assert run.counts.is_conserved

    def test_fallback_date_skips_window_check(self, make_orchestrator, create_candidate):
        candidate = create_candidate(raw_date="data a definir")
        orchestrator = make_orchestrator({"sympla": static("sympla", [candidate])})
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]))
        assert result.run.counts.inserted == 1
        assert result.accepted[0].date == date(2026, 4, 1)

    def test_region_scope(self, make_orchestrator, two_events):
        orchestrator = make_orchestrator(
            {"sympla": static("sympla", two_events)},
            classifier=EventClassifier(regional_cities=["Porto Velho"]),
        )
        run = orchestrator.run_sync(
            RunConfig(sources=["sympla"], region=RegionScope.NATIONAL_ONLY)
        ).run
        assert dict(run.rejection_reasons) == {OUT_OF_REGION: 2}

    def test_regional_flag_on_accepted_events(self, make_orchestrator, two_events):
        orchestrator = make_orchestrator(
            {"sympla": static("sympla", two_events)},
            classifier=EventClassifier(regional_cities=["Porto Velho"]),
        )
        result = orchestrator.run_sync(
            RunConfig(sources=["sympla"], region=RegionScope.REGIONAL_ONLY)
        )
        assert all(event.is_regional for event in result.accepted)
        assert result.run.counts.inserted == 2

    def test_category_filter(self, make_orchestrator, two_events):
        orchestrator = make_orchestrator({"sympla": static("sympla", two_events)})
        config = RunConfig(
            sources=["sympla"], options=RunOptions(categories=[EventCategory.MUSIC])
        )
        result = orchestrator.run_sync(config)
        assert dict(result.run.rejection_reasons) == {CATEGORY_FILTERED: 1}
        assert [e.title for e in result.accepted] == ["Noite de Jazz e Blues"]

    def test_unexpected_record_error_is_counted(self, make_orchestrator, two_events):
        classifier = EventClassifier()
        original = classifier.classify

        def flaky_classify(title, *args, **kwargs):
            if title.startswith("Noite"):
                raise RuntimeError("classifier exploded")
            return original(title, *args, **kwargs)

        classifier.classify = flaky_classify
        orchestrator = make_orchestrator(
            {"sympla": static("sympla", two_events)}, classifier=classifier
        )
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]))

        assert result.succeeded
        assert result.run.counts.errored == 1
        assert result.run.counts.inserted == 1
        assert any("classifier exploded" in e for e in result.run.errors)

    def test_store_rejection_is_counted(self, make_orchestrator, two_events):
        class PickyStore(InMemoryEventStore):
            def insert(self, row):
                if row["titulo"].startswith("Noite"):
                    raise StoreConstraintError("check violation", constraint="eventos_check")
                return super().insert(row)

        picky = PickyStore()
        orchestrator = make_orchestrator({"sympla": static("sympla", two_events)}, store=picky)
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]))

        assert result.succeeded
        assert result.run.counts.inserted == 1
        assert result.run.counts.rejected == 1
        assert dict(result.run.rejection_reasons) == {"rejected_by_store": 1}
        assert len(picky.rows) == 1


class TestSourceFailures:
    """Tests for per-source isolation, retries and health."""

    def test_failed_source_does_not_affect_others(self, make_orchestrator, two_events):
        broken = ScriptedAdapter("eventbrite", errors=[AdapterFatalError("HTTP 403")])
        orchestrator = make_orchestrator(
            {"sympla": static("sympla", two_events), "eventbrite": broken}
        )
        result = orchestrator.run_sync(RunConfig(sources=["sympla", "eventbrite"]))

        assert result.succeeded
        assert result.run.failed_sources == ("eventbrite",)
        assert result.run.counts.inserted == 2
        assert result.run.counts.errored == 0
        assert result.source_results["eventbrite"].success is False
        assert broken.calls == 1

    def test_transient_failure_retried(self, make_orchestrator, two_events):
        flaky = ScriptedAdapter(
            "sympla", errors=[AdapterTransientError("HTTP 503")], candidates=two_events
        )
        orchestrator = make_orchestrator({"sympla": flaky})
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]))

        assert result.succeeded
        assert flaky.calls == 2
        assert result.run.counts.inserted == 2

    def test_exhausted_retries_fail_only_the_source(self, make_orchestrator):
        dead = ScriptedAdapter("sympla", errors=[AdapterTransientError("timeout")] * 10)
        orchestrator = make_orchestrator(
            {"sympla": dead}, retry_policy=RetryPolicy(max_retries=2, jitter=0)
        )
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]))

        assert result.succeeded
        assert dead.calls == 3
        assert result.run.failed_sources == ("sympla",)

    def test_unexpected_adapter_error_fails_only_the_source(
        self, make_orchestrator, two_events
    ):
        broken = ScriptedAdapter("eventbrite", errors=[KeyError("card-title")])
        orchestrator = make_orchestrator(
            {"sympla": static("sympla", two_events), "eventbrite": broken}
        )
        result = orchestrator.run_sync(RunConfig(sources=["sympla", "eventbrite"]))

        assert result.succeeded
        assert result.run.is_sealed
        assert result.run.failed_sources == ("eventbrite",)
        assert "KeyError" in result.source_results["eventbrite"].error
        assert result.run.counts.inserted == 2
        assert broken.calls == 1

    def test_crashing_health_check_marks_source_degraded(self, make_orchestrator, two_events):
        class CrashingHealthCheck(StaticSourceAdapter):
            def probe(self):
                raise RuntimeError("selector engine crashed")

        adapter = CrashingHealthCheck(AdapterConfig(source_id="sympla"), two_events)
        orchestrator = make_orchestrator({"sympla": adapter})
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]))

        assert result.succeeded
        assert result.health["sympla"].score == 0.0
        assert result.health["sympla"].error == "selector engine crashed"
        assert result.run.counts.inserted == 2

    def test_degraded_source_is_still_scraped(self, make_orchestrator, two_events):
        adapter = DegradedAdapter(AdapterConfig(source_id="sympla"), two_events)
        orchestrator = make_orchestrator({"sympla": adapter})
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]))

        assert result.health["sympla"].degraded is True
        assert result.run.summary["degraded_sources"] == ["sympla"]
        assert result.run.counts.inserted == 2

    def test_check_health(self, make_orchestrator, two_events):
        orchestrator = make_orchestrator({"sympla": static("sympla", two_events)})
        reports = orchestrator.check_health()
        assert reports["sympla"].score == 100.0


class TestFailedRuns:
    """Tests for runs that end in failed."""

    def test_cancelled_before_start(self, make_orchestrator, store, two_events):
        token = CancellationToken()
        token.cancel()
        orchestrator = make_orchestrator({"sympla": static("sympla", two_events)})
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]), cancel_token=token)

        assert result.state is PipelineState.FAILED
        assert result.run.status is OperationStatus.FAILED
        assert result.run.is_sealed
        assert result.run.summary["failed_in"] == "idle"
        assert store.rows == {}

    def test_cancelled_mid_run_abandons_accepted_events(
        self, make_orchestrator, store, two_events
    ):
        token = CancellationToken()
        orchestrator = make_orchestrator({"sympla": static("sympla", two_events)})

        def cancel_on_processing(event):
            if event.phase is PipelineState.PROCESSING:
                token.cancel()

        orchestrator.add_listener(cancel_on_processing)
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]), cancel_token=token)

        run = result.run
        assert result.state is PipelineState.FAILED
        assert run.counts.found == 2
        assert run.counts.errored == 2
        assert run.counts.is_conserved
        assert "abandoned 2 unprocessed candidate(s)" in run.errors
        assert store.rows == {}

    def test_unknown_organizer(self, make_orchestrator, two_events):
        orchestrator = make_orchestrator(
            {"sympla": static("sympla", two_events)},
            store=InMemoryEventStore(organizers={}),
        )
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]))
        assert result.state is PipelineState.FAILED
        assert result.run.summary["failed_in"] == "authenticating"

    def test_source_without_adapter(self, make_orchestrator, two_events):
        orchestrator = make_orchestrator({"sympla": static("sympla", two_events)})
        result = orchestrator.run_sync(RunConfig(sources=["ticketmaster"]))
        assert result.state is PipelineState.FAILED
        assert result.run.summary["failed_in"] == "configuring"

    def test_cancelled_while_scraping_waits_for_other_sources(
        self, make_orchestrator, store, two_events
    ):
        token = CancellationToken()

        class CancellingAdapter(ScriptedAdapter):
            def scrape_events(self, region, filters):
                token.cancel()
                return super().scrape_events(region, filters)

        flaky = CancellingAdapter("eventbrite", errors=[AdapterTransientError("HTTP 503")])
        orchestrator = make_orchestrator(
            {"sympla": static("sympla", two_events), "eventbrite": flaky}
        )
        result = orchestrator.run_sync(
            RunConfig(sources=["sympla", "eventbrite"]), cancel_token=token
        )

        run = result.run
        assert result.state is PipelineState.FAILED
        assert run.is_sealed
        assert run.summary["failed_in"] == "scraping"
        assert result.source_results["sympla"].success
        assert run.counts.found == 2
        assert run.counts.is_conserved
        assert flaky.calls == 1
        assert store.rows == {}

    def test_unexpected_error_still_seals_run(self, make_orchestrator, store, two_events):
        orchestrator = make_orchestrator({"sympla": static("sympla", two_events)})

        def crash_on_persisting(event):
            if event.phase is PipelineState.PERSISTING:
                raise RuntimeError("listener crashed")

        orchestrator.add_listener(crash_on_persisting)
        result = orchestrator.run_sync(RunConfig(sources=["sympla"]))

        run = result.run
        assert result.state is PipelineState.FAILED
        assert run.status is OperationStatus.FAILED
        assert run.is_sealed
        assert run.summary["failed_in"] == "persisting"
        assert run.counts.is_conserved
        assert orchestrator.get_execution_history() == [result]

    def test_failed_run_is_immutable(self, make_orchestrator, two_events):
        token = CancellationToken()
        token.cancel()
        orchestrator = make_orchestrator({"sympla": static("sympla", two_events)})
        run = orchestrator.run_sync(RunConfig(sources=["sympla"]), cancel_token=token).run
        with pytest.raises(RunSealedError):
            run.status = OperationStatus.COMPLETED


class TestHistory:
    """Tests for execution history and stats."""

    def test_stats(self, make_orchestrator, two_events):
        orchestrator = make_orchestrator({"sympla": static("sympla", two_events)})
        assert orchestrator.get_execution_stats() == {"total_executions": 0}

        config = RunConfig(sources=["sympla"])
        orchestrator.run_sync(config)
        orchestrator.run_sync(config)

        stats = orchestrator.get_execution_stats()
        assert stats["total_executions"] == 2
        assert stats["successful_executions"] == 2
        assert stats["total_events_found"] == 4
        assert stats["total_events_inserted"] == 2
        assert len(orchestrator.get_execution_history(source_id="sympla", limit=1)) == 1
        assert orchestrator.get_execution_history(source_id="eventbrite") == []


class TestFromConfig:
    """Tests for building the orchestrator from YAML."""

    def test_builds_stages(self, tmp_path, store):
        fixture = tmp_path / "listing.json"
        fixture.write_text("[]", encoding="utf-8")
        config_path = tmp_path / "ingestion.yaml"
        config_path.write_text(
            "sources:\n"
            "  replay:\n"
            "    adapter: static\n"
            f"    fixture: {fixture}\n"
            "    reliability: 0.9\n"
            "  off:\n"
            "    adapter: static\n"
            "    enabled: false\n"
            "regional:\n"
            "  cities: [Porto Velho]\n"
            "deduplication:\n"
            "  similarity_threshold: 0.9\n"
            "  lookback_days: 7\n",
            encoding="utf-8",
        )
        orchestrator = IngestionOrchestrator.from_config(
            store, config_path=str(config_path), organizer_id=None, organizer_email=None
        )

        assert orchestrator.known_sources() == ["replay"]
        assert orchestrator.deduplicator.threshold == 0.9
        assert orchestrator.lookback_days == 7
        assert orchestrator.classifier.is_regional("Porto Velho")
        assert orchestrator.classifier.source_reliability["replay"] == 0.9

        result = orchestrator.run_sync(orchestrator.config_builder().all_sources().build())
        assert result.succeeded
        assert result.run.counts.found == 0
