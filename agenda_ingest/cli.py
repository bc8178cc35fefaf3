#!/usr/bin/env python3
"""Command-line interface for agenda ingestion.

Commands:
  - agenda-ingest run     : Scrape, clean and store events from configured sources
  - agenda-ingest health  : Probe every configured source and print health scores
  - agenda-ingest stats   : Aggregate operation-log history

Typical usage:
  agenda-ingest run --sources sympla eventbrite --max-events 100 --region regional_only
  agenda-ingest run --dry-run
  agenda-ingest health
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, TextIO

from dotenv import load_dotenv

from agenda_ingest.configs.settings import get_settings
from agenda_ingest.ingestion.errors import IngestionError
from agenda_ingest.ingestion.operation_logger import (
    InMemoryOperationLogStore,
    OperationLogStore,
    PostgresOperationLogStore,
)
from agenda_ingest.ingestion.orchestrator import IngestionOrchestrator, RunResult
from agenda_ingest.ingestion.persist import EventStore, InMemoryEventStore, PostgresEventStore
from agenda_ingest.ingestion.run_config import (
    ALLOWED_MAX_EVENTS,
    DEFAULT_MAX_EVENTS,
    DateRange,
    RegionScope,
    RunConfigBuilder,
)
from agenda_ingest.monitoring.logging import LoggingOptions, setup_logging
from agenda_ingest.schemas.event import EventCategory

logger = logging.getLogger("agenda_ingest.cli")


class JsonSummarySink:
    """Print the sealed run summary as JSON."""

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream or sys.stdout

    def publish(self, result: RunResult) -> None:
        summary = json.dumps(result.to_dict(), indent=2, ensure_ascii=False, default=str)
        print(summary, file=self.stream)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="agenda-ingest", description="Event ingestion CLI")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument("--config", "-c", default=None, help="Path to ingestion.yaml")
    p.add_argument("--json-logs", action="store_true", help="Emit JSON logs")
    p.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    p.add_argument("--log-file", default=None, help="Also write logs to this file")
    sub = p.add_subparsers(dest="cmd")

    # run
    pr = sub.add_parser("run", help="Run the ingestion pipeline")
    pr.add_argument(
        "--sources", "-s", nargs="*", default=None, help="Source ids (default: all enabled)"
    )
    pr.add_argument(
        "--max-events",
        type=int,
        default=DEFAULT_MAX_EVENTS,
        choices=ALLOWED_MAX_EVENTS,
        help="Maximum candidates per source",
    )
    pr.add_argument(
        "--categories",
        nargs="*",
        default=None,
        choices=[c.value for c in EventCategory],
        help="Keep only these categories",
    )
    pr.add_argument(
        "--date-range",
        default=DateRange.NEXT_30_DAYS.value,
        choices=[d.value for d in DateRange],
    )
    pr.add_argument(
        "--region",
        default=RegionScope.REGIONAL_AND_NATIONAL.value,
        choices=[r.value for r in RegionScope],
    )
    pr.add_argument(
        "--allow-missing-images",
        action="store_true",
        help="Do not ask adapters to drop image-less listings",
    )
    pr.add_argument(
        "--dry-run",
        action="store_true",
        help="Scrape and process but store in memory only",
    )

    # health
    sub.add_parser("health", help="Probe configured sources")

    # stats
    ps = sub.add_parser("stats", help="Show operation-log statistics")
    ps.add_argument("--hours", type=int, default=24, help="Look-back window in hours")
    ps.add_argument(
        "--cleanup-orphaned",
        type=int,
        default=None,
        metavar="MINUTES",
        help="First mark runs stuck in 'running' for longer than MINUTES as failed",
    )

    return p.parse_args(argv)


def _open_stores(dry_run: bool) -> tuple[EventStore, OperationLogStore]:
    if dry_run:
        return InMemoryEventStore(), InMemoryOperationLogStore()
    params = get_settings().get_psycopg2_params()
    store = PostgresEventStore.connect(params)
    return store, PostgresOperationLogStore(store.conn)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI with the given arguments."""
    load_dotenv()
    try:
        return _main_impl(argv)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (IngestionError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _main_impl(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.version:
        from agenda_ingest import __version__

        print(f"agenda-ingest version {__version__}")
        return 0

    if not args.cmd:
        print("Error: Command required. Use --help for usage info.", file=sys.stderr)
        return 1

    settings = get_settings()
    setup_logging(
        LoggingOptions(
            level=args.log_level or settings.LOG_LEVEL,
            json_logs=args.json_logs or settings.JSON_LOGS,
            log_file=Path(args.log_file) if args.log_file else None,
        )
    )

    dry_run = bool(getattr(args, "dry_run", False)) or args.cmd == "health"
    store, log_store = _open_stores(dry_run)
    with store:
        extra: dict[str, Any] = {}
        if dry_run:
            extra = {"organizer_id": None, "organizer_email": None}
        orchestrator = IngestionOrchestrator.from_config(
            store,
            settings=settings,
            config_path=args.config,
            operation_log_store=log_store,
            report_sink=JsonSummarySink() if args.cmd == "run" else None,
            **extra,
        )

        if args.cmd == "health":
            reports = orchestrator.check_health()
            print(
                json.dumps(
                    {k: v.to_dict() for k, v in reports.items()}, indent=2, ensure_ascii=False
                )
            )
            return 0 if not any(r.degraded for r in reports.values()) else 2

        if args.cmd == "stats":
            if args.cleanup_orphaned is not None:
                orchestrator.operation_logger.cleanup_orphaned(args.cleanup_orphaned)
            stats = orchestrator.operation_logger.recent_stats(args.hours)
            print(json.dumps(stats, indent=2, ensure_ascii=False, default=str))
            return 0

        builder = RunConfigBuilder(orchestrator.known_sources())
        if args.sources:
            builder.sources(*args.sources)
        else:
            builder.all_sources()
        builder.max_events(args.max_events).date_range(args.date_range).region(args.region)
        builder.require_images(not args.allow_missing_images)
        if args.categories:
            builder.categories(*args.categories)
        config = builder.build()

        if dry_run:
            logger.info("Dry run: events are kept in memory only")
        result = orchestrator.run_sync(config)
        return 0 if result.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
