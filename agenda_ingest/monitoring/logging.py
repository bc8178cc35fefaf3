"""Structured logging for ingestion runs.

Features:
- one console handler on the package logger, optionally mirrored to a file
- JSON lines or compact text
- run_id/source_id/stage injected through a LoggerAdapter
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO

CONTEXT_FIELDS = ("run_id", "source_id", "stage", "event")
_TEXT_LABELS = {"run_id": "run", "source_id": "source", "stage": "stage"}


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Context fields attached to ``record`` by ContextAdapter or emit_event."""
    return {k: getattr(record, k) for k in CONTEXT_FIELDS if getattr(record, k, None)}


# ---------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **record_context(record),
        }
        payload = getattr(record, "payload", None)
        if isinstance(payload, dict):
            data["payload"] = payload
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger [run=... source=... stage=...] message``."""

    default_time_format = "%H:%M:%S"
    default_msec_format = None

    def format(self, record: logging.LogRecord) -> str:
        ctx = record_context(record)
        tags = " ".join(f"{label}={ctx[k]}" for k, label in _TEXT_LABELS.items() if k in ctx)

        line = f"{self.formatTime(record)} {record.levelname} {record.name}"
        if tags:
            line += f" [{tags}]"
        line += f" {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# ---------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingOptions:
    """How the package logger is configured for a CLI invocation."""

    level: str = "INFO"
    json_logs: bool = False
    logger_name: str = "agenda_ingest"
    log_file: Path | None = None


def setup_logging(
    options: LoggingOptions | None = None,
    *,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Configure the package logger.

    Calling it again replaces the handlers it installed before. The logger
    does not propagate to the root logger.
    """
    options = options or LoggingOptions()
    logger = logging.getLogger(options.logger_name)
    logger.setLevel(getattr(logging, options.level.upper(), logging.INFO))
    logger.propagate = False

    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    formatter = JsonFormatter() if options.json_logs else TextFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if options.log_file is not None:
        path = Path(options.log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(logger.level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


# ---------------------------------------------------------------------
# Context injection
# ---------------------------------------------------------------------


class ContextAdapter(logging.LoggerAdapter):
    """Merge the adapter's context into every record's ``extra``."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def with_context(
    logger: logging.Logger,
    *,
    run_id: str | None = None,
    source_id: str | None = None,
    stage: str | None = None,
) -> ContextAdapter:
    """Wrap ``logger`` so records carry run, source and stage."""
    extra = {
        k: v
        for k, v in (("run_id", run_id), ("source_id", source_id), ("stage", stage))
        if v
    }
    return ContextAdapter(logger, extra)
