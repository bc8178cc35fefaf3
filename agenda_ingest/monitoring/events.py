"""Named run events (progress, source failures) logged with a structured payload."""

from __future__ import annotations

import logging
from typing import Any


def emit_event(
    logger: logging.Logger | logging.LoggerAdapter,
    event: str,
    payload: dict[str, Any] | None = None,
    *,
    level: str = "info",
    stage: str | None = None,
) -> None:
    """
    Log ``event`` as ``Event: <name>``.

    The payload travels in the record's ``extra`` so JsonFormatter can emit it
    as an object; a ContextAdapter supplies run_id and source_id.
    """
    extra: dict[str, Any] = {"event": event, "payload": dict(payload or {})}
    if stage:
        extra["stage"] = stage
    logger.log(getattr(logging, level.upper(), logging.INFO), f"Event: {event}", extra=extra)
