"""
agenda_ingest.ingestion.resilience

Shared resilience utilities: retry policy, bounded async retry around
blocking adapter calls, per-source circuit breaker and error classification.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from agenda_ingest.ingestion.errors import (
    AdapterError,
    AdapterFatalError,
    AdapterTransientError,
    RunCancelledError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_MESSAGE_HINTS = ("timeout", "timed out", "connection", "network", "temporarily")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    backoff_mode: str = "exp"  # exp | fixed | none
    base_delay_s: float = 1.0
    max_delay_s: float = 30.0
    jitter: float = 0.25
    retry_on_status: tuple[int, ...] = (408, 429, 500, 502, 503, 504)

    def compute_backoff_s(self, attempt: int) -> float:
        """
        attempt: 1..N
        """
        if self.backoff_mode == "none":
            return 0.0
        if self.backoff_mode == "fixed":
            delay = self.base_delay_s
        else:
            # exponential
            delay = self.base_delay_s * (2 ** max(0, attempt - 1))

        delay = min(delay, self.max_delay_s)
        if self.jitter > 0:
            delay = delay * (1.0 + (random.random() * 2 - 1) * self.jitter)  # +- jitter
        return max(0.0, delay)


# ---------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------


def classify_http_error(
    exc: BaseException,
    source_id: Optional[str] = None,
    policy: Optional[RetryPolicy] = None,
) -> AdapterError:
    """
    Map an exception raised while talking to a source into the adapter taxonomy.

    Transient: timeouts, connection/network errors, retryable status codes
    (408, 429, 5xx). Fatal: any other HTTP status (401, 403, 404, ...) and
    anything that is not a transport problem.
    """
    policy = policy or RetryPolicy()
    if isinstance(exc, AdapterError):
        return exc

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        message = f"HTTP {status} from {exc.request.url}"
        if status in policy.retry_on_status or status >= 500:
            return AdapterTransientError(message, source_id)
        return AdapterFatalError(message, source_id)

    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return AdapterTransientError(f"{type(exc).__name__}: {exc}", source_id)

    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return AdapterTransientError(f"{type(exc).__name__}: {exc}", source_id)

    message = str(exc).lower()
    if any(hint in message for hint in _TRANSIENT_MESSAGE_HINTS):
        return AdapterTransientError(f"{type(exc).__name__}: {exc}", source_id)
    return AdapterFatalError(f"{type(exc).__name__}: {exc}", source_id)


# ---------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Per-source circuit breaker.

    Opens after ``failure_threshold`` consecutive failures; calls fail fast
    until ``reset_timeout_s`` has passed, then one trial call is allowed.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout_s = reset_timeout_s
        self._clock = clock
        self.state = CircuitState.CLOSED
        self.failures = 0
        self._opened_at: float = 0.0

    def before_call(self) -> None:
        if self.state is CircuitState.OPEN:
            if self._clock() - self._opened_at >= self.reset_timeout_s:
                self.state = CircuitState.HALF_OPEN
                logger.info(f"Circuit {self.name} half-open, allowing a trial call")
            else:
                raise AdapterFatalError(f"Circuit open for {self.name}", self.name)

    def record_success(self) -> None:
        self.failures = 0
        self.state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self.failures += 1
        if self.state is CircuitState.HALF_OPEN or self.failures >= self.failure_threshold:
            self.state = CircuitState.OPEN
            self._opened_at = self._clock()
            logger.warning(f"Circuit {self.name} opened after {self.failures} failure(s)")


# ---------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------


async def retry_call(
    func: Callable[..., T],
    *args: Any,
    policy: Optional[RetryPolicy] = None,
    timeout_s: Optional[float] = None,
    source_id: Optional[str] = None,
    breaker: Optional[CircuitBreaker] = None,
    is_cancelled: Optional[Callable[[], bool]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run a blocking ``func(*args)`` on a worker thread with timeout and retries.

    Transient failures are retried up to ``policy.max_retries`` times with the
    policy's backoff; fatal failures are raised at once. A call that exceeds
    ``timeout_s`` is abandoned (its thread is not waited on) and counts as a
    transient failure.

    Raises:
        AdapterFatalError: non-retryable failure or open circuit
        AdapterTransientError: retries exhausted
        RunCancelledError: cancellation observed between attempts
    """
    policy = policy or RetryPolicy()
    attempts = policy.max_retries + 1
    last_error: Optional[AdapterError] = None

    for attempt in range(1, attempts + 1):
        if is_cancelled is not None and is_cancelled():
            raise RunCancelledError(f"Cancelled before attempt {attempt} for {source_id}")
        if breaker is not None:
            breaker.before_call()

        try:
            call = asyncio.to_thread(func, *args)
            if timeout_s is not None:
                result = await asyncio.wait_for(call, timeout=timeout_s)
            else:
                result = await call
        except asyncio.TimeoutError:
            error: AdapterError = AdapterTransientError(
                f"Call timed out after {timeout_s}s", source_id
            )
        except Exception as exc:
            # Anything the adapter raises is classified; unknown errors are fatal.
            error = classify_http_error(exc, source_id, policy)
        else:
            if breaker is not None:
                breaker.record_success()
            return result

        if breaker is not None:
            breaker.record_failure()
        if not error.retryable:
            logger.error(f"[{source_id}] Fatal adapter error, not retrying: {error}")
            raise error

        last_error = error
        if attempt < attempts:
            delay = policy.compute_backoff_s(attempt)
            logger.warning(
                f"[{source_id}] Transient error (attempt {attempt}/{attempts}): {error}. "
                f"Retrying in {delay:.1f}s"
            )
            await sleep(delay)

    logger.error(f"[{source_id}] Giving up after {attempts} attempt(s): {last_error}")
    raise last_error
