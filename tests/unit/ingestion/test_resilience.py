"""
Unit tests for retry, error classification and the circuit breaker.
"""

import asyncio
import time

import httpx
import pytest

from agenda_ingest.ingestion.errors import (
    AdapterFatalError,
    AdapterTransientError,
    RunCancelledError,
)
from agenda_ingest.ingestion.resilience import (
    CircuitBreaker,
    CircuitState,
    RetryPolicy,
    classify_http_error,
    retry_call,
)

# ============================================================================
# FIXTURES
# ============================================================================


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FlakyCall:
    """Raises the given errors in order, then returns ``result``."""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def _status_error(status):
    request = httpx.Request("GET", "https://www.sympla.com.br/eventos")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


# ============================================================================
# TEST CLASSES
# ============================================================================


class TestRetryPolicy:
    """Tests for backoff computation."""

    def test_exponential(self):
        policy = RetryPolicy(base_delay_s=1.0, jitter=0)
        assert [policy.compute_backoff_s(a) for a in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_capped(self):
        policy = RetryPolicy(base_delay_s=10.0, max_delay_s=15.0, jitter=0)
        assert policy.compute_backoff_s(3) == 15.0

    def test_fixed_and_none(self):
        assert RetryPolicy(backoff_mode="fixed", base_delay_s=2.0, jitter=0).compute_backoff_s(
            5
        ) == 2.0
        assert RetryPolicy(backoff_mode="none").compute_backoff_s(3) == 0.0

    def test_jitter_bounds(self):
        policy = RetryPolicy(base_delay_s=1.0, jitter=0.25)
        for _ in range(50):
            assert 0.75 <= policy.compute_backoff_s(1) <= 1.25


class TestClassifyHttpError:
    """Tests for mapping exceptions to transient / fatal."""

    @pytest.mark.parametrize("status", [408, 429, 500, 503])
    def test_retryable_status(self, status):
        assert isinstance(classify_http_error(_status_error(status)), AdapterTransientError)

    @pytest.mark.parametrize("status", [401, 403, 404])
    def test_fatal_status(self, status):
        assert isinstance(classify_http_error(_status_error(status)), AdapterFatalError)

    def test_transport_errors(self):
        request = httpx.Request("GET", "https://www.sympla.com.br")
        assert isinstance(
            classify_http_error(httpx.ConnectTimeout("timed out", request=request)),
            AdapterTransientError,
        )
        assert isinstance(classify_http_error(ConnectionResetError()), AdapterTransientError)

    def test_other_errors_are_fatal(self):
        error = classify_http_error(ValueError("unexpected page layout"), source_id="sympla")
        assert isinstance(error, AdapterFatalError)
        assert error.source_id == "sympla"

    def test_adapter_errors_pass_through(self):
        original = AdapterTransientError("slow")
        assert classify_http_error(original) is original


class TestRetryCall:
    """Tests for retry_call."""

    def test_transient_then_success(self):
        sleep = FakeSleep()
        call = FlakyCall([AdapterTransientError("503"), _status_error(502)])
        policy = RetryPolicy(max_retries=3, jitter=0)

        result = asyncio.run(retry_call(call, policy=policy, sleep=sleep))
        assert result == "ok"
        assert call.calls == 3
        assert sleep.delays == [1.0, 2.0]

    def test_fatal_not_retried(self):
        sleep = FakeSleep()
        call = FlakyCall([_status_error(404)])

        with pytest.raises(AdapterFatalError):
            asyncio.run(retry_call(call, sleep=sleep))
        assert call.calls == 1
        assert sleep.delays == []

    def test_unexpected_error_is_fatal(self):
        call = FlakyCall([KeyError("card-title")])

        with pytest.raises(AdapterFatalError, match="KeyError"):
            asyncio.run(retry_call(call, source_id="sympla", sleep=FakeSleep()))
        assert call.calls == 1

    def test_retries_exhausted(self):
        call = FlakyCall([AdapterTransientError("503")] * 5)
        with pytest.raises(AdapterTransientError):
            asyncio.run(retry_call(call, policy=RetryPolicy(max_retries=2), sleep=FakeSleep()))
        assert call.calls == 3

    def test_timeout_counts_as_transient(self):
        def slow():
            time.sleep(0.5)
            return "late"

        with pytest.raises(AdapterTransientError):
            asyncio.run(
                retry_call(
                    slow, policy=RetryPolicy(max_retries=0), timeout_s=0.05, sleep=FakeSleep()
                )
            )

    def test_cancelled_between_attempts(self):
        call = FlakyCall([AdapterTransientError("503")])
        state = {"cancelled": False}

        async def cancel_on_sleep(delay):
            state["cancelled"] = True

        with pytest.raises(RunCancelledError):
            asyncio.run(
                retry_call(call, is_cancelled=lambda: state["cancelled"], sleep=cancel_on_sleep)
            )
        assert call.calls == 1

    def test_breaker_records_outcomes(self):
        breaker = CircuitBreaker("sympla", failure_threshold=5)
        call = FlakyCall([AdapterTransientError("503")])
        asyncio.run(retry_call(call, breaker=breaker, sleep=FakeSleep()))
        assert breaker.failures == 0
        assert breaker.state is CircuitState.CLOSED


class TestCircuitBreaker:
    """Tests for CircuitBreaker state changes."""

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker("sympla", failure_threshold=2)
        breaker.record_failure()
        assert breaker.state is CircuitState.CLOSED
        breaker.record_failure()
        assert breaker.state is CircuitState.OPEN
        with pytest.raises(AdapterFatalError):
            breaker.before_call()

    def test_half_open_after_timeout(self):
        now = [100.0]
        breaker = CircuitBreaker(
            "sympla", failure_threshold=1, reset_timeout_s=30.0, clock=lambda: now[0]
        )
        breaker.record_failure()
        now[0] += 31.0
        breaker.before_call()
        assert breaker.state is CircuitState.HALF_OPEN

        breaker.record_failure()
        assert breaker.state is CircuitState.OPEN

    def test_success_closes(self):
        breaker = CircuitBreaker("sympla", failure_threshold=1)
        breaker.record_failure()
        breaker.state = CircuitState.HALF_OPEN
        breaker.record_success()
        assert breaker.state is CircuitState.CLOSED
        assert breaker.failures == 0
