"""
Error taxonomy for the ingestion pipeline.

Scopes:
- per-record: NormalizationRejection, StoreConstraintError
- per-source: AdapterTransientError (retryable), AdapterFatalError
- per-run: ConfigurationError, RunCancelledError and logger/store failures
"""

from typing import Optional


class IngestionError(Exception):
    """Base class for every pipeline error."""


# ============================================================================
# SOURCE ADAPTERS
# ============================================================================


class AdapterError(IngestionError):
    """A source adapter call failed."""

    retryable = False

    def __init__(self, message: str, source_id: Optional[str] = None):
        super().__init__(message)
        self.source_id = source_id


class AdapterTransientError(AdapterError):
    """Network, timeout or rate-limit failure. Safe to retry."""

    retryable = True


class AdapterFatalError(AdapterError):
    """Authentication, missing page or broken page structure. Never retried."""


# ============================================================================
# RECORDS
# ============================================================================


class NormalizationRejection(IngestionError):
    """
    A candidate was rejected by the normalizer or the quality filter.

    Expected and frequent; counted as a rejection reason, not logged as an error.
    """

    def __init__(self, reason: str, detail: Optional[str] = None):
        message = reason if not detail else f"{reason}: {detail}"
        super().__init__(message)
        self.reason = reason
        self.detail = detail


class StoreConstraintError(IngestionError):
    """The store refused a row (foreign key, check constraint, bad value)."""

    def __init__(self, message: str, constraint: Optional[str] = None):
        super().__init__(message)
        self.constraint = constraint


# ============================================================================
# RUN
# ============================================================================


class ConfigurationError(IngestionError):
    """Invalid run configuration. Aborts the run before any source is scraped."""


class StoreUnavailableError(IngestionError):
    """The store could not be initialised or the organizer could not be resolved."""


class CountConservationError(IngestionError):
    """Sealed counts do not add up: found != inserted + duplicated + rejected + errored."""


class RunSealedError(IngestionError):
    """An operation run was mutated after being sealed."""


class RunCancelledError(IngestionError):
    """The run was cancelled at a phase checkpoint."""


class InvalidTransitionError(IngestionError):
    """The orchestrator attempted a backward or skipped state transition."""
