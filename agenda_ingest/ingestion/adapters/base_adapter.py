"""
Base Source Adapter.

Abstract base class defining the interface for all source adapters. An
adapter turns one public event site into a finite sequence of RawCandidate
records; the pipeline treats it as a black box.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
import logging

from agenda_ingest.schemas.event import RawCandidate


@dataclass
class AdapterConfig:
    """
    Configuration for a source adapter.

    Mirrors one entry of the ``sources`` section of ingestion.yaml.
    """
    source_id: str
    adapter: str = "http_listing"
    base_url: str = ""
    listing_path: str = ""
    probe_url: Optional[str] = None
    markers: Dict[str, str] = field(default_factory=dict)
    reliability: float = 0.5
    request_timeout: float = 30.0
    max_retries: int = 3
    enabled: bool = True
    custom_config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, source_id: str, data: Dict[str, Any]) -> "AdapterConfig":
        known = {f for f in cls.__dataclass_fields__ if f not in ("source_id", "custom_config")}
        kwargs = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        return cls(source_id=source_id, custom_config=extra, **kwargs)

    @property
    def listing_url(self) -> str:
        return self.base_url.rstrip("/") + "/" + self.listing_path.lstrip("/")


@dataclass
class ScrapeFilters:
    """Filters handed to an adapter for one run."""
    max_events: int = 50
    categories: Optional[List[str]] = None
    date_range_days: int = 30
    require_images: bool = True


@dataclass
class ProbeResult:
    """Outcome of a structural health probe."""
    source_id: str
    reachable: bool
    markers: Dict[str, bool] = field(default_factory=dict)
    status_code: Optional[int] = None
    error: Optional[str] = None
    checked_at: datetime = field(default_factory=datetime.now)


class BaseSourceAdapter(ABC):
    """
    Abstract base class for source adapters.

    Subclasses must implement:
        - scrape_events(): yield raw candidates for a region scope and filters
        - _validate_config(): validate adapter-specific configuration

    ``scrape_events`` must be finite and must return an empty sequence, not
    raise, when the source simply has no events. Genuine failures raise
    AdapterTransientError or AdapterFatalError.
    """

    def __init__(self, config: AdapterConfig):
        """
        Initialize the adapter.

        Args:
            config: AdapterConfig with source-specific settings
        """
        self.config = config
        self.logger = logging.getLogger(f"{__name__}.{config.source_id}")
        self._validate_config()

    @property
    def source_id(self) -> str:
        """Get the source identifier."""
        return self.config.source_id

    @property
    def reliability(self) -> float:
        return self.config.reliability

    @abstractmethod
    def scrape_events(self, region: str, filters: ScrapeFilters) -> Iterable[RawCandidate]:
        """
        Fetch raw candidates from the source.

        Args:
            region: Region scope value (regional_only, national_only, ...)
            filters: Per-run filters

        Returns:
            Finite iterable of RawCandidate
        """

    @abstractmethod
    def _validate_config(self) -> None:
        """
        Validate adapter-specific configuration.

        Raises:
            ValueError: If configuration is invalid
        """

    def probe(self) -> ProbeResult:
        """
        Minimal fetch used by the health check.

        Adapters without structural markers report themselves reachable.
        """
        return ProbeResult(source_id=self.source_id, reachable=True)

    def close(self) -> None:
        """
        Release any resources held by the adapter.

        Override in subclasses that hold resources (e.g., HTTP clients).
        """
        pass

    def __enter__(self) -> "BaseSourceAdapter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
