"""
Run configuration contract.

A RunConfig says which sources to scrape and how: event cap per source,
category filter, date window, image requirement and region scope. It is
always built through RunConfigBuilder so unknown sources fail before any
network call.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from agenda_ingest.ingestion.adapters import ScrapeFilters
from agenda_ingest.ingestion.errors import ConfigurationError
from agenda_ingest.schemas.event import EventCategory

logger = logging.getLogger(__name__)

ALLOWED_MAX_EVENTS = (20, 50, 100, 200)
DEFAULT_MAX_EVENTS = 50


class DateRange(str, Enum):
    NEXT_15_DAYS = "next_15_days"
    NEXT_30_DAYS = "next_30_days"
    NEXT_60_DAYS = "next_60_days"
    NEXT_90_DAYS = "next_90_days"

    @property
    def days(self) -> int:
        return int(self.value.split("_")[1])


class RegionScope(str, Enum):
    REGIONAL_ONLY = "regional_only"
    NATIONAL_ONLY = "national_only"
    REGIONAL_AND_NATIONAL = "regional_and_national"

    def admits(self, is_regional: bool) -> bool:
        """Whether an event with the given regional flag is in scope."""
        if self is RegionScope.REGIONAL_ONLY:
            return is_regional
        if self is RegionScope.NATIONAL_ONLY:
            return not is_regional
        return True


class RunOptions(BaseModel):
    """Per-run scraping options."""

    model_config = ConfigDict(frozen=True)

    max_events: int = DEFAULT_MAX_EVENTS
    categories: Optional[list[EventCategory]] = None
    date_range: DateRange = DateRange.NEXT_30_DAYS
    require_images: bool = True

    @field_validator("max_events")
    @classmethod
    def _check_max_events(cls, v: int) -> int:
        if v not in ALLOWED_MAX_EVENTS:
            raise ValueError(f"max_events must be one of {ALLOWED_MAX_EVENTS}, got {v}")
        return v

    @field_validator("categories")
    @classmethod
    def _empty_categories_mean_all(cls, v):
        return v or None


class RunConfig(BaseModel):
    """Validated configuration of one ingestion run."""

    model_config = ConfigDict(frozen=True)

    sources: list[str] = Field(min_length=1)
    options: RunOptions = Field(default_factory=RunOptions)
    region: RegionScope = RegionScope.REGIONAL_AND_NATIONAL

    @field_validator("sources")
    @classmethod
    def _dedupe_sources(cls, v: list[str]) -> list[str]:
        cleaned = [s.strip() for s in v if s and s.strip()]
        if not cleaned:
            raise ValueError("at least one source is required")
        return list(dict.fromkeys(cleaned))

    def to_filters(self) -> ScrapeFilters:
        """Filters handed to each adapter."""
        return ScrapeFilters(
            max_events=self.options.max_events,
            categories=[c.value for c in self.options.categories]
            if self.options.categories
            else None,
            date_range_days=self.options.date_range.days,
            require_images=self.options.require_images,
        )

    def admits_category(self, category: EventCategory) -> bool:
        return self.options.categories is None or category in self.options.categories

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe copy stored with the operation run."""
        return self.model_dump(mode="json")


class RunConfigBuilder:
    """
    Fluent builder for RunConfig.

    Args:
        known_sources: Source ids that may be requested (configured and enabled)
    """

    def __init__(self, known_sources: Iterable[str]):
        self.known_sources = list(known_sources)
        self._sources: list[str] = []
        self._options: dict[str, Any] = {}
        self._region: RegionScope | str = RegionScope.REGIONAL_AND_NATIONAL

    def sources(self, *source_ids: str) -> "RunConfigBuilder":
        self._sources.extend(source_ids)
        return self

    def all_sources(self) -> "RunConfigBuilder":
        self._sources = list(self.known_sources)
        return self

    def max_events(self, n: int) -> "RunConfigBuilder":
        self._options["max_events"] = n
        return self

    def categories(self, *categories: EventCategory | str) -> "RunConfigBuilder":
        self._options["categories"] = list(categories)
        return self

    def date_range(self, value: DateRange | str) -> "RunConfigBuilder":
        self._options["date_range"] = value
        return self

    def require_images(self, flag: bool = True) -> "RunConfigBuilder":
        self._options["require_images"] = flag
        return self

    def region(self, scope: RegionScope | str) -> "RunConfigBuilder":
        self._region = scope
        return self

    def build(self) -> RunConfig:
        """
        Validate and build the config.

        Raises:
            ConfigurationError: unknown source ids or invalid option values
        """
        unknown = [s for s in self._sources if s not in self.known_sources]
        if unknown:
            raise ConfigurationError(
                f"Unknown source(s): {', '.join(unknown)}. "
                f"Known: {', '.join(self.known_sources) or 'none'}"
            )
        try:
            config = RunConfig(
                sources=self._sources,
                options=RunOptions(**self._options),
                region=self._region,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid run configuration: {e}") from e

        logger.debug(f"Built run config: {config.snapshot()}")
        return config

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], known_sources: Iterable[str]) -> RunConfig:
        """Build from a plain dict (CLI arguments, JSON)."""
        builder = cls(known_sources)
        builder.sources(*(data.get("sources") or []))
        options = data.get("options") or {}
        for key in ("max_events", "date_range", "require_images"):
            if options.get(key) is not None:
                builder._options[key] = options[key]
        if options.get("categories"):
            builder.categories(*options["categories"])
        if data.get("region"):
            builder.region(data["region"])
        return builder.build()
