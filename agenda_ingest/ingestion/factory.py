"""
Adapter Factory for config-driven adapter creation.

Provides a unified interface to create source adapters from YAML configuration.

Usage:
    from agenda_ingest.ingestion.factory import create_adapter, AdapterFactory

    # Create a single adapter
    sympla = create_adapter("sympla")
    candidates = list(sympla.scrape_events("regional_and_national", ScrapeFilters()))

    # Create all enabled adapters
    factory = AdapterFactory()
    adapters = factory.create_all()
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from agenda_ingest.configs.config import Config
from agenda_ingest.ingestion.adapters import (
    AdapterConfig,
    BaseSourceAdapter,
    HttpListingAdapter,
    StaticSourceAdapter,
)
from agenda_ingest.ingestion.errors import ConfigurationError

logger = logging.getLogger(__name__)


# Adapter registry - maps adapter kinds to factory functions
AdapterBuilder = Callable[[AdapterConfig], BaseSourceAdapter]
ADAPTER_REGISTRY: Dict[str, AdapterBuilder] = {}


def register_adapter(kind: str):
    """
    Decorator to register an adapter factory.

    Usage:
        @register_adapter("http_listing")
        def create_http_listing(config: AdapterConfig) -> HttpListingAdapter:
            return HttpListingAdapter(config)
    """

    def decorator(builder: AdapterBuilder) -> AdapterBuilder:
        ADAPTER_REGISTRY[kind] = builder
        return builder

    return decorator


@register_adapter("http_listing")
def create_http_listing_adapter(config: AdapterConfig) -> BaseSourceAdapter:
    return HttpListingAdapter(config)


@register_adapter("static")
def create_static_adapter(config: AdapterConfig) -> BaseSourceAdapter:
    return StaticSourceAdapter(config)


class AdapterFactory:
    """
    Factory for creating source adapters from YAML configuration.

    Reads the ``sources`` section of ingestion.yaml and builds the adapter
    registered for each source's ``adapter`` kind.
    """

    def __init__(self, config_path: Optional[str] = None, sources: Optional[Dict] = None):
        """
        Initialize the factory.

        Args:
            config_path: Path to ingestion.yaml. If not provided, uses default.
            sources: Source mapping to use instead of reading the file
        """
        self.config_path = Path(config_path) if config_path else Config.INGESTION_CONFIG_PATH
        self._sources: Optional[Dict] = dict(sources) if sources is not None else None

    @property
    def sources(self) -> Dict[str, Dict]:
        """Load and cache the ``sources`` section."""
        if self._sources is None:
            config = Config.load_ingestion_config(self.config_path)
            self._sources = dict(config.get("sources") or {})
        return self._sources

    def get_source_config(self, source_id: str) -> Optional[AdapterConfig]:
        data = self.sources.get(source_id)
        if data is None:
            return None
        return AdapterConfig.from_dict(source_id, data)

    def list_sources(self) -> Dict[str, Dict]:
        """
        List all configured sources with their status.

        Returns:
            Dict mapping source_id -> {enabled: bool, adapter: str}
        """
        return {
            name: {
                "enabled": cfg.get("enabled", True),
                "adapter": cfg.get("adapter", "http_listing"),
            }
            for name, cfg in self.sources.items()
        }

    def list_enabled_sources(self) -> List[str]:
        """List ids of all enabled sources."""
        return [name for name, info in self.list_sources().items() if info["enabled"]]

    def validate_sources(self, source_ids: Iterable[str]) -> List[str]:
        """
        Check that every id is configured, enabled and has a registered adapter.

        Raises:
            ConfigurationError: listing every offending id
        """
        ids = list(source_ids)
        problems = []
        for source_id in ids:
            data = self.sources.get(source_id)
            if data is None:
                problems.append(f"unknown source '{source_id}'")
            elif not data.get("enabled", True):
                problems.append(f"source '{source_id}' is disabled")
            elif data.get("adapter", "http_listing") not in ADAPTER_REGISTRY:
                problems.append(
                    f"source '{source_id}' uses unregistered adapter '{data.get('adapter')}'"
                )
        if problems:
            raise ConfigurationError("; ".join(problems))
        return ids

    def create_adapter(self, source_id: str) -> BaseSourceAdapter:
        """
        Create the adapter for one source.

        Raises:
            ConfigurationError: unknown or disabled source, unknown adapter kind,
                or adapter-specific validation failure
        """
        self.validate_sources([source_id])
        config = self.get_source_config(source_id)
        builder = ADAPTER_REGISTRY[config.adapter]
        try:
            adapter = builder(config)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        logger.debug(f"Created {config.adapter} adapter for {source_id}")
        return adapter

    def create_adapters(self, source_ids: Iterable[str]) -> Dict[str, BaseSourceAdapter]:
        return {source_id: self.create_adapter(source_id) for source_id in source_ids}

    def create_all(self) -> Dict[str, BaseSourceAdapter]:
        """Create adapters for every enabled source."""
        return self.create_adapters(self.list_enabled_sources())


def create_adapter(source_id: str, config_path: Optional[str] = None) -> BaseSourceAdapter:
    """Convenience wrapper around AdapterFactory.create_adapter."""
    return AdapterFactory(config_path).create_adapter(source_id)
