"""
Source adapters.

An adapter turns one public listing site into RawCandidate records. The
generic HTTP adapter covers pages that publish JSON-LD or the common card
layout; the static adapter replays fixtures.
"""

from .base_adapter import AdapterConfig, BaseSourceAdapter, ProbeResult, ScrapeFilters
from .http_adapter import HttpListingAdapter
from .static_adapter import StaticSourceAdapter

__all__ = [
    "AdapterConfig",
    "BaseSourceAdapter",
    "HttpListingAdapter",
    "ProbeResult",
    "ScrapeFilters",
    "StaticSourceAdapter",
]
