"""
Static Source Adapter.

Replays a fixed list of candidates, either given in code or loaded from a
JSON file of candidate objects. Used by dry runs and tests, and for
re-ingesting a saved listing without touching the network.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from agenda_ingest.ingestion.errors import AdapterFatalError
from agenda_ingest.schemas.event import RawCandidate

from .base_adapter import AdapterConfig, BaseSourceAdapter, ProbeResult, ScrapeFilters


class StaticSourceAdapter(BaseSourceAdapter):
    """
    Adapter backed by an in-memory list or a JSON fixture.

    The fixture path comes from ``custom_config["fixture"]`` when no
    candidates are passed explicitly.
    """

    def __init__(
        self,
        config: AdapterConfig,
        candidates: Optional[Sequence[RawCandidate]] = None,
    ):
        self._candidates: Optional[List[RawCandidate]] = (
            list(candidates) if candidates is not None else None
        )
        super().__init__(config)

    def _validate_config(self) -> None:
        if self._candidates is None and not self.config.custom_config.get("fixture"):
            raise ValueError(
                f"{self.source_id}: static adapter needs candidates or a 'fixture' path"
            )

    def _load_fixture(self) -> List[RawCandidate]:
        path = Path(self.config.custom_config["fixture"])
        try:
            with open(path, "r", encoding="utf-8") as f:
                data: List[Dict[str, Any]] = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise AdapterFatalError(f"Cannot read fixture {path}: {e}", self.source_id) from e

        candidates = []
        for item in data:
            item.setdefault("source_id", self.source_id)
            try:
                candidates.append(RawCandidate(**item))
            except ValidationError as e:
                self.logger.warning(f"{self.source_id}: skipping invalid fixture entry: {e}")
        return candidates

    def scrape_events(self, region: str, filters: ScrapeFilters) -> Iterable[RawCandidate]:
        if self._candidates is None:
            self._candidates = self._load_fixture()

        produced = 0
        for candidate in self._candidates:
            if produced >= filters.max_events:
                break
            if filters.require_images and not candidate.image_url:
                continue
            yield candidate
            produced += 1

    def probe(self) -> ProbeResult:
        # Every configured marker is trivially present in a static listing.
        return ProbeResult(
            source_id=self.source_id,
            reachable=True,
            markers={name: True for name in self.config.markers},
        )
