"""
Source health checks.

Each adapter's probe reports which of its structural CSS markers are still
present on the source page. The health score is the mean per-marker score
(present 100, missing 0). A score below the floor flags the source as
degraded; degraded sources are logged and still scraped.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Mapping, Optional

from agenda_ingest.ingestion.adapters import BaseSourceAdapter, ProbeResult

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_FLOOR = 70


@dataclass(frozen=True)
class HealthReport:
    source_id: str
    score: float
    degraded: bool
    markers: Dict[str, bool] = field(default_factory=dict)
    error: Optional[str] = None
    checked_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        return {
            "source_id": self.source_id,
            "score": self.score,
            "degraded": self.degraded,
            "markers": dict(self.markers),
            "error": self.error,
            "checked_at": self.checked_at.isoformat(),
        }


def score_probe(probe: ProbeResult) -> float:
    """Mean of per-marker scores; 100 for a reachable source with no markers."""
    if not probe.reachable:
        return 0.0
    if not probe.markers:
        return 100.0
    present = sum(1 for found in probe.markers.values() if found)
    return round(100.0 * present / len(probe.markers), 2)


class HealthMonitor:
    """
    Probe adapters and score them.

    Args:
        floor: Scores strictly below this are reported as degraded
    """

    def __init__(self, floor: float = DEFAULT_HEALTH_FLOOR):
        self.floor = floor

    def check(self, adapter: BaseSourceAdapter) -> HealthReport:
        try:
            probe = adapter.probe()
        except Exception as e:
            logger.warning(f"Health probe failed for {adapter.source_id}: {e}")
            return HealthReport(adapter.source_id, score=0.0, degraded=True, error=str(e))

        score = score_probe(probe)
        degraded = score < self.floor
        if degraded:
            missing = [name for name, found in probe.markers.items() if not found]
            logger.warning(
                f"Source {adapter.source_id} degraded: score {score} < {self.floor}"
                + (f" (missing markers: {', '.join(missing)})" if missing else "")
                + (f" ({probe.error})" if probe.error else "")
            )
        else:
            logger.info(f"Source {adapter.source_id} healthy: score {score}")

        return HealthReport(
            source_id=adapter.source_id,
            score=score,
            degraded=degraded,
            markers=dict(probe.markers),
            error=probe.error,
        )

    def check_all(self, adapters: Mapping[str, BaseSourceAdapter]) -> Dict[str, HealthReport]:
        """Probe every adapter. Never raises for a single source's failure."""
        return {source_id: self.check(adapter) for source_id, adapter in adapters.items()}
