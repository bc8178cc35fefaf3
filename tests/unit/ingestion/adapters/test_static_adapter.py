"""
Unit tests for StaticSourceAdapter.
"""

import json

import pytest

from agenda_ingest.ingestion.adapters import AdapterConfig, ScrapeFilters, StaticSourceAdapter
from agenda_ingest.ingestion.errors import AdapterFatalError


class TestStaticSourceAdapter:
    """Tests for replaying candidates from memory or a fixture."""

    def test_requires_candidates_or_fixture(self):
        with pytest.raises(ValueError):
            StaticSourceAdapter(AdapterConfig(source_id="static", adapter="static"))

    def test_yields_given_candidates(self, create_candidate):
        candidates = [create_candidate(), create_candidate()]
        adapter = StaticSourceAdapter(AdapterConfig(source_id="sympla"), candidates)
        assert list(adapter.scrape_events("regional_and_national", ScrapeFilters())) == candidates

    def test_respects_max_events(self, create_candidate):
        candidates = [create_candidate() for _ in range(5)]
        adapter = StaticSourceAdapter(AdapterConfig(source_id="sympla"), candidates)
        produced = list(adapter.scrape_events("regional_only", ScrapeFilters(max_events=2)))
        assert produced == candidates[:2]

    def test_require_images(self, create_candidate):
        with_image = create_candidate()
        without_image = create_candidate(image_url=None)
        adapter = StaticSourceAdapter(
            AdapterConfig(source_id="sympla"), [without_image, with_image]
        )
        assert list(adapter.scrape_events("regional_only", ScrapeFilters())) == [with_image]
        assert len(
            list(adapter.scrape_events("regional_only", ScrapeFilters(require_images=False)))
        ) == 2

    def test_loads_fixture(self, tmp_path):
        fixture = tmp_path / "listing.json"
        fixture.write_text(
            json.dumps(
                [
                    {
                        "title": "Noite de Jazz e Blues",
                        "raw_date": "2026-03-12",
                        "image_url": "https://img.example.com/jazz.jpg",
                        "source_url": "https://www.sympla.com.br/evento/jazz",
                    },
                    {"title": "Entrada sem URL"},
                ]
            ),
            encoding="utf-8",
        )
        config = AdapterConfig.from_dict(
            "replay", {"adapter": "static", "fixture": str(fixture)}
        )
        adapter = StaticSourceAdapter(config)

        produced = list(adapter.scrape_events("regional_and_national", ScrapeFilters()))
        assert len(produced) == 1
        assert produced[0].source_id == "replay"
        assert produced[0].title == "Noite de Jazz e Blues"

    def test_unreadable_fixture(self, tmp_path):
        config = AdapterConfig(
            source_id="replay", custom_config={"fixture": str(tmp_path / "missing.json")}
        )
        adapter = StaticSourceAdapter(config)
        with pytest.raises(AdapterFatalError):
            list(adapter.scrape_events("regional_only", ScrapeFilters()))

    def test_probe_reports_all_markers(self, create_candidate):
        config = AdapterConfig(source_id="sympla", markers={"event_card": ".card", "title": "h3"})
        probe = StaticSourceAdapter(config, [create_candidate()]).probe()
        assert probe.reachable is True
        assert probe.markers == {"event_card": True, "title": True}
