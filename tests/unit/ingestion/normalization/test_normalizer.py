"""
Unit tests for TextNormalizer.
"""

from datetime import date, time
from decimal import Decimal

import pytest

from agenda_ingest.ingestion.errors import NormalizationRejection
from agenda_ingest.ingestion.normalization.normalizer import (
    MAX_DESCRIPTION_LENGTH,
    TextNormalizer,
    compute_content_hash,
    normalize_image_url,
)

TODAY = date(2026, 3, 1)


@pytest.fixture
def normalizer():
    return TextNormalizer()


class TestNormalize:
    """Tests for TextNormalizer.normalize."""

    def test_complete_candidate(self, normalizer, create_candidate):
        candidate = create_candidate(raw_date="10/03/2026 às 20h30", raw_price="R$ 45,00")
        fields = normalizer.normalize(candidate, today=TODAY)

        assert fields.title == "Workshop de Fotografia Digital"
        assert fields.date == date(2026, 3, 10)
        assert fields.time == time(20, 30)
        assert fields.venue == "Teatro Municipal"
        assert fields.city == "Porto Velho"
        assert fields.state == "RO"
        assert fields.location == "Teatro Municipal - Porto Velho"
        assert fields.price.minimum_price == Decimal("45.00")
        assert fields.date_is_fallback is False
        assert len(fields.content_hash) == 32

    def test_missing_date_falls_back(self, normalizer, create_candidate):
        fields = normalizer.normalize(create_candidate(raw_date=None), today=TODAY)
        assert fields.date == date(2026, 4, 1)
        assert fields.date_is_fallback is True
        assert fields.time == time(19, 0)

    def test_date_read_from_title_when_raw_date_missing(self, normalizer, create_candidate):
        candidate = create_candidate(
            title="Baile de Carnaval 15 de fevereiro de 2026", raw_date=None
        )
        fields = normalizer.normalize(candidate, today=date(2026, 1, 10))
        assert fields.title == "Baile de Carnaval"
        assert fields.date == date(2026, 2, 15)

    def test_title_rejection_propagates(self, normalizer, create_candidate):
        with pytest.raises(NormalizationRejection) as exc_info:
            normalizer.normalize(create_candidate(title="Belém, PA", description=None))
        assert exc_info.value.reason == "title_unrecoverable"

    def test_price_found_in_description(self, normalizer, create_candidate):
        candidate = create_candidate(description="Ingressos a R$ 20 na bilheteria do teatro.")
        assert normalizer.normalize(candidate, today=TODAY).price.minimum_price == Decimal("20")

    def test_long_description_truncated_at_word(self, normalizer, create_candidate):
        candidate = create_candidate(description="palavra " * 400)
        fields = normalizer.normalize(candidate, today=TODAY)
        assert len(fields.description) <= MAX_DESCRIPTION_LENGTH
        assert fields.description.endswith("palavra")

    def test_from_config(self):
        normalizer = TextNormalizer.from_config({"min_title_length": 12})
        assert normalizer.title_extractor.min_length == 12


class TestHelpers:
    """Tests for image URL normalization and content hashing."""

    def test_image_url_scheme(self):
        assert normalize_image_url("//cdn.example.com/a.jpg") == "https://cdn.example.com/a.jpg"
        assert normalize_image_url("http://cdn.example.com/a.jpg") == (
            "https://cdn.example.com/a.jpg"
        )
        assert normalize_image_url("  ") is None

    def test_content_hash_ignores_case_and_accents(self):
        day = date(2026, 6, 24)
        assert compute_content_hash("Festa Junina da Escola", day, "Clube") == (
            compute_content_hash("FESTA JUNINA DA ESCOLA", day, "clube")
        )

    def test_content_hash_depends_on_date(self):
        assert compute_content_hash("Festa Junina", date(2026, 6, 24), None) != (
            compute_content_hash("Festa Junina", date(2026, 6, 25), None)
        )
