"""
Unit tests for QualityFilter.
"""

import pytest

from agenda_ingest.ingestion.quality_filters import (
    BARE_PERSON_TITLE,
    BARE_PLACE_TITLE,
    DENYLISTED_CONTENT,
    GENERIC_LISTING,
    MISSING_IMAGE,
    PERSONAL_EVENT,
    PLACEHOLDER_IMAGE,
    TITLE_TOO_SHORT,
    QualityFilter,
)


@pytest.fixture
def quality_filter():
    return QualityFilter()


class TestEvaluate:
    """Tests for the pre-normalization verdict."""

    def test_good_candidate_kept(self, quality_filter, create_candidate):
        result = quality_filter.evaluate(create_candidate())
        assert result.keep is True
        assert result.errors() == []
        assert result.reason is None

    def test_bare_place_without_image_rejected_for_image(self, quality_filter, create_candidate):
        candidate = create_candidate(
            title="Belém, PA",
            description="O LEVANTAR DE UM EXÉRCITO DE MULHERES...",
            image_url=None,
        )
        result = quality_filter.evaluate(candidate)
        assert result.keep is False
        assert result.reason == MISSING_IMAGE

    def test_placeholder_image(self, quality_filter, create_candidate):
        candidate = create_candidate(image_url="https://cdn.example.com/img/Placeholder.png")
        assert quality_filter.evaluate(candidate).reason == PLACEHOLDER_IMAGE

    @pytest.mark.parametrize(
        "title,code",
        [
            ("Noite Sensual no Clube Privado", DENYLISTED_CONTENT),
            ("Festa de Aniversário da Ana", PERSONAL_EVENT),
            ("Curso online de Excel Avançado", GENERIC_LISTING),
        ],
    )
    def test_term_lists(self, quality_filter, create_candidate, title, code):
        result = quality_filter.evaluate(create_candidate(title=title))
        assert result.keep is False
        assert result.reason == code

    def test_terms_in_description(self, quality_filter, create_candidate):
        candidate = create_candidate(description="Comemoração do casamento de Ana e João")
        assert quality_filter.evaluate(candidate).reason == PERSONAL_EVENT

    def test_terms_match_whole_words(self, quality_filter, create_candidate):
        candidate = create_candidate(title="Sexta do Rock no Centro Cultural")
        assert quality_filter.accept(candidate)

    def test_missing_description_is_warning(self, quality_filter, create_candidate):
        result = quality_filter.evaluate(create_candidate(description=None))
        assert result.keep is True
        assert [w.code for w in result.warnings()] == ["missing_description"]

    def test_multiple_errors_reason_is_first(self, quality_filter, create_candidate):
        candidate = create_candidate(title="Festa de Aniversário da Ana", image_url="")
        result = quality_filter.evaluate(candidate)
        assert [i.code for i in result.errors()] == [MISSING_IMAGE, PERSONAL_EVENT]
        assert result.reason == MISSING_IMAGE


class TestCheckTitle:
    """Tests for the post-normalization title guard."""

    def test_good_title(self, quality_filter):
        assert quality_filter.check_title("Workshop de Fotografia Digital") is None

    @pytest.mark.parametrize(
        "title,code",
        [
            ("Rock Show", TITLE_TOO_SHORT),
            ("Porto Velho, RO", BARE_PLACE_TITLE),
            ("Maria Silvestre", BARE_PERSON_TITLE),
        ],
    )
    def test_rejected_titles(self, quality_filter, title, code):
        assert quality_filter.check_title(title).code == code


class TestFromConfig:
    """Tests for building the filter from configuration."""

    def test_custom_terms(self, create_candidate):
        quality_filter = QualityFilter.from_config({"generic_terms": ["liquidação"]})
        candidate = create_candidate(title="Grande Liquidação de Verão")
        assert quality_filter.evaluate(candidate).reason == GENERIC_LISTING

    def test_missing_sections_use_defaults(self, create_candidate):
        quality_filter = QualityFilter.from_config({})
        candidate = create_candidate(title="Festa de Aniversário da Ana")
        assert quality_filter.evaluate(candidate).reason == PERSONAL_EVENT
