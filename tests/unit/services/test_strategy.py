"""Tests for extraction strategy selection and fallback."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from aportes.core.exceptions import ConfigurationError, ExtractionError
from aportes.schemas.extraction import CandidateResult, DocumentKind, RosterExtraction, RosterPerson
from aportes.services.extraction.content_extractor import ExtractionResult
from aportes.services.extraction.strategy import (
    AIStrategy,
    AutoStrategy,
    HeuristicStrategy,
    get_strategy,
)


@pytest.fixture
def ai_candidate():
    return CandidateResult(
        kind=DocumentKind.ROSTER,
        source="ai",
        data=RosterExtraction(persons=[RosterPerson(name="PEREZ JUAN", fee_amount=100)]),
    )


@pytest.fixture
def mock_ai_extractor(ai_candidate):
    """AI extractor answering every request with ``ai_candidate``."""
    extractor = MagicMock()
    extractor.extract_from_text = AsyncMock(return_value=ai_candidate)
    extractor.extract_from_images = AsyncMock(return_value=ai_candidate)
    return extractor


def _text_content(layout_text):
    return ExtractionResult(has_text=True, text=layout_text, layout_text=layout_text, page_count=1)


class TestHeuristicStrategy:
    @pytest.mark.asyncio
    async def test_roster(self, roster_text):
        candidate = await HeuristicStrategy().extract(_text_content(roster_text), DocumentKind.ROSTER)

        assert candidate.source == "heuristic"
        assert len(candidate.roster.persons) == 2

    @pytest.mark.asyncio
    async def test_transfer(self, transfer_text):
        candidate = await HeuristicStrategy().extract(_text_content(transfer_text), DocumentKind.TRANSFER)

        assert candidate.transfer is not None
        assert not candidate.is_empty

    @pytest.mark.asyncio
    async def test_scanned_document(self):
        content = ExtractionResult(has_text=False, page_images=[b"png"])

        with pytest.raises(ExtractionError):
            await HeuristicStrategy().extract(content, DocumentKind.ROSTER)


class TestAIStrategy:
    @pytest.mark.asyncio
    async def test_text_mode(self, mock_ai_extractor):
        await AIStrategy(mock_ai_extractor).extract(_text_content("texto"), DocumentKind.ROSTER)

        mock_ai_extractor.extract_from_text.assert_awaited_once_with("texto", DocumentKind.ROSTER)
        mock_ai_extractor.extract_from_images.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_vision_mode(self, mock_ai_extractor):
        content = ExtractionResult(has_text=False, page_images=[b"p1", b"p2"])

        await AIStrategy(mock_ai_extractor).extract(content, DocumentKind.ROSTER)

        mock_ai_extractor.extract_from_images.assert_awaited_once_with([b"p1", b"p2"], DocumentKind.ROSTER)

    @pytest.mark.asyncio
    async def test_nothing_to_read(self, mock_ai_extractor):
        with pytest.raises(ExtractionError):
            await AIStrategy(mock_ai_extractor).extract(ExtractionResult(has_text=False), DocumentKind.ROSTER)


class TestAutoStrategy:
    @pytest.mark.asyncio
    async def test_heuristic_result_is_used(self, roster_text, mock_ai_extractor):
        strategy = AutoStrategy(ai=AIStrategy(mock_ai_extractor))

        candidate = await strategy.extract(_text_content(roster_text), DocumentKind.ROSTER)

        assert candidate.source == "heuristic"
        mock_ai_extractor.extract_from_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_back_when_patterns_find_nothing(self, mock_ai_extractor, ai_candidate):
        strategy = AutoStrategy(ai=AIStrategy(mock_ai_extractor))

        candidate = await strategy.extract(_text_content("LISTADO DE APORTES\nsin filas"), DocumentKind.ROSTER)

        assert candidate is ai_candidate
        mock_ai_extractor.extract_from_text.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_scanned_document_goes_to_vision(self, mock_ai_extractor, ai_candidate):
        strategy = AutoStrategy(ai=AIStrategy(mock_ai_extractor))
        content = ExtractionResult(has_text=False, page_images=[b"p1"])

        assert await strategy.extract(content, DocumentKind.ROSTER) is ai_candidate


class TestGetStrategy:
    @pytest.mark.parametrize("name, expected", [
        ("heuristic", HeuristicStrategy),
        ("AI", AIStrategy),
        ("auto", AutoStrategy),
    ])
    def test_known_names(self, name, expected):
        assert isinstance(get_strategy(name), expected)

    def test_default_from_settings(self):
        assert isinstance(get_strategy(), AutoStrategy)

    def test_unknown_name(self):
        with pytest.raises(ConfigurationError):
            get_strategy("ocr")
