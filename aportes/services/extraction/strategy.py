"""Extraction strategies behind a single interface.

Every strategy turns extracted content into a ``CandidateResult`` so the
reconciler and the ledger writer never care which path produced it.
"""

from abc import ABC, abstractmethod
from typing import Optional

from aportes.core.config import settings
from aportes.core.exceptions import ConfigurationError, ExtractionError
from aportes.schemas.extraction import CandidateResult, DocumentKind
from aportes.services.ai.ai_extractor import AIExtractor
from aportes.services.extraction.content_extractor import ExtractionResult
from aportes.services.heuristics.roster_grammar import parse_roster
from aportes.services.heuristics.transfer_grammar import parse_transfer
from aportes.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ExtractionStrategy(ABC):
    name: str = "base"

    @abstractmethod
    async def extract(self, content: ExtractionResult, kind: DocumentKind) -> CandidateResult:
        """Produce a candidate from extracted content.

        Raises:
            ExtractionError: If the content holds nothing this strategy can read
        """
        pass


class HeuristicStrategy(ExtractionStrategy):
    """Pattern grammars over the text layer. Cannot read scanned documents."""

    name = "heuristic"

    async def extract(self, content: ExtractionResult, kind: DocumentKind) -> CandidateResult:
        if not content.has_text:
            raise ExtractionError("Document has no text layer for pattern extraction")

        source_text = content.layout_text or content.text
        if kind == DocumentKind.ROSTER:
            data = parse_roster(source_text)
        else:
            data = parse_transfer(source_text)
        return CandidateResult(kind=kind, source="heuristic", data=data, pages_analyzed=content.page_count)


class AIStrategy(ExtractionStrategy):
    """Language-model extraction: text mode when there is a text layer, vision mode otherwise."""

    name = "ai"

    def __init__(self, extractor: Optional[AIExtractor] = None):
        self._extractor = extractor

    @property
    def extractor(self) -> AIExtractor:
        if self._extractor is None:
            self._extractor = AIExtractor()
        return self._extractor

    async def extract(self, content: ExtractionResult, kind: DocumentKind) -> CandidateResult:
        if content.has_text:
            return await self.extractor.extract_from_text(content.text, kind)
        if content.page_images:
            return await self.extractor.extract_from_images(content.page_images, kind)
        raise ExtractionError("Document has neither a text layer nor page images")


class AutoStrategy(ExtractionStrategy):
    """Pattern grammars first; the model when they find nothing or there is no text layer."""

    name = "auto"

    def __init__(
        self,
        heuristic: Optional[HeuristicStrategy] = None,
        ai: Optional[AIStrategy] = None,
    ):
        self.heuristic = heuristic or HeuristicStrategy()
        self.ai = ai or AIStrategy()

    async def extract(self, content: ExtractionResult, kind: DocumentKind) -> CandidateResult:
        if content.has_text:
            candidate = await self.heuristic.extract(content, kind)
            if not candidate.is_empty:
                return candidate
            LOGGER.info(
                "Pattern extraction found nothing, falling back to the model",
                extra={"kind": kind.value}
            )
        return await self.ai.extract(content, kind)


def get_strategy(name: Optional[str] = None, ai_extractor: Optional[AIExtractor] = None) -> ExtractionStrategy:
    """Build the strategy named by ``name`` or by the pipeline settings."""
    name = (name or settings.pipeline.extraction_strategy).lower()
    if name == HeuristicStrategy.name:
        return HeuristicStrategy()
    if name == AIStrategy.name:
        return AIStrategy(ai_extractor)
    if name == AutoStrategy.name:
        return AutoStrategy(ai=AIStrategy(ai_extractor))
    raise ConfigurationError(f"Unknown extraction strategy: {name}")
