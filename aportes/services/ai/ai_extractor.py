"""Schema-validated extraction through the inference service.

Two modes:

* text mode sends the document's text layer in a single request
* vision mode sends one rasterized page per request and merges the pages

Every reply must parse as JSON and validate against the kind's schema. A
reply that does not is a hard failure for that page; only transport
failures (rate limits, 5xx, timeouts) are retried, inside the client.
"""

import time
from typing import List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from aportes.core.exceptions import APIClientError, SchemaViolationError
from aportes.core.llm_client import LLMClient
from aportes.schemas.extraction import (
    CandidateResult,
    DocumentKind,
    InstitutionBlock,
    RosterExtraction,
    RosterTotals,
    TransferExtraction,
)
from aportes.services.ai.prompts import (
    PAGE_USER_PROMPT,
    ROSTER_SYSTEM_PROMPT,
    ROSTER_USER_PROMPT,
    TRANSFER_SYSTEM_PROMPT,
    TRANSFER_USER_PROMPT,
)
from aportes.services.extraction.content_extractor import clean_text_for_ai
from aportes.utils.json_parser import parse_json_safely
from aportes.utils.logging import get_logger
from aportes.utils.money import add_amounts

LOGGER = get_logger(__name__)

PageResult = Union[RosterExtraction, TransferExtraction]

_PROMPTS = {
    DocumentKind.ROSTER: (ROSTER_SYSTEM_PROMPT, ROSTER_USER_PROMPT, RosterExtraction),
    DocumentKind.TRANSFER: (TRANSFER_SYSTEM_PROMPT, TRANSFER_USER_PROMPT, TransferExtraction),
}


def parse_reply(kind: DocumentKind, raw: str) -> PageResult:
    """Parse and validate one model reply.

    Raises:
        SchemaViolationError: If the reply is not JSON or does not match the schema
    """
    data = parse_json_safely(raw)
    if not isinstance(data, dict):
        raise SchemaViolationError(f"Reply for {kind.value} is not a JSON object")

    model = _PROMPTS[kind][2]
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise SchemaViolationError(
            f"Reply does not match the {kind.value} schema: {e.error_count()} error(s)",
            original_error=e,
        ) from e


def _first(*values):
    return next((v for v in values if v), None)


def merge_roster_pages(pages: List[RosterExtraction]) -> RosterExtraction:
    """Merge per-page roster results into one roster.

    Header fields come from the first page that supplies them, rows are
    concatenated in page order and totals are recomputed from the rows.
    """
    if len(pages) == 1:
        return pages[0]

    persons = [person for page in pages for person in page.persons]
    return RosterExtraction(
        institution=InstitutionBlock(
            name=_first(*(p.institution.name for p in pages)),
            address=_first(*(p.institution.address for p in pages)),
            cuit=_first(*(p.institution.cuit for p in pages)),
        ),
        date=_first(*(p.date for p in pages)),
        period=_first(*(p.period for p in pages)),
        concept=_first(*(p.concept for p in pages)),
        persons=persons,
        totals=RosterTotals(
            people_count=len(persons),
            total_amount=add_amounts(person.fee_amount for person in persons),
        ),
    )


class AIExtractor:
    """Extracts rosters and transfer receipts with a language model."""

    def __init__(self, client: Optional[LLMClient] = None):
        self.client = client or LLMClient()

    async def extract_from_text(self, text: str, kind: DocumentKind) -> CandidateResult:
        """Text mode: one request with the whole text layer.

        Raises:
            SchemaViolationError: If the reply does not match the schema
            APIClientError: If the inference call fails
        """
        system_prompt, user_prompt, _ = _PROMPTS[kind]
        start_time = time.time()

        raw = await self.client.complete_json(
            system_prompt,
            text=f"{user_prompt}\n\n{clean_text_for_ai(text)}",
        )
        result = parse_reply(kind, raw)

        LOGGER.info(
            f"AI text extraction completed in {time.time() - start_time:.2f}s",
            extra={"kind": kind.value, "text_length": len(text or "")}
        )
        return CandidateResult(kind=kind, source="ai", data=result, pages_analyzed=1)

    async def extract_from_images(self, images: List[bytes], kind: DocumentKind) -> CandidateResult:
        """Vision mode: one request per page image.

        Rosters merge every page that validated. Transfer receipts take the
        first page that validates with a positive amount.

        Raises:
            SchemaViolationError: If no page produced a valid reply
            APIClientError: If no page could be analyzed because the inference call failed
        """
        if not images:
            raise SchemaViolationError("No page images to analyze")

        system_prompt, user_prompt, _ = _PROMPTS[kind]
        pages: List[PageResult] = []
        analyzed = failed = 0
        last_error: Optional[Exception] = None

        for page_num, image in enumerate(images, start=1):
            analyzed += 1
            try:
                raw = await self.client.complete_json(
                    system_prompt,
                    text=PAGE_USER_PROMPT.format(page=page_num, pages=len(images), instruction=user_prompt),
                    image=image,
                )
                page = parse_reply(kind, raw)
            except (SchemaViolationError, APIClientError) as e:
                failed += 1
                last_error = e
                LOGGER.warning(
                    f"Page {page_num} analysis failed: {e}",
                    extra={"kind": kind.value, "page": page_num, "error_type": type(e).__name__}
                )
                continue

            pages.append(page)
            if kind == DocumentKind.TRANSFER and page.operation.amount and page.operation.amount > 0:
                break

        LOGGER.info(
            "AI vision extraction finished",
            extra={"kind": kind.value, "pages_analyzed": analyzed, "pages_failed": failed}
        )

        if not pages:
            raise last_error

        if kind == DocumentKind.ROSTER:
            data = merge_roster_pages(pages)
        else:
            data = next((p for p in pages if p.operation.amount and p.operation.amount > 0), pages[0])

        return CandidateResult(
            kind=kind,
            source="ai",
            data=data,
            pages_analyzed=analyzed,
            pages_failed=failed,
        )
