"""Document-to-ledger pipeline.

``ingest`` takes raw upload bytes through sniffing, hashing, duplicate
detection, storage and registration, then hands the document to
``process`` either inline or as a background task. ``process`` extracts,
reconciles and writes the ledger. ``ingest_csv`` does the same for a roster
exported as CSV, which needs the institution CUIT and a period hint.

None of these methods raise: every failure ends up in the returned
``ProcessingOutcome`` and, once a Document row exists, in its stored parse
error.
"""

import asyncio
import hashlib
import time
from functools import partial
from typing import Awaitable, Callable, Optional, Set, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aportes.core.config import settings
from aportes.core.database import async_session_maker
from aportes.core.exceptions import (
    AppError,
    DuplicateDocumentError,
    InvalidDocumentError,
    PeriodUnresolvedError,
    ReconciliationError,
    UnknownDocumentKindError,
)
from aportes.repositories.document_repository import DocumentRepository
from aportes.schemas.extraction import CandidateResult, DocumentKind, PdfType
from aportes.schemas.outcome import ProcessingOutcome, ProcessingStatus
from aportes.services.dedup.duplicate_guard import DuplicateGuard, describe_existing
from aportes.services.dedup.hash_index import HashIndex
from aportes.services.extraction.classifier import detect_kind, detect_pdf_type
from aportes.services.extraction.content_extractor import ContentExtractor, ExtractionResult
from aportes.services.extraction.strategy import ExtractionStrategy, get_strategy
from aportes.services.heuristics.csv_roster import parse_roster_csv
from aportes.services.ledger.ledger_writer import LedgerWriter
from aportes.services.storage_service import StorageService
from aportes.services.validation.reconciler import ensure_reconciled, get_errors, get_warnings, reconcile
from aportes.utils.logging import get_logger
from aportes.utils.periods import (
    PeriodKey,
    parse_document_date,
    parse_period_hint,
    period_from_label,
    resolve_period,
)
from aportes.utils.retry import is_retryable_error, with_retry

LOGGER = get_logger(__name__)

PDF_MAGIC = b"%PDF-"
# Leading bytes searched for the PDF header; some producers prepend junk
MAGIC_SEARCH_WINDOW = 1024

ProcessStep = Callable[[AsyncSession], Awaitable[None]]


def is_pdf(data: bytes) -> bool:
    return bool(data) and PDF_MAGIC in data[:MAGIC_SEARCH_WINDOW]


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class DocumentPipeline:
    """Orchestrates ingestion and processing of uploaded documents."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = async_session_maker,
        storage: Optional[StorageService] = None,
        extractor: Optional[ContentExtractor] = None,
        strategy: Optional[ExtractionStrategy] = None,
        hash_index: Optional[HashIndex] = None,
        document_repository_factory: Callable[[AsyncSession], DocumentRepository] = DocumentRepository,
        ledger_writer_factory: Callable[[AsyncSession], LedgerWriter] = LedgerWriter,
    ):
        self.session_factory = session_factory
        self.storage = storage or StorageService()
        self.extractor = extractor or ContentExtractor()
        self.strategy = strategy or get_strategy()
        self.hash_index = hash_index if hash_index is not None else HashIndex()
        self.document_repository_factory = document_repository_factory
        self.ledger_writer_factory = ledger_writer_factory
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def ingest(
        self,
        data: bytes,
        file_name: str,
        period_hint: Optional[str] = None,
        kind: Optional[Union[DocumentKind, str]] = None,
        background: bool = False,
    ) -> ProcessingOutcome:
        """Accept an upload and process it.

        Args:
            data: Raw upload bytes
            file_name: Name the file was uploaded with
            period_hint: Optional ``YYYY-MM`` that overrides any detected period
            kind: Optional declared document kind
            background: Return ACCEPTED right after registration and process
                in a background task

        Returns:
            ProcessingOutcome; DUPLICATE when the same bytes were uploaded before
        """
        if not is_pdf(data):
            error = InvalidDocumentError(f"{file_name} is not a PDF")
            LOGGER.warning(error.message, extra={"file_name": file_name, "size_bytes": len(data or b"")})
            return ProcessingOutcome(status=ProcessingStatus.FAILED, file_name=file_name, error=error.message)

        outcome = ProcessingOutcome(
            status=ProcessingStatus.ACCEPTED, file_name=file_name, content_hash=content_hash(data)
        )
        try:
            declared = DocumentKind(kind) if kind else None
        except ValueError as e:
            LOGGER.warning(f"Rejected upload {file_name}: {e}", extra={"file_name": file_name})
            outcome.status = ProcessingStatus.FAILED
            outcome.error = str(e)
            return outcome

        document = await self._register(data, file_name, declared, outcome)
        if document is None:
            return outcome

        processing = self.process(document.id, data, file_name, period_hint=period_hint, kind=declared)
        return await self._dispatch(processing, outcome, background)

    async def ingest_csv(
        self,
        data: bytes,
        file_name: str,
        institution_cuit: str,
        period_hint: Optional[str],
        background: bool = False,
    ) -> ProcessingOutcome:
        """Accept a roster exported as CSV and write it like a PDF roster.

        Args:
            data: Raw CSV bytes
            file_name: Name the file was uploaded with
            institution_cuit: Institution the roster belongs to
            period_hint: ``YYYY-MM`` of the roster; the export carries no period
            background: Return ACCEPTED right after registration

        Returns:
            ProcessingOutcome; skipped CSV rows are listed as warnings
        """
        outcome = ProcessingOutcome(
            status=ProcessingStatus.ACCEPTED, file_name=file_name, content_hash=content_hash(data)
        )
        if not data:
            outcome.status = ProcessingStatus.FAILED
            outcome.error = f"{file_name} is empty"
            return outcome

        document = await self._register(data, file_name, DocumentKind.ROSTER, outcome)
        if document is None:
            return outcome

        processing = self.process_csv(document.id, data, file_name, institution_cuit, period_hint)
        return await self._dispatch(processing, outcome, background)

    async def process(
        self,
        document_id: UUID,
        data: bytes,
        file_name: str,
        period_hint: Optional[str] = None,
        kind: Optional[Union[DocumentKind, str]] = None,
    ) -> ProcessingOutcome:
        """Extract, reconcile and write one registered document.

        Returns:
            ProcessingOutcome with status COMMITTED or FAILED
        """
        outcome = self._new_outcome(document_id, data, file_name)

        async def step(session: AsyncSession) -> None:
            hint = parse_period_hint(period_hint)
            content = await self.extractor.extract(data)
            doc_kind = self.choose_kind(kind, content, file_name)
            outcome.kind = doc_kind

            candidate = await self.strategy.extract(content, doc_kind)
            pdf_type = None
            if candidate.roster is not None:
                pdf_type = detect_pdf_type(doc_kind, content.text, candidate.roster.period)
            await self._commit(session, document_id, candidate, hint, file_name, outcome, pdf_type, content.page_count)

        return await self._run(document_id, file_name, outcome, step)

    async def process_csv(
        self,
        document_id: UUID,
        data: bytes,
        file_name: str,
        institution_cuit: str,
        period_hint: Optional[str],
    ) -> ProcessingOutcome:
        """Parse, reconcile and write one registered roster CSV."""
        outcome = self._new_outcome(document_id, data, file_name)
        outcome.kind = DocumentKind.ROSTER

        async def step(session: AsyncSession) -> None:
            hint = parse_period_hint(period_hint)
            if hint is None:
                raise PeriodUnresolvedError("CSV rosters carry no period; supply a YYYY-MM hint")

            roster, skipped = parse_roster_csv(data, institution_cuit)
            roster.period = f"{hint.month:02d}/{hint.year}"
            candidate = CandidateResult(kind=DocumentKind.ROSTER, source="csv", data=roster)
            await self._commit(session, document_id, candidate, hint, file_name, outcome, PdfType.SUELDO, None)
            outcome.warnings.extend(skipped)

        return await self._run(document_id, file_name, outcome, step)

    async def drain(self) -> None:
        """Wait for every background task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def choose_kind(
        self,
        declared: Optional[Union[DocumentKind, str]],
        content: ExtractionResult,
        file_name: str,
    ) -> DocumentKind:
        """Declared kind, then detection, then the configured default.

        Raises:
            UnknownDocumentKindError: If nothing decides and no default is configured
        """
        if declared:
            return DocumentKind(declared)

        detected = detect_kind(content.text, file_name)
        if detected is not None:
            return detected

        default = settings.pipeline.default_kind_on_unknown
        if not default:
            raise UnknownDocumentKindError(f"Could not tell whether {file_name} is a roster or a transfer")
        LOGGER.info(
            "Document kind undetected, using default",
            extra={"file_name": file_name, "default_kind": default}
        )
        return DocumentKind(default)

    def choose_period(self, candidate: CandidateResult, hint: Optional[PeriodKey]) -> PeriodKey:
        """Hint, then the period printed in the document, then (transfers only) the transfer date.

        Raises:
            PeriodUnresolvedError: If no source yields a period
        """
        if candidate.roster is not None:
            detected = period_from_label(candidate.roster.period)
            if settings.pipeline.require_detected_period and not detected.is_complete:
                raise PeriodUnresolvedError("Roster does not state its period")
            period = resolve_period(hint, detected)
        else:
            period = resolve_period(hint, None, parse_document_date(candidate.transfer.date))

        if period is None:
            raise PeriodUnresolvedError("Could not determine the document period; supply a YYYY-MM hint")
        return period

    async def _register(
        self,
        data: bytes,
        file_name: str,
        kind: Optional[DocumentKind],
        outcome: ProcessingOutcome,
    ):
        """Store the upload and create its Document row.

        Returns the new document, or None when ``outcome`` already holds the
        final DUPLICATE or FAILED result. The stored file is removed again
        whenever registration does not go through.
        """
        digest = outcome.content_hash
        try:
            async with self.session_factory() as session:
                guard = DuplicateGuard(self.document_repository_factory(session), self.hash_index)

                existing = await guard.check(digest)
                if existing is not None:
                    self._duplicate(outcome, existing)
                    return None

                stored = await self.storage.save(data, file_name)
                try:
                    document = await guard.register(
                        content_hash=digest,
                        file_name=file_name,
                        storage_path=stored.storage_path,
                        stored_file_name=stored.stored_file_name,
                        kind=kind.value if kind else None,
                    )
                except DuplicateDocumentError as e:
                    await self.storage.delete(stored.storage_path)
                    self._duplicate(outcome, e.existing)
                    return None
                except (AppError, SQLAlchemyError):
                    await self.storage.delete(stored.storage_path)
                    raise
        except (AppError, SQLAlchemyError) as e:
            LOGGER.error(
                f"Ingestion failed for {file_name}: {e}",
                extra={"file_name": file_name, "content_hash": digest},
                exc_info=True
            )
            outcome.status = ProcessingStatus.FAILED
            outcome.error = getattr(e, "message", None) or str(e)
            return None

        outcome.document_id = document.id
        return document

    async def _dispatch(
        self,
        processing: Awaitable[ProcessingOutcome],
        outcome: ProcessingOutcome,
        background: bool,
    ) -> ProcessingOutcome:
        if not background:
            return await processing

        task = asyncio.create_task(processing)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        LOGGER.info(
            "Document accepted for background processing",
            extra={"document_id": str(outcome.document_id), "file_name": outcome.file_name}
        )
        return outcome

    async def _run(
        self,
        document_id: UUID,
        file_name: str,
        outcome: ProcessingOutcome,
        step: ProcessStep,
    ) -> ProcessingOutcome:
        start_time = time.time()
        async with self.session_factory() as session:
            try:
                await step(session)
                LOGGER.info(
                    f"Document committed in {time.time() - start_time:.2f}s",
                    extra={
                        "document_id": str(document_id),
                        "kind": outcome.kind.value if outcome.kind else None,
                        "source": outcome.source,
                        "lines_written": outcome.lines_written,
                        "warnings": len(outcome.warnings),
                    }
                )

            except AppError as e:
                if isinstance(e, ReconciliationError):
                    outcome.errors = get_errors(e.findings)
                    outcome.warnings = get_warnings(e.findings)
                LOGGER.error(
                    f"Processing failed for {file_name}: {e.message}",
                    extra={"document_id": str(document_id), "error_type": type(e).__name__},
                    exc_info=True
                )
                outcome.error = e.message
                await self._mark_failed(session, document_id, e.message, outcome.kind)

            except Exception as e:
                LOGGER.error(
                    f"Unexpected error processing {file_name}: {e}",
                    extra={"document_id": str(document_id), "error_type": type(e).__name__},
                    exc_info=True
                )
                outcome.error = f"Unexpected error: {e}"
                await self._mark_failed(session, document_id, outcome.error, outcome.kind)

        return outcome

    async def _commit(
        self,
        session: AsyncSession,
        document_id: UUID,
        candidate: CandidateResult,
        hint: Optional[PeriodKey],
        file_name: str,
        outcome: ProcessingOutcome,
        pdf_type: Optional[PdfType],
        page_count: Optional[int],
    ) -> None:
        """Reconcile the candidate, then write it in one retried unit of work."""
        outcome.source = candidate.source

        findings = reconcile(candidate, file_name)
        outcome.warnings = ensure_reconciled(findings, file_name)

        period = self.choose_period(candidate, hint)
        writer = self.ledger_writer_factory(session)

        if candidate.roster is not None:
            operation_name = "write_roster"
            write = partial(
                writer.write_roster, document_id, candidate.roster, period, pdf_type=pdf_type, page_count=page_count
            )
        else:
            operation_name = "write_transfer"
            write = partial(writer.write_transfer, document_id, candidate.transfer, period, page_count=page_count)

        result = await with_retry(
            write,
            max_retries=settings.retry.max_retries,
            initial_delay=settings.retry.initial_delay,
            max_delay=settings.retry.max_delay,
            backoff_factor=settings.retry.backoff_factor,
            should_retry=is_retryable_error,
            operation_name=operation_name,
        )

        outcome.status = ProcessingStatus.COMMITTED
        outcome.period_id = result.period_id
        outcome.lines_written = result.lines_written
        outcome.lines_skipped = result.lines_skipped
        outcome.transfer_id = result.transfer_id
        outcome.warnings.extend(result.warnings)

    async def _mark_failed(
        self,
        session: AsyncSession,
        document_id: UUID,
        error: str,
        kind: Optional[DocumentKind],
    ) -> None:
        documents = self.document_repository_factory(session)
        try:
            await session.rollback()
            await documents.mark_failed(document_id, error, kind.value if kind else None)
            await session.commit()
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Could not record failure of document {document_id}: {e}",
                extra={"document_id": str(document_id)},
                exc_info=True
            )

    @staticmethod
    def _new_outcome(document_id: UUID, data: bytes, file_name: str) -> ProcessingOutcome:
        return ProcessingOutcome(
            status=ProcessingStatus.FAILED,
            file_name=file_name,
            content_hash=content_hash(data),
            document_id=document_id,
        )

    @staticmethod
    def _duplicate(outcome: ProcessingOutcome, existing) -> ProcessingOutcome:
        outcome.status = ProcessingStatus.DUPLICATE
        outcome.duplicate_of = describe_existing(existing)
        if hasattr(existing, "id"):
            outcome.document_id = existing.id
        outcome.error = "Document already uploaded"
        LOGGER.info(
            "Duplicate upload rejected",
            extra={"content_hash": outcome.content_hash, "duplicate_of": outcome.duplicate_of}
        )
        return outcome
