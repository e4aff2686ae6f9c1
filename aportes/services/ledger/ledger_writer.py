"""Writes reconciled extractions into the ledger.

One call is one unit of work: the period, its lines, the aggregate update
and the document's parsed status are committed together or rolled back
together.

Once a period has both roster lines and a transfer, the two totals are
compared and a gap is reported as a warning on the result; it never blocks
the write.

No lock guards concurrent uploads. Members and periods are created
optimistically; a unique-constraint violation means a concurrent upload
created the row first, so the lookup is retried a bounded number of times
before giving up with ``ConstraintRaceError``.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional, TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from aportes.core.config import settings
from aportes.core.exceptions import ConstraintRaceError, InstitutionNotFoundError, ValidationError
from aportes.database.models import Institution, Member, Period
from aportes.repositories.contribution_line_repository import ContributionLineRepository
from aportes.repositories.document_repository import DocumentRepository
from aportes.repositories.institution_repository import InstitutionRepository
from aportes.repositories.member_repository import MemberRepository, canonical_member_name
from aportes.repositories.period_repository import PeriodRepository
from aportes.repositories.transfer_repository import TransferRepository
from aportes.schemas.extraction import DocumentKind, PdfType, RosterExtraction, TransferExtraction
from aportes.schemas.outcome import Finding
from aportes.services.validation.reconciler import validate_period_reconciliation
from aportes.utils.cuit import format_cuit, normalize_cuit
from aportes.utils.logging import get_logger
from aportes.utils.money import ZERO, add_amounts
from aportes.utils.periods import PeriodKey, combine_date_time
from aportes.utils.retry import compute_delay

LOGGER = get_logger(__name__)

T = TypeVar("T")


@dataclass
class LedgerResult:
    period_id: UUID
    lines_written: int = 0
    lines_skipped: int = 0
    people_count: int = 0
    total_amount: Decimal = ZERO
    transfer_id: Optional[UUID] = None
    transfer_reused: bool = False
    warnings: List[Finding] = field(default_factory=list)


class LedgerWriter:
    """Resolves institution, members and period, then persists lines or a transfer."""

    def __init__(
        self,
        session: AsyncSession,
        institutions: Optional[InstitutionRepository] = None,
        members: Optional[MemberRepository] = None,
        periods: Optional[PeriodRepository] = None,
        lines: Optional[ContributionLineRepository] = None,
        transfers: Optional[TransferRepository] = None,
        documents: Optional[DocumentRepository] = None,
        conflict_retries: Optional[int] = None,
        conflict_backoff: Optional[float] = None,
        default_concept: Optional[str] = None,
    ):
        self.session = session
        self.institutions = institutions or InstitutionRepository(session)
        self.members = members or MemberRepository(session)
        self.periods = periods or PeriodRepository(session)
        self.lines = lines or ContributionLineRepository(session)
        self.transfers = transfers or TransferRepository(session)
        self.documents = documents or DocumentRepository(session)
        self.conflict_retries = (
            conflict_retries if conflict_retries is not None else settings.retry.conflict_retries
        )
        self.conflict_backoff = (
            conflict_backoff if conflict_backoff is not None else settings.retry.conflict_backoff
        )
        self.default_concept = default_concept or settings.pipeline.default_concept

    async def resolve_institution(self, cuit: Optional[str]) -> Institution:
        """Look up the owning institution. Institutions are never created here.

        Raises:
            InstitutionNotFoundError: If no institution has this CUIT
        """
        institution = await self.institutions.get_by_cuit(cuit)
        if institution is None:
            LOGGER.warning("Institution not registered", extra={"cuit": format_cuit(cuit)})
            raise InstitutionNotFoundError(format_cuit(cuit) if cuit else None)
        return institution

    async def _find_or_create(
        self,
        label: str,
        find: Callable[[], Awaitable[Optional[T]]],
        create: Callable[[], Awaitable[T]],
    ) -> T:
        """Look up a row, creating it on a miss; on a lost create race, look up again.

        Raises:
            ConstraintRaceError: If the row can neither be found nor created
                after ``conflict_retries`` conflicts
        """
        attempt = 0
        while True:
            existing = await find()
            if existing is not None:
                return existing
            try:
                return await create()
            except IntegrityError as e:
                if attempt >= self.conflict_retries:
                    LOGGER.error(
                        f"Gave up resolving {label} after {attempt + 1} conflicts",
                        extra={"entity": label}
                    )
                    raise ConstraintRaceError(
                        f"Could not resolve {label} after {attempt + 1} conflicting creates",
                        original_error=e,
                    ) from e
                delay = compute_delay(
                    attempt,
                    self.conflict_backoff,
                    self.conflict_backoff * 10,
                    2.0,
                    jitter=0.5,
                )
                attempt += 1
                LOGGER.info(
                    f"Concurrent create of {label}, retrying lookup",
                    extra={"entity": label, "attempt": attempt, "delay": delay}
                )
                await asyncio.sleep(delay)

    async def resolve_member(self, institution_id: UUID, full_name: str) -> Member:
        name = canonical_member_name(full_name)
        return await self._find_or_create(
            f"member {name!r}",
            lambda: self.members.get_by_name(institution_id, name),
            lambda: self.members.create_member(institution_id, name),
        )

    async def resolve_period(
        self, institution_id: UUID, period: PeriodKey, concept: Optional[str] = None
    ) -> Period:
        concept = concept or self.default_concept
        return await self._find_or_create(
            f"period {period.month:02d}/{period.year}",
            lambda: self.periods.get_by_key(institution_id, period.month, period.year, concept),
            lambda: self.periods.create_period(institution_id, period.month, period.year, concept),
        )

    async def write_roster(
        self,
        document_id: UUID,
        roster: RosterExtraction,
        period: PeriodKey,
        pdf_type: PdfType = PdfType.SUELDO,
        page_count: Optional[int] = None,
    ) -> LedgerResult:
        """Persist a roster's lines and add them to the period totals.

        Args:
            document_id: Document the roster was extracted from
            roster: Reconciled roster
            period: Resolved period
            pdf_type: SUELDO or FOPID
            page_count: Pages in the source PDF

        Returns:
            LedgerResult with the period and line counts

        Raises:
            InstitutionNotFoundError: If the roster's institution is not registered
            ConstraintRaceError: If a member or the period cannot be resolved
        """
        if not roster.persons:
            raise ValidationError("Roster has no rows to write")

        try:
            institution = await self.resolve_institution(roster.institution.cuit)
            period_row = await self.resolve_period(institution.id, period)
            previous_total = period_row.total_amount or ZERO

            result = LedgerResult(period_id=period_row.id)
            written_amounts = []
            for person in roster.persons:
                member = await self.resolve_member(institution.id, person.name)
                if await self.lines.get_for_member(document_id, member.id) is not None:
                    result.lines_skipped += 1
                    continue
                try:
                    await self.lines.create_line(
                        document_id=document_id,
                        period_id=period_row.id,
                        member_id=member.id,
                        raw_name=person.name,
                        quantity=person.quantity,
                        fee_amount=person.fee_amount,
                        gross_amount=person.gross_amount,
                    )
                except IntegrityError:
                    result.lines_skipped += 1
                    continue
                result.lines_written += 1
                written_amounts.append(person.fee_amount)

            result.people_count = result.lines_written
            result.total_amount = add_amounts(written_amounts)
            if result.lines_written:
                await self.periods.add_to_totals(period_row.id, result.people_count, result.total_amount)

            transfer_row = await self.transfers.get_by_period(period_row.id)
            if transfer_row is not None:
                result.warnings = self._check_period(
                    period, add_amounts([previous_total, result.total_amount]), transfer_row.amount
                )

            await self.documents.mark_parsed(
                document_id,
                kind=DocumentKind.ROSTER.value,
                pdf_type=pdf_type.value,
                page_count=page_count,
                people_count=len(roster.persons),
                total_amount=add_amounts(p.fee_amount for p in roster.persons),
                period_id=period_row.id,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        LOGGER.info(
            "Roster written to ledger",
            extra={
                "document_id": str(document_id),
                "period_id": str(result.period_id),
                "lines_written": result.lines_written,
                "lines_skipped": result.lines_skipped,
                "total_amount": str(result.total_amount),
            }
        )
        return result

    async def write_transfer(
        self,
        document_id: UUID,
        transfer: TransferExtraction,
        period: PeriodKey,
        page_count: Optional[int] = None,
    ) -> LedgerResult:
        """Persist a transfer receipt as the period's transfer.

        A period holds one transfer. When it already has one, whether found
        up front or created by a concurrent upload, that row is reused.

        Raises:
            InstitutionNotFoundError: If the ordering party is not registered
            ConstraintRaceError: If the period cannot be resolved
        """
        operation = transfer.operation
        if operation.amount is None:
            raise ValidationError("Transfer has no amount to write")

        try:
            institution = await self.resolve_institution(transfer.ordering_party.cuit)
            period_row = await self.resolve_period(institution.id, period)
            result = LedgerResult(period_id=period_row.id, total_amount=operation.amount)

            row = await self.transfers.get_by_period(period_row.id)
            if row is None:
                try:
                    row = await self.transfers.create_transfer(
                        period_row.id,
                        **self._transfer_fields(document_id, transfer),
                    )
                except IntegrityError:
                    row = await self.transfers.get_by_period(period_row.id)
                    if row is None:
                        raise
                    result.transfer_reused = True
            else:
                result.transfer_reused = True

            if result.transfer_reused:
                LOGGER.warning(
                    "Period already has a transfer, reusing it",
                    extra={"period_id": str(period_row.id), "transfer_id": str(row.id)}
                )
            result.transfer_id = row.id
            if period_row.people_count:
                result.warnings = self._check_period(period, period_row.total_amount, row.amount)

            await self.documents.mark_parsed(
                document_id,
                kind=DocumentKind.TRANSFER.value,
                pdf_type=PdfType.COMPROBANTE.value,
                page_count=page_count,
                total_amount=operation.amount,
                period_id=period_row.id,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        LOGGER.info(
            "Transfer written to ledger",
            extra={
                "document_id": str(document_id),
                "period_id": str(result.period_id),
                "transfer_id": str(result.transfer_id),
                "reused": result.transfer_reused,
            }
        )
        return result

    @staticmethod
    def _check_period(period: PeriodKey, period_total: Decimal, transfer_amount: Decimal) -> List[Finding]:
        findings = validate_period_reconciliation(
            period_total, transfer_amount, f"period {period.month:02d}/{period.year}"
        )
        for finding in findings:
            LOGGER.warning(finding.message, extra={"field": finding.field})
        return findings

    @staticmethod
    def _transfer_fields(document_id: UUID, transfer: TransferExtraction) -> dict:
        operation = transfer.operation
        ordering = transfer.ordering_party
        return {
            "document_id": document_id,
            "transferred_at": combine_date_time(transfer.date, transfer.time),
            "reference": transfer.reference,
            "operation_number": transfer.operation_number,
            "origin_account": operation.origin_account,
            "destination_cbu": operation.destination_cbu,
            "amount": operation.amount,
            "amount_to_transfer": operation.amount_to_transfer,
            "total_amount": operation.total_amount,
            "ordering_cuit": normalize_cuit(ordering.cuit) or None,
            "ordering_name": ordering.name,
            "ordering_address": ordering.address,
            "beneficiary_name": operation.holder,
            "beneficiary_cuit": format_cuit(operation.cuit) if operation.cuit else None,
            "bank_name": operation.bank,
            "operation_type": operation.operation_type,
        }

