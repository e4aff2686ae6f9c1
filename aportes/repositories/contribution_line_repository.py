from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from aportes.database.models import ContributionLine
from aportes.repositories.base_repository import BaseRepository


class ContributionLineRepository(BaseRepository[ContributionLine]):
    """Repository for per-person roster lines."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ContributionLine)

    async def get_for_member(self, document_id: UUID, member_id: UUID) -> Optional[ContributionLine]:
        return await self.find_one(
            ContributionLine.document_id == document_id,
            ContributionLine.member_id == member_id,
        )

    async def create_line(
        self,
        document_id: UUID,
        period_id: Optional[UUID],
        member_id: Optional[UUID],
        raw_name: str,
        quantity: Optional[int],
        fee_amount: Optional[Decimal],
        gross_amount: Optional[Decimal],
        status: str = "matched",
    ) -> ContributionLine:
        """Insert a line; raises ``IntegrityError`` if the pair already exists."""
        return await self.create_guarded(
            document_id=document_id,
            period_id=period_id,
            member_id=member_id,
            raw_name=raw_name,
            quantity=quantity,
            fee_amount=fee_amount,
            gross_amount=gross_amount,
            status=status,
        )
