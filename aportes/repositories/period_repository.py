from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aportes.database.models import Period
from aportes.repositories.base_repository import BaseRepository


class PeriodRepository(BaseRepository[Period]):
    """Repository for contribution periods."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Period)

    async def get_by_key(
        self, institution_id: UUID, month: int, year: int, concept: str
    ) -> Optional[Period]:
        return await self.find_one(
            Period.institution_id == institution_id,
            Period.month == month,
            Period.year == year,
            Period.concept == concept,
        )

    async def create_period(
        self, institution_id: UUID, month: int, year: int, concept: str
    ) -> Period:
        """Insert an empty period; raises ``IntegrityError`` on a lost race."""
        return await self.create_guarded(
            institution_id=institution_id,
            month=month,
            year=year,
            concept=concept,
            people_count=0,
            total_amount=Decimal("0.00"),
        )

    async def add_to_totals(self, period_id: UUID, people: int, amount: Decimal) -> None:
        """Increment the period aggregates in a single UPDATE.

        The increment is computed by the database so concurrent documents for
        the same period do not overwrite each other's totals.
        """
        try:
            await self.session.execute(
                update(Period)
                .where(Period.id == period_id)
                .values(
                    people_count=Period.people_count + people,
                    total_amount=Period.total_amount + amount,
                )
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating totals of period {period_id}: {e}", exc_info=True)
            raise
