from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from aportes.database.models import Transfer
from aportes.repositories.base_repository import BaseRepository


class TransferRepository(BaseRepository[Transfer]):
    """Repository for bank transfers, one per period."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Transfer)

    async def get_by_period(self, period_id: UUID) -> Optional[Transfer]:
        return await self.find_one(Transfer.period_id == period_id)

    async def create_transfer(self, period_id: UUID, **fields) -> Transfer:
        """Insert the period's transfer; raises ``IntegrityError`` if it has one."""
        return await self.create_guarded(period_id=period_id, **fields)
