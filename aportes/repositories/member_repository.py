from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from aportes.database.models import Member
from aportes.repositories.base_repository import BaseRepository


def canonical_member_name(name: str) -> str:
    """Upper-case and trim a member name.

    Inner whitespace is kept as-is: double spaces separate surname from
    given names in the source rosters.
    """
    return (name or "").strip().upper()


class MemberRepository(BaseRepository[Member]):
    """Repository for members of an institution."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Member)

    async def get_by_name(self, institution_id: UUID, full_name: str) -> Optional[Member]:
        """Case-insensitive exact match on full name within an institution."""
        return await self.find_one(
            Member.institution_id == institution_id,
            func.upper(Member.full_name) == canonical_member_name(full_name),
        )

    async def create_member(self, institution_id: UUID, full_name: str) -> Member:
        """Insert a member; raises ``IntegrityError`` if one already exists."""
        return await self.create_guarded(
            institution_id=institution_id,
            full_name=canonical_member_name(full_name),
        )
