from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from aportes.database.models import Institution
from aportes.repositories.base_repository import BaseRepository
from aportes.utils.cuit import normalize_cuit


class InstitutionRepository(BaseRepository[Institution]):
    """Read access to institutions.

    Institutions are registered administratively; the pipeline only looks
    them up and never creates one.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, Institution)

    async def get_by_cuit(self, cuit: Optional[str]) -> Optional[Institution]:
        """Find an institution by tax ID, ignoring separators.

        Args:
            cuit: CUIT in any rendering (``30-12345678-9`` or digits)

        Returns:
            The institution if registered, None otherwise
        """
        digits = normalize_cuit(cuit)
        if not digits:
            return None
        return await self.find_one(Institution.cuit == digits)
