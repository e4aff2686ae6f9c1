from typing import Any, Dict, Generic, List, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aportes.utils.logging import get_logger

ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Persistence operations shared by every ledger repository.

    Repositories only flush. The service owning the unit of work commits or
    rolls back, so a roster's lines, its period totals and the document
    status land together or not at all.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        self.session = session
        self.model = model
        self.logger = LOGGER

    def _fail(self, action: str, error: SQLAlchemyError) -> None:
        self.logger.error(
            f"Error {action} {self.model.__name__}: {error}",
            exc_info=True,
            extra={"table": self.model.__tablename__}
        )

    def _filtered(self, query: Select, filters: Optional[Dict[str, Any]]) -> Select:
        for field, value in (filters or {}).items():
            if not hasattr(self.model, field):
                raise ValueError(f"{self.model.__name__} has no column {field!r}")
            query = query.where(getattr(self.model, field) == value)
        return query

    async def find_one(self, *criteria) -> Optional[ModelType]:
        """First row matching every SQLAlchemy criterion, or None."""
        try:
            result = await self.session.execute(select(self.model).where(*criteria))
            return result.scalars().first()
        except SQLAlchemyError as e:
            self._fail("looking up", e)
            raise

    async def get_by_id(self, id: UUID) -> Optional[ModelType]:
        return await self.find_one(self.model.id == id)

    async def get_all(
        self,
        skip: int = 0,
        limit: int = 200,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[ModelType]:
        """Rows matching equality filters, oldest first.

        Raises:
            ValueError: If a filter names a column the model does not have
        """
        query = self._filtered(select(self.model), filters)
        if hasattr(self.model, "created_at"):
            query = query.order_by(self.model.created_at)
        try:
            result = await self.session.execute(query.offset(skip).limit(limit))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self._fail("listing", e)
            raise

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        query = self._filtered(select(func.count()).select_from(self.model), filters)
        try:
            result = await self.session.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            self._fail("counting", e)
            raise

    async def create(self, **fields) -> ModelType:
        """Add a row and flush it inside the caller's transaction."""
        instance = self.model(**fields)
        try:
            self.session.add(instance)
            await self.session.flush()
            return instance
        except SQLAlchemyError as e:
            self._fail("creating", e)
            raise

    async def create_guarded(self, **fields) -> ModelType:
        """Insert a row that may collide with a concurrent writer.

        The insert runs in a SAVEPOINT, so a unique violation undoes only
        this row and the caller's transaction stays usable for re-reading
        the winner.

        Raises:
            IntegrityError: If the unique key was taken first
        """
        instance = self.model(**fields)
        try:
            async with self.session.begin_nested():
                self.session.add(instance)
                await self.session.flush()
            return instance
        except IntegrityError:
            self.logger.info(
                f"Lost insert race on {self.model.__tablename__}",
                extra={"table": self.model.__tablename__, "columns": sorted(fields)}
            )
            raise
        except SQLAlchemyError as e:
            self._fail("creating", e)
            raise

    async def update(self, id: UUID, **fields) -> Optional[ModelType]:
        """Set columns on an existing row.

        Returns:
            The updated row, or None when ``id`` does not exist
        """
        instance = await self.get_by_id(id)
        if instance is None:
            return None

        for key, value in fields.items():
            if not hasattr(instance, key):
                raise ValueError(f"{self.model.__name__} has no column {key!r}")
            setattr(instance, key, value)
        try:
            await self.session.flush()
            return instance
        except SQLAlchemyError as e:
            self._fail("updating", e)
            raise
