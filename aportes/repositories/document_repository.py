from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aportes.database.models import Document
from aportes.repositories.base_repository import BaseRepository
from aportes.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Parse errors are stored for operators, not as full tracebacks
MAX_PARSE_ERROR_LENGTH = 2000


class DocumentRepository(BaseRepository[Document]):
    """Repository for uploaded documents.

    ``content_hash`` is unique, so ``register`` doubles as an atomic
    insert-if-absent for duplicate detection.
    """

    def __init__(self, session: AsyncSession):
        """Initialize document repository.

        Args:
            session: SQLAlchemy async session
        """
        super().__init__(session, Document)

    async def get_by_content_hash(self, content_hash: str) -> Optional[Document]:
        return await self.find_one(Document.content_hash == content_hash)

    async def register(
        self,
        file_name: str,
        content_hash: str,
        storage_path: Optional[str],
        stored_file_name: Optional[str],
        kind: Optional[str] = None,
    ) -> Document:
        """Create the document row for a freshly stored upload.

        Args:
            file_name: Name the file was uploaded with
            content_hash: SHA-256 hex digest of the bytes
            storage_path: Where the bytes were stored
            stored_file_name: Name under which they were stored
            kind: Declared kind, when the caller knows it

        Returns:
            Created Document record

        Raises:
            IntegrityError: If another upload registered the same hash first
        """
        return await self.create_guarded(
            file_name=file_name,
            content_hash=content_hash,
            storage_path=storage_path,
            stored_file_name=stored_file_name,
            kind=kind,
            parse_status="unparsed",
        )

    async def mark_parsed(
        self,
        document_id: UUID,
        kind: str,
        pdf_type: Optional[str] = None,
        page_count: Optional[int] = None,
        people_count: Optional[int] = None,
        total_amount: Optional[Decimal] = None,
        period_id: Optional[UUID] = None,
    ) -> Optional[Document]:
        """Record a successful parse and its summary."""
        LOGGER.info(
            "Marking document parsed",
            extra={"document_id": str(document_id), "kind": kind, "people_count": people_count}
        )
        return await self.update(
            document_id,
            kind=kind,
            pdf_type=pdf_type,
            page_count=page_count,
            people_count=people_count,
            total_amount=total_amount,
            period_id=period_id,
            parse_status="parsed",
            parse_error=None,
        )

    async def mark_failed(self, document_id: UUID, error: str, kind: Optional[str] = None) -> Optional[Document]:
        """Record a terminal parse failure."""
        fields = {
            "parse_status": "failed",
            "parse_error": (error or "unknown error")[:MAX_PARSE_ERROR_LENGTH],
        }
        if kind:
            fields["kind"] = kind
        return await self.update(document_id, **fields)

    async def set_storage_path(self, document_id: UUID, storage_path: str) -> Optional[Document]:
        return await self.update(document_id, storage_path=storage_path)

    async def list_without_storage_path(self, limit: int = 500) -> List[Document]:
        """Documents uploaded before the storage path column existed."""
        try:
            result = await self.session.execute(
                select(Document).where(Document.storage_path.is_(None)).limit(limit)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing documents without storage path: {e}", exc_info=True)
            raise
