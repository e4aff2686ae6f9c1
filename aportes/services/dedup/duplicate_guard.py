"""Content-addressed duplicate detection for uploads."""

from typing import Optional, Union

from sqlalchemy.exc import IntegrityError

from aportes.core.config import settings
from aportes.core.exceptions import DuplicateDocumentError, StorageError
from aportes.database.models import Document
from aportes.repositories.document_repository import DocumentRepository
from aportes.services.dedup.hash_index import HashIndex, HashIndexEntry
from aportes.utils.logging import get_logger

LOGGER = get_logger(__name__)

ExistingUpload = Union[Document, HashIndexEntry]


def describe_existing(existing: Optional[ExistingUpload]) -> Optional[str]:
    """Short reference to the first upload, for outcomes and log lines."""
    if existing is None:
        return None
    if isinstance(existing, HashIndexEntry):
        return existing.stored_path
    return existing.storage_path or str(existing.id)


class DuplicateGuard:
    """Blocks re-ingestion of identical bytes.

    The Document table's unique ``content_hash`` column is the source of
    truth. The legacy JSON index is consulted for uploads that predate the
    column and, while ``write_through`` is on, kept up to date.
    """

    def __init__(
        self,
        documents: DocumentRepository,
        index: Optional[HashIndex] = None,
        write_through: Optional[bool] = None,
    ):
        self.documents = documents
        self.index = index if index is not None else HashIndex()
        self.write_through = (
            write_through if write_through is not None else settings.storage.hash_index_write_through
        )

    async def check(self, content_hash: str) -> Optional[ExistingUpload]:
        """Return what is known about an earlier upload of the same bytes, if any."""
        document = await self.documents.get_by_content_hash(content_hash)
        if document is not None:
            return document
        return await self.index.lookup(content_hash)

    async def register(
        self,
        content_hash: str,
        file_name: str,
        storage_path: str,
        stored_file_name: str,
        kind: Optional[str] = None,
    ) -> Document:
        """Insert the Document row for a new upload and commit it.

        Args:
            content_hash: SHA-256 hex digest of the bytes
            file_name: Name the file was uploaded with
            storage_path: Where the bytes were stored
            stored_file_name: Name under which they were stored
            kind: Declared kind, when the caller knows it

        Returns:
            The committed Document

        Raises:
            DuplicateDocumentError: If a concurrent upload registered the hash first
        """
        try:
            document = await self.documents.register(
                file_name=file_name,
                content_hash=content_hash,
                storage_path=storage_path,
                stored_file_name=stored_file_name,
                kind=kind,
            )
            await self.documents.session.commit()
        except IntegrityError as e:
            await self.documents.session.rollback()
            existing = await self.documents.get_by_content_hash(content_hash)
            LOGGER.info(
                "Lost registration race for content hash",
                extra={"content_hash": content_hash, "existing": describe_existing(existing)}
            )
            raise DuplicateDocumentError(content_hash, existing=existing) from e

        if self.write_through:
            await self._write_legacy_entry(content_hash, file_name, storage_path, stored_file_name)

        LOGGER.info(
            "Registered document",
            extra={"document_id": str(document.id), "content_hash": content_hash, "file_name": file_name}
        )
        return document

    async def _write_legacy_entry(
        self,
        content_hash: str,
        file_name: str,
        storage_path: str,
        stored_file_name: str,
    ) -> None:
        entry = HashIndexEntry(
            original_file_name=file_name,
            stored_file_name=stored_file_name,
            stored_path=storage_path,
        )
        try:
            await self.index.register(content_hash, entry)
        except DuplicateDocumentError:
            LOGGER.debug("Legacy index already holds hash", extra={"content_hash": content_hash})
        except StorageError as e:
            # The database row is authoritative; the legacy file only lags behind
            LOGGER.warning(f"Legacy hash index not updated: {e}", extra={"content_hash": content_hash})
