"""One-time migration of storage paths from the legacy hash index.

Copies ``stored_path`` from ``hash-index.json`` onto Document rows uploaded
before the ``storage_path`` column existed. Once every row is backfilled
the legacy file can be retired.
"""

from dataclasses import dataclass
from pathlib import Path

from aportes.repositories.document_repository import DocumentRepository
from aportes.services.dedup.hash_index import HashIndex
from aportes.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class BackfillReport:
    updated: int = 0
    skipped: int = 0
    missing: int = 0
    files_not_on_disk: int = 0


async def backfill_storage_paths(
    index: HashIndex,
    documents: DocumentRepository,
    batch_size: int = 500,
) -> BackfillReport:
    """Fill ``Document.storage_path`` from the legacy index and commit.

    Args:
        index: Legacy hash index to read from
        documents: Repository bound to the session to write with
        batch_size: Maximum number of documents to examine

    Returns:
        Counts of updated rows, rows skipped for lack of a hash or path,
        and rows with no index entry
    """
    report = BackfillReport()
    entries = await index.entries()
    if not entries:
        LOGGER.info("Legacy hash index is empty, nothing to backfill")
        return report

    pending = await documents.list_without_storage_path(limit=batch_size)
    LOGGER.info(
        "Backfilling storage paths",
        extra={"index_entries": len(entries), "documents": len(pending)}
    )

    for document in pending:
        entry = entries.get(document.content_hash) if document.content_hash else None
        if entry is None:
            report.missing += 1
            continue
        if not entry.stored_path:
            report.skipped += 1
            continue

        if not Path(entry.stored_path).exists():
            report.files_not_on_disk += 1
            LOGGER.warning(
                "Indexed file is not on disk",
                extra={"document_id": str(document.id), "path": entry.stored_path}
            )

        await documents.set_storage_path(document.id, entry.stored_path)
        if not document.stored_file_name:
            document.stored_file_name = entry.stored_file_name
        report.updated += 1

    await documents.session.commit()
    LOGGER.info("Backfill finished", extra=vars(report))
    return report
