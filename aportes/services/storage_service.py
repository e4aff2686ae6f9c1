"""Storage service for uploaded PDFs on the local filesystem."""

import asyncio
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from aportes.core.config import settings
from aportes.core.exceptions import StorageError
from aportes.utils.logging import get_logger

LOGGER = get_logger(__name__)

_UNSAFE_RE = re.compile(r"[^a-z0-9._-]+")


def safe_name(original: Optional[str]) -> str:
    """Lower-case a file name and replace anything unusual with dashes."""
    name = _UNSAFE_RE.sub("-", (original or "").lower()).strip("-")
    return name or "archivo.pdf"


@dataclass(frozen=True)
class StoredFile:
    stored_file_name: str
    storage_path: str


class StorageService:
    """Service for managing uploaded files under ``STORAGE_DIR``."""

    def __init__(self, storage_dir: Optional[Union[str, Path]] = None):
        self.storage_dir = Path(storage_dir or settings.storage.storage_dir)

    async def save(self, data: bytes, file_name: str) -> StoredFile:
        """Write raw bytes under a unique name.

        Args:
            data: File content
            file_name: Name supplied by the uploader

        Returns:
            StoredFile with the generated name and full path

        Raises:
            StorageError: If the file cannot be written
        """
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        stored_file_name = f"{timestamp}-{uuid.uuid4().hex[:8]}-{safe_name(file_name)}"
        path = self.storage_dir / stored_file_name

        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            LOGGER.error(
                f"Failed to store file: {e}",
                extra={"file_name": file_name, "path": str(path)},
                exc_info=True
            )
            raise StorageError(f"Could not store {file_name}: {e}", original_error=e) from e

        LOGGER.info(
            "Stored uploaded file",
            extra={"file_name": file_name, "path": str(path), "size_bytes": len(data)}
        )
        return StoredFile(stored_file_name=stored_file_name, storage_path=str(path))

    async def read(self, storage_path: str) -> bytes:
        try:
            return await asyncio.to_thread(Path(storage_path).read_bytes)
        except OSError as e:
            raise StorageError(f"Could not read {storage_path}: {e}", original_error=e) from e

    async def delete(self, storage_path: str) -> bool:
        """Remove a stored file. Returns False when it was already gone."""
        path = Path(storage_path)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Could not delete {storage_path}: {e}", original_error=e) from e
        LOGGER.info("Deleted stored file", extra={"path": storage_path})
        return True

    async def exists(self, storage_path: Optional[str]) -> bool:
        if not storage_path:
            return False
        return await asyncio.to_thread(Path(storage_path).is_file)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
