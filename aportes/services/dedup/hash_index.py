"""Legacy content-hash index persisted as a JSON side file.

Maps a SHA-256 of the raw upload to where the first copy was stored. The
Document table's unique ``content_hash`` column supersedes it; the file is
still read for uploads that predate the column and written through while
the migration is in progress.

Files written by the previous system use camelCase keys (``fileName``,
``savedName``, ``savedPath``); they load transparently.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from aportes.core.config import settings
from aportes.core.exceptions import DuplicateDocumentError, StorageError
from aportes.utils.logging import get_logger

LOGGER = get_logger(__name__)


class HashIndexEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_file_name: str = Field(validation_alias=AliasChoices("original_file_name", "fileName"))
    stored_file_name: str = Field(validation_alias=AliasChoices("stored_file_name", "savedName"))
    stored_path: str = Field(validation_alias=AliasChoices("stored_path", "savedPath"))


class HashIndex:
    """Hash to stored-file map with atomic, serialized writes."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path or settings.storage.hash_index_path)
        self._entries: Dict[str, HashIndexEntry] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    async def load(self) -> Dict[str, HashIndexEntry]:
        """Read the file from disk. A missing or corrupt file yields an empty index."""
        raw = await asyncio.to_thread(self._read_file)
        entries: Dict[str, HashIndexEntry] = {}
        for content_hash, value in raw.items():
            try:
                entries[content_hash] = HashIndexEntry.model_validate(value)
            except PydanticValidationError:
                LOGGER.warning("Skipping malformed hash index entry", extra={"content_hash": content_hash})
        self._entries = entries
        self._loaded = True
        return dict(entries)

    async def lookup(self, content_hash: str) -> Optional[HashIndexEntry]:
        if not self._loaded:
            await self.load()
        return self._entries.get(content_hash)

    async def entries(self) -> Dict[str, HashIndexEntry]:
        if not self._loaded:
            await self.load()
        return dict(self._entries)

    async def register(self, content_hash: str, entry: HashIndexEntry) -> None:
        """Add an entry and persist the index.

        The file is re-read under the lock before writing, so concurrent
        registrations of different hashes are all kept. For the same hash
        the first registration wins.

        Raises:
            DuplicateDocumentError: If the hash is already registered
            StorageError: If the index cannot be written
        """
        async with self._lock:
            await self.load()
            existing = self._entries.get(content_hash)
            if existing is not None:
                raise DuplicateDocumentError(content_hash, existing=existing)

            self._entries[content_hash] = entry
            payload = {key: value.model_dump() for key, value in self._entries.items()}
            try:
                await asyncio.to_thread(self._write_file, payload)
            except OSError as e:
                self._entries.pop(content_hash, None)
                raise StorageError(f"Could not write hash index {self.path}: {e}", original_error=e) from e

        LOGGER.debug("Registered hash in legacy index", extra={"content_hash": content_hash})

    def _read_file(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            LOGGER.warning(f"Unreadable hash index, treating it as empty: {e}", extra={"path": str(self.path)})
            return {}
        if not isinstance(data, dict):
            LOGGER.warning("Hash index is not a JSON object, treating it as empty", extra={"path": str(self.path)})
            return {}
        return data

    def _write_file(self, payload: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".hash-index-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
