"""Local index of processed photos."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Protocol

from gallevr_sync.domain.photos import PhotoMetadata, PhotoRecord

_logger = logging.getLogger(__name__)


class PhotoLibraryRepository(Protocol):
    """Persistence interface for photo records."""

    def get(self, file_path: Path) -> PhotoRecord | None:
        """Return the record for a photo path, if present."""

    def save(self, record: PhotoRecord) -> None:
        """Insert or replace a record."""

    def list_records(self, limit: int) -> list[PhotoRecord]:
        """Return the newest records first."""

    async def flush(self) -> None:
        """Wait for pending writes to complete."""


@dataclass
class PhotoLibraryService:
    """Keeps exactly one metadata record per photo path."""

    repository: PhotoLibraryRepository

    def contains(self, file_path: Path) -> bool:
        return self.repository.get(file_path) is not None

    def get(self, file_path: Path) -> PhotoRecord | None:
        return self.repository.get(file_path)

    def record_photo(
        self, file_path: Path, metadata: PhotoMetadata, taken_at: datetime
    ) -> PhotoRecord | None:
        """Store metadata for a new photo; return ``None`` if already known."""
        if self.repository.get(file_path) is not None:
            return None
        record = PhotoRecord(
            file_path=file_path,
            filename=file_path.name,
            taken_at=taken_at,
            metadata=metadata,
        )
        self.repository.save(record)
        world = metadata.world.name if metadata.world else "unknown world"
        _logger.info(
            "Metadata saved for %s (%s, %s players)",
            record.filename,
            world,
            len(metadata.players),
        )
        return record

    def mark_uploaded(self, file_path: Path, gallery_url: str) -> None:
        """Attach the gallery URL to an existing record."""
        record = self.repository.get(file_path)
        if record is None:
            _logger.warning("Uploaded photo missing from library: %s", file_path)
            return
        self.repository.save(replace(record, gallery_url=gallery_url))

    def recent(self, limit: int = 50) -> list[PhotoRecord]:
        return self.repository.list_records(limit)

    async def flush(self) -> None:
        await self.repository.flush()
