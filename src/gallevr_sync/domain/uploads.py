"""Domain models for the upload queue."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from gallevr_sync.domain.photos import PhotoMetadata


class UploadStatus(str, Enum):
    """Lifecycle of an upload task."""

    PENDING = "pending"
    ENCODING = "encoding"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class UploadTask:
    """One photo's journey from capture to the gallery."""

    file_path: Path
    metadata: PhotoMetadata
    taken_at: datetime
    attempt_count: int = 0
    status: UploadStatus = UploadStatus.PENDING
    gallery_url: str | None = None
    last_error: str | None = None

    def to_summary(self) -> dict[str, object]:
        """Return a JSON-friendly view for the monitor API."""
        return {
            "file_path": str(self.file_path),
            "status": self.status.value,
            "attempt_count": self.attempt_count,
            "gallery_url": self.gallery_url,
            "last_error": self.last_error,
            "world": self.metadata.world.name if self.metadata.world else None,
            "players": len(self.metadata.players),
        }
