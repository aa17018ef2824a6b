"""Events published by the pipeline."""

from dataclasses import dataclass
from pathlib import Path

from gallevr_sync.domain.photos import PhotoMetadata


@dataclass(frozen=True)
class PhotoDetected:
    """A photo was matched and recorded in the library."""

    file_path: Path
    metadata: PhotoMetadata


@dataclass(frozen=True)
class UploadSucceeded:
    """A photo reached the gallery."""

    file_path: Path
    gallery_url: str
    attempt_count: int


@dataclass(frozen=True)
class UploadFailed:
    """A photo permanently failed to upload."""

    file_path: Path
    reason: str
    attempt_count: int


@dataclass(frozen=True)
class PipelineNotice:
    """Informational or warning message for the user."""

    level: str
    message: str
    file_path: Path | None = None


PipelineEvent = PhotoDetected | UploadSucceeded | UploadFailed | PipelineNotice
