"""Joins screenshot signals with the session context."""

import asyncio
import logging
import re
import stat
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from gallevr_sync.domain.events import PhotoDetected
from gallevr_sync.domain.photos import (
    PhotoMetadata,
    PhotoRecord,
    ScreenshotEvent,
    SignalSource,
    path_key,
)
from gallevr_sync.domain.session import SessionSnapshot
from gallevr_sync.domain.uploads import UploadTask
from gallevr_sync.services.events import EventBus
from gallevr_sync.services.library import PhotoLibraryService

_logger = logging.getLogger(__name__)


class SessionSource(Protocol):
    """Anything that can report the current session."""

    def snapshot(self) -> SessionSnapshot:
        """Return a copy of the current session state."""


class UploadSink(Protocol):
    def enqueue(self, task: UploadTask) -> bool:
        """Queue a task without blocking."""


@dataclass
class MetadataMatcher:  # noqa: PLR0913
    """Single consumer of screenshot signals from every source.

    The first signal for a path wins; later ones for the same path are
    dropped. Metadata is captured at match time, never at upload time.
    """

    session_source: SessionSource
    library: PhotoLibraryService
    events: EventBus
    upload_sink: UploadSink | None = None
    upload_enabled: bool = True
    screenshot_pattern: str | None = None
    _processed: set[str] = field(default_factory=set, init=False)
    _pattern: re.Pattern[str] | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.screenshot_pattern:
            self._pattern = re.compile(self.screenshot_pattern)

    def is_processed(self, file_path: Path) -> bool:
        if path_key(file_path) in self._processed:
            return True
        return self.library.contains(file_path)

    def match(self, event: ScreenshotEvent) -> PhotoRecord | None:
        """Record metadata for a new photo; return ``None`` for duplicates."""
        path = event.file_path
        if self.is_processed(path):
            _logger.debug("Duplicate %s signal ignored: %s", event.source.value, path)
            return None
        if event.source is SignalSource.LOG and not self._matches_pattern(path):
            _logger.debug("Log screenshot does not match pattern: %s", path)
            return None
        if event.source is not SignalSource.DIRECTORY and not _has_content(path):
            _logger.info("Screenshot not on disk yet: %s", path)
            return None

        self._processed.add(path_key(path))
        snapshot = event.session or self.session_source.snapshot()
        metadata = PhotoMetadata.from_snapshot(snapshot)
        record = self.library.record_photo(path, metadata, _taken_at(event))
        if record is None:
            return None
        self.events.publish(PhotoDetected(file_path=path, metadata=metadata))
        self._request_upload(record, force=event.source is SignalSource.MANUAL)
        return record

    def request_upload(self, file_path: Path) -> PhotoRecord | None:
        """Queue an upload for a photo on demand.

        Known photos keep the metadata captured when they were first seen.
        """
        record = self.library.get(file_path)
        if record is None:
            return self.match(
                ScreenshotEvent(
                    file_path=file_path,
                    detected_at=datetime.now(tz=UTC),
                    source=SignalSource.MANUAL,
                )
            )
        if record.gallery_url is None:
            self._request_upload(record, force=True)
        return record

    async def run(self, signals: "asyncio.Queue[ScreenshotEvent]") -> None:
        _logger.info("Metadata matcher started")
        while True:
            event = await signals.get()
            try:
                self.match(event)
            except Exception:
                _logger.exception("Failed to match %s", event.file_path)

    def _matches_pattern(self, path: Path) -> bool:
        return self._pattern is None or self._pattern.match(path.name) is not None

    def _request_upload(self, record: PhotoRecord, force: bool = False) -> None:
        if self.upload_sink is None or not (self.upload_enabled or force):
            return
        self.upload_sink.enqueue(
            UploadTask(
                file_path=record.file_path,
                metadata=record.metadata,
                taken_at=record.taken_at,
            )
        )


def _has_content(path: Path) -> bool:
    try:
        info = path.stat()
    except OSError:
        return False
    return stat.S_ISREG(info.st_mode) and info.st_size > 0


def _taken_at(event: ScreenshotEvent) -> datetime:
    try:
        modified = event.file_path.stat().st_mtime
    except OSError:
        return event.detected_at
    return datetime.fromtimestamp(modified, tz=UTC)
