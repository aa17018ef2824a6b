"""JSON-file photo library repository."""

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from gallevr_sync.domain.photos import PhotoMetadata, PhotoRecord, path_key
from gallevr_sync.domain.session import Player, WorldInfo
from gallevr_sync.services.library import PhotoLibraryRepository

_logger = logging.getLogger(__name__)


@dataclass
class JsonPhotoLibraryRepository(PhotoLibraryRepository):
    """Stores photo records in a single JSON document."""

    path: Path
    _records: dict[str, PhotoRecord] | None = field(default=None, init=False)
    _dirty: bool = field(default=False, init=False)
    _writer: "asyncio.Task[None] | None" = field(default=None, init=False)

    def get(self, file_path: Path) -> PhotoRecord | None:
        """Return a record by photo path."""
        return self._load().get(path_key(file_path))

    def save(self, record: PhotoRecord) -> None:
        """Insert or replace a record and persist the document.

        Inside a running event loop the write happens on a worker thread;
        concurrent saves are coalesced into one write.
        """
        records = self._load()
        records[path_key(record.file_path)] = record
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write(_document(records))
            return
        self._dirty = True
        if self._writer is None or self._writer.done():
            self._writer = loop.create_task(self._write_pending())

    async def flush(self) -> None:
        """Wait until scheduled writes reached the disk."""
        if self._writer is not None:
            await self._writer

    def list_records(self, limit: int) -> list[PhotoRecord]:
        """Return the newest records first."""
        records = sorted(
            self._load().values(), key=lambda item: item.taken_at, reverse=True
        )
        return records[:limit]

    def _load(self) -> dict[str, PhotoRecord]:
        if self._records is not None:
            return self._records
        records: dict[str, PhotoRecord] = {}
        if self.path.exists():
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                _logger.exception("Failed to read photo library %s", self.path)
                raw = {}
            for item in raw.get("photos", []):
                try:
                    record = _record_from_json(item)
                except (KeyError, TypeError, ValueError):
                    _logger.warning("Skipping malformed library entry: %s", item)
                    continue
                records[path_key(record.file_path)] = record
        self._records = records
        return records

    async def _write_pending(self) -> None:
        while self._dirty:
            self._dirty = False
            document = _document(self._load())
            try:
                await asyncio.to_thread(self._write, document)
            except OSError:
                _logger.exception("Failed to write photo library %s", self.path)

    def _write(self, document: dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        temp_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        os.replace(temp_path, self.path)


def _document(records: dict[str, PhotoRecord]) -> dict[str, object]:
    return {"photos": [_record_to_json(record) for record in records.values()]}


def _record_to_json(record: PhotoRecord) -> dict[str, object]:
    payload = record.to_payload()
    payload["localPath"] = str(record.file_path)
    if record.gallery_url is not None:
        payload["galleryUrl"] = record.gallery_url
    return payload


def _record_from_json(item: dict[str, object]) -> PhotoRecord:
    world_payload = item.get("world")
    world = (
        WorldInfo.from_payload(world_payload)
        if isinstance(world_payload, dict)
        else None
    )
    players = tuple(
        Player(id=str(player["id"]), name=str(player["name"]))
        for player in item.get("players", [])
    )
    taken_ms = int(item["takenDate"])
    gallery_url = item.get("galleryUrl")
    return PhotoRecord(
        file_path=Path(str(item["localPath"])),
        filename=str(item["filename"]),
        taken_at=datetime.fromtimestamp(taken_ms / 1000, tz=UTC),
        metadata=PhotoMetadata(world=world, players=players),
        gallery_url=str(gallery_url) if gallery_url is not None else None,
    )
