"""Domain models for detected photos and their metadata."""

import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from gallevr_sync.domain.session import Player, SessionSnapshot, WorldInfo


class SignalSource(str, Enum):
    """Where a screenshot signal came from."""

    DIRECTORY = "directory"
    LOG = "log"
    MANUAL = "manual"


@dataclass(frozen=True)
class ScreenshotEvent:
    """A new photo noticed by the directory watcher or the log correlator.

    Log-sourced events carry the session snapshot taken when the screenshot
    line was parsed.
    """

    file_path: Path
    detected_at: datetime
    source: SignalSource = SignalSource.DIRECTORY
    session: SessionSnapshot | None = None


@dataclass(frozen=True)
class PhotoMetadata:
    """World and players attached to a photo at match time."""

    world: WorldInfo | None = None
    players: tuple[Player, ...] = ()

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot) -> "PhotoMetadata":
        return cls(world=snapshot.world, players=snapshot.players)


@dataclass(frozen=True)
class PhotoRecord:
    """Entry in the local photo library."""

    file_path: Path
    filename: str
    taken_at: datetime
    metadata: PhotoMetadata
    gallery_url: str | None = None

    def to_payload(self) -> dict[str, object]:
        """Build the metadata document sent alongside the image."""
        return {
            "takenDate": int(self.taken_at.timestamp() * 1000),
            "filename": self.filename,
            "views": 0,
            "world": (
                self.metadata.world.to_payload() if self.metadata.world else None
            ),
            "players": [player.to_payload() for player in self.metadata.players],
        }


@dataclass(frozen=True)
class EncodedImage:
    """Compressed image bytes produced by an encoder strategy."""

    data: bytes
    format: str
    width: int
    height: int
    quality: int
    strategy: str

    @property
    def size_kb(self) -> float:
        return len(self.data) / 1024


def path_key(file_path: Path) -> str:
    """Normalize a path so log-reported and watcher-reported paths compare."""
    return os.path.normcase(os.path.abspath(str(file_path)))
