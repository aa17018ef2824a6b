"""File-system change notifications."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ChangeKind(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class DirectoryChange:
    """A single change observed in a watched directory."""

    path: Path
    kind: ChangeKind
