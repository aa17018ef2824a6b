"""Directory change sources: OS notifications and a polling fallback."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from gallevr_sync.domain.watch import ChangeKind, DirectoryChange

_logger = logging.getLogger(__name__)

FileSnapshot = dict[Path, tuple[int, int]]


class DirectoryChangeSource(Protocol):
    """Interface for producing change notifications for a directory."""

    def watch(self, directory: Path) -> AsyncIterator[DirectoryChange]:
        """Yield changes under ``directory`` until cancelled."""


@dataclass
class PollingDirectoryWatcher(DirectoryChangeSource):
    """Synthesizes changes by diffing periodic directory snapshots."""

    interval_seconds: float = 2.0

    async def watch(self, directory: Path) -> AsyncIterator[DirectoryChange]:
        """Yield changes found between consecutive scans."""
        known = snapshot_directory(directory)
        if known is None:
            _logger.info("Waiting for directory to appear: %s", directory)
        while True:
            await asyncio.sleep(self.interval_seconds)
            current = snapshot_directory(directory)
            if current is None:
                continue
            for change in diff_snapshots(known or {}, current):
                yield change
            known = current


class _QueueingHandler(FileSystemEventHandler):
    """Forwards watchdog callbacks from the observer thread into asyncio."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        queue: "asyncio.Queue[DirectoryChange]",
    ) -> None:
        self._loop = loop
        self._queue = queue

    def on_created(self, event: FileSystemEvent) -> None:
        self._push(event.src_path, ChangeKind.CREATED, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._push(event.src_path, ChangeKind.MODIFIED, event.is_directory)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._push(event.src_path, ChangeKind.DELETED, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._push(event.src_path, ChangeKind.DELETED, event.is_directory)
        self._push(event.dest_path, ChangeKind.CREATED, event.is_directory)

    def _push(
        self, raw_path: str | bytes, kind: ChangeKind, is_directory: bool
    ) -> None:
        if is_directory:
            return
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        self._loop.call_soon_threadsafe(
            self._queue.put_nowait, DirectoryChange(path=path.absolute(), kind=kind)
        )


@dataclass
class WatchdogDirectoryWatcher(DirectoryChangeSource):
    """Native file-system notifications via watchdog."""

    retry_interval_seconds: float = 2.0
    observer_factory: Callable[[], BaseObserver] = field(default=Observer)

    async def watch(self, directory: Path) -> AsyncIterator[DirectoryChange]:
        """Yield changes reported by the OS for ``directory``."""
        while not directory.is_dir():
            _logger.info("Waiting for directory to appear: %s", directory)
            await asyncio.sleep(self.retry_interval_seconds)

        queue: asyncio.Queue[DirectoryChange] = asyncio.Queue()
        handler = _QueueingHandler(asyncio.get_running_loop(), queue)
        observer = self.observer_factory()
        observer.schedule(handler, str(directory), recursive=True)
        observer.start()
        _logger.info("Watching %s with native notifications", directory)
        try:
            while True:
                yield await queue.get()
        finally:
            observer.stop()
            await asyncio.to_thread(observer.join, 5)
            _logger.info("Stopped watching %s", directory)


def snapshot_directory(directory: Path) -> FileSnapshot | None:
    """Map every file under ``directory`` to its (mtime_ns, size).

    Returns ``None`` when the directory does not exist.
    """
    if not directory.is_dir():
        return None
    snapshot: FileSnapshot = {}
    try:
        for entry in directory.rglob("*"):
            try:
                stat = entry.stat()
            except OSError:
                continue
            if entry.is_file():
                snapshot[entry.absolute()] = (stat.st_mtime_ns, stat.st_size)
    except OSError:
        _logger.warning("Failed to scan directory: %s", directory)
        return None
    return snapshot


def diff_snapshots(
    previous: FileSnapshot, current: FileSnapshot
) -> list[DirectoryChange]:
    """Return create/modify/delete changes between two snapshots."""
    changes: list[DirectoryChange] = []
    for path, signature in current.items():
        before = previous.get(path)
        if before is None:
            changes.append(DirectoryChange(path=path, kind=ChangeKind.CREATED))
        elif before != signature:
            changes.append(DirectoryChange(path=path, kind=ChangeKind.MODIFIED))
    for path in previous:
        if path not in current:
            changes.append(DirectoryChange(path=path, kind=ChangeKind.DELETED))
    return changes
