"""Turns raw directory changes into stable screenshot events."""

import asyncio
import contextlib
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from gallevr_sync.adapters.directory_watchers import DirectoryChangeSource
from gallevr_sync.domain.photos import ScreenshotEvent, SignalSource
from gallevr_sync.domain.watch import ChangeKind, DirectoryChange

_logger = logging.getLogger(__name__)


@dataclass
class DirectoryWatcherService:
    """Releases a screenshot once its file stops growing.

    A candidate is released when its size is non-zero and unchanged across
    two consecutive stability checks. Each path is released at most once.
    """

    directory: Path
    source: DirectoryChangeSource
    screenshot_pattern: str
    stability_interval_seconds: float = 1.0
    released_limit: int = 1024
    _pattern: re.Pattern[str] = field(init=False)
    _pending: dict[Path, int | None] = field(default_factory=dict, init=False)
    _released: OrderedDict[Path, None] = field(default_factory=OrderedDict, init=False)

    def __post_init__(self) -> None:
        self._pattern = re.compile(self.screenshot_pattern)

    @property
    def pending_paths(self) -> list[Path]:
        return list(self._pending)

    def is_screenshot(self, path: Path) -> bool:
        return self._pattern.match(path.name) is not None

    def observe(self, change: DirectoryChange) -> None:
        """Track a change reported by the change source."""
        if not self.is_screenshot(change.path):
            return
        if change.kind is ChangeKind.DELETED:
            if change.path in self._pending:
                del self._pending[change.path]
                _logger.info("Screenshot removed before it settled: %s", change.path)
            return
        if change.path in self._released:
            return
        self._pending.setdefault(change.path, None)

    def check_pending(self) -> list[ScreenshotEvent]:
        """Release candidates whose size held steady since the last check."""
        ready: list[ScreenshotEvent] = []
        for path, last_size in list(self._pending.items()):
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                _logger.info("Screenshot vanished before it settled: %s", path)
                del self._pending[path]
                continue
            except OSError:
                _logger.warning("Cannot stat screenshot, will retry: %s", path)
                continue
            if size > 0 and size == last_size:
                del self._pending[path]
                self._mark_released(path)
                _logger.info("New screenshot detected in directory: %s", path)
                ready.append(
                    ScreenshotEvent(
                        file_path=path,
                        detected_at=datetime.now(tz=UTC),
                        source=SignalSource.DIRECTORY,
                    )
                )
            else:
                self._pending[path] = size
        return ready

    async def run(self, sink: "asyncio.Queue[ScreenshotEvent]") -> None:
        """Watch the directory and forward settled screenshots to ``sink``."""
        _logger.info("Directory watcher started for %s", self.directory)
        consumer = asyncio.create_task(self._consume_changes())
        try:
            while True:
                await asyncio.sleep(self.stability_interval_seconds)
                try:
                    for event in self.check_pending():
                        sink.put_nowait(event)
                except Exception:
                    _logger.exception("Stability check failed")
                if consumer.done() and not consumer.cancelled():
                    _logger.warning("Change source stopped, restarting")
                    consumer = asyncio.create_task(self._consume_changes())
        finally:
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
            _logger.info("Directory watcher stopped")

    async def _consume_changes(self) -> None:
        try:
            async for change in self.source.watch(self.directory):
                self.observe(change)
        except asyncio.CancelledError:
            raise
        except Exception:
            _logger.exception("Change source for %s failed", self.directory)

    def _mark_released(self, path: Path) -> None:
        self._released[path] = None
        while len(self._released) > self.released_limit:
            self._released.popitem(last=False)
