"""Starts and stops every long-lived stage of the photo pipeline."""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

from gallevr_sync.domain.photos import ScreenshotEvent
from gallevr_sync.services.directory_watcher import DirectoryWatcherService
from gallevr_sync.services.log_correlator import LogCorrelator
from gallevr_sync.services.matcher import MetadataMatcher
from gallevr_sync.services.notifications import NotificationService
from gallevr_sync.services.uploads import UploadQueue

_logger = logging.getLogger(__name__)


@dataclass
class PhotoPipeline:
    """Wires producers, the matcher and the upload worker together.

    The correlator and the directory watcher feed one signal queue that the
    matcher drains.
    """

    correlator: LogCorrelator
    directory_watcher: DirectoryWatcherService
    matcher: MetadataMatcher
    upload_queue: UploadQueue
    notifications: NotificationService
    signals: "asyncio.Queue[ScreenshotEvent]" = field(
        default_factory=asyncio.Queue, init=False
    )
    _tasks: list["asyncio.Task[None]"] = field(default_factory=list, init=False)

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        if self.running:
            return
        _logger.info("Starting photo pipeline")
        self._spawn(self.notifications.run(), "notifications")
        self._spawn(self.matcher.run(self.signals), "matcher")
        self._spawn(self.correlator.run(self.signals), "log-correlator")
        self._spawn(self.directory_watcher.run(self.signals), "directory-watcher")
        self.upload_queue.start()
        # Let subscribers register before the first event can be published.
        await asyncio.sleep(0)

    async def stop(self) -> None:
        """Cancel producers and wait for the in-flight upload to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.upload_queue.stop()
        _logger.info("Photo pipeline stopped")

    def _spawn(self, coroutine: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coroutine, name=name)
        task.add_done_callback(_log_unexpected_exit)
        self._tasks.append(task)


def _log_unexpected_exit(task: "asyncio.Task[None]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _logger.error("Pipeline task %s crashed", task.get_name(), exc_info=exc)
