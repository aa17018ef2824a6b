"""Serialized upload of matched photos to the gallery."""

import asyncio
import contextlib
import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path

from gallevr_sync.adapters.gallery_client import GalleryClient
from gallevr_sync.domain.events import PipelineNotice, UploadFailed, UploadSucceeded
from gallevr_sync.domain.photos import PhotoRecord
from gallevr_sync.domain.uploads import UploadStatus, UploadTask
from gallevr_sync.errors import (
    AuthenticationError,
    PhotoRejectedError,
    PhotoUnavailableError,
)
from gallevr_sync.services.auth import AuthService
from gallevr_sync.services.encoding import EncoderService
from gallevr_sync.services.events import EventBus
from gallevr_sync.services.library import PhotoLibraryService

_logger = logging.getLogger(__name__)


@dataclass
class UploadQueue:  # noqa: PLR0902
    """FIFO of upload tasks drained by a single worker.

    A failed attempt is retried after an exponential backoff while
    ``max_retries`` allows; ``max_retries=3`` means at most four attempts.
    """

    encoder: EncoderService
    gallery_client: GalleryClient
    auth_service: AuthService
    library: PhotoLibraryService
    events: EventBus
    max_retries: int = 3
    retry_base_delay_seconds: float = 2.0
    history_limit: int = 100
    _queue: "asyncio.Queue[UploadTask]" = field(
        default_factory=asyncio.Queue, init=False
    )
    _active: dict[Path, UploadTask] = field(default_factory=dict, init=False)
    _history: deque[UploadTask] = field(init=False)
    _in_flight: UploadTask | None = field(default=None, init=False)
    _processing: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _idle: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    _worker: "asyncio.Task[None] | None" = field(default=None, init=False)
    _retry_timers: set["asyncio.Task[None]"] = field(default_factory=set, init=False)

    def __post_init__(self) -> None:
        self._history = deque(maxlen=self.history_limit)
        self._idle.set()

    def enqueue(self, task: UploadTask) -> bool:
        """Add a task without blocking; ignore paths already in progress."""
        if task.file_path in self._active:
            _logger.debug("Upload already queued for %s", task.file_path)
            return False
        self._active[task.file_path] = task
        self._idle.clear()
        self._queue.put_nowait(task)
        _logger.info("Queued upload for %s", task.file_path.name)
        return True

    def tasks(self) -> list[UploadTask]:
        """Return unfinished tasks followed by finished ones, newest last."""
        return [*self._active.values(), *self._history]

    @property
    def pending_count(self) -> int:
        return len(self._active)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Stop the worker once the in-flight upload, if any, has finished."""
        for timer in list(self._retry_timers):
            timer.cancel()
        worker = self._worker
        self._worker = None
        if worker is None:
            return
        async with self._processing:
            worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker
        _logger.info("Upload worker stopped with %s unfinished", self.pending_count)

    async def wait_idle(self) -> None:
        """Wait until every enqueued task reached a terminal status."""
        await self._idle.wait()

    async def run(self) -> None:
        _logger.info("Upload worker started")
        while True:
            task = await self._queue.get()
            async with self._processing:
                self._in_flight = task
                try:
                    await self.process(task)
                except Exception as exc:
                    _logger.exception("Upload worker failed on %s", task.file_path)
                    self._finish(task, UploadStatus.FAILED, error=str(exc))
                finally:
                    self._in_flight = None
                    self._queue.task_done()

    async def process(self, task: UploadTask) -> None:
        """Run one attempt for ``task``."""
        task.attempt_count += 1
        task.status = UploadStatus.ENCODING
        _logger.info(
            "Processing %s (attempt %s)", task.file_path.name, task.attempt_count
        )
        try:
            encoded = await asyncio.to_thread(self.encoder.encode_file, task.file_path)
        except PhotoUnavailableError as exc:
            _logger.warning("Skipping upload: %s", exc)
            self._finish(task, UploadStatus.FAILED, error=str(exc))
            return
        except PhotoRejectedError as exc:
            self.events.publish(
                PipelineNotice(
                    level="warning", message=str(exc), file_path=task.file_path
                )
            )
            self._finish(task, UploadStatus.FAILED, error=str(exc))
            return
        except Exception as exc:
            _logger.exception("Encoding failed for %s", task.file_path)
            self._handle_failure(task, exc)
            return

        task.status = UploadStatus.UPLOADING
        try:
            auth = await self.auth_service.require_verified()
        except AuthenticationError as exc:
            _logger.warning("Upload of %s not possible: %s", task.file_path.name, exc)
            self._fail_permanently(task, str(exc))
            return
        except Exception as exc:
            _logger.warning("Verification check failed: %s", exc)
            self._handle_failure(task, exc)
            return

        record = PhotoRecord(
            file_path=task.file_path,
            filename=task.file_path.name,
            taken_at=task.taken_at,
            metadata=task.metadata,
        )
        try:
            gallery_url = await self.gallery_client.submit_photo(
                encoded, record.to_payload(), auth
            )
        except AuthenticationError as exc:
            _logger.warning("Upload of %s rejected: %s", task.file_path.name, exc)
            self.auth_service.forget(auth)
            self._fail_permanently(task, str(exc))
            return
        except Exception as exc:
            _logger.warning("Upload of %s failed: %s", task.file_path.name, exc)
            self._handle_failure(task, exc)
            return

        task.gallery_url = gallery_url
        self._finish(task, UploadStatus.SUCCEEDED)
        self.library.mark_uploaded(task.file_path, gallery_url)
        self.events.publish(
            UploadSucceeded(
                file_path=task.file_path,
                gallery_url=gallery_url,
                attempt_count=task.attempt_count,
            )
        )

    def _handle_failure(self, task: UploadTask, exc: Exception) -> None:
        task.last_error = str(exc) or type(exc).__name__
        if task.attempt_count > self.max_retries:
            self._fail_permanently(task, task.last_error)
            return
        delay = self.retry_base_delay_seconds * 2 ** (task.attempt_count - 1)
        task.status = UploadStatus.PENDING
        _logger.info("Retrying %s in %.1f seconds", task.file_path.name, delay)
        timer = asyncio.create_task(self._requeue_later(task, delay))
        self._retry_timers.add(timer)
        timer.add_done_callback(self._retry_timers.discard)

    async def _requeue_later(self, task: UploadTask, delay: float) -> None:
        await asyncio.sleep(delay)
        self._queue.put_nowait(task)

    def _fail_permanently(self, task: UploadTask, reason: str) -> None:
        self._finish(task, UploadStatus.FAILED, error=reason)
        self.events.publish(
            UploadFailed(
                file_path=task.file_path,
                reason=reason,
                attempt_count=task.attempt_count,
            )
        )

    def _finish(
        self, task: UploadTask, status: UploadStatus, error: str | None = None
    ) -> None:
        task.status = status
        if error is not None:
            task.last_error = error
        self._active.pop(task.file_path, None)
        self._history.append(task)
        if not self._active:
            self._idle.set()
        if status is UploadStatus.SUCCEEDED:
            _logger.info("Upload succeeded for %s", task.file_path.name)
        else:
            _logger.info("Upload failed for %s: %s", task.file_path.name, error)
