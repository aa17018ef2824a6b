"""Tests for the upload queue worker."""

import asyncio
from datetime import UTC, datetime
from pathlib import Path

from gallevr_sync.config import DEFAULT_SCREENSHOT_PATTERN
from gallevr_sync.domain.events import PipelineNotice, UploadFailed, UploadSucceeded
from gallevr_sync.domain.photos import PhotoMetadata, ScreenshotEvent, SignalSource
from gallevr_sync.domain.session import Player, WorldInfo
from gallevr_sync.domain.uploads import UploadStatus, UploadTask
from gallevr_sync.services.matcher import MetadataMatcher
from tests.conftest import (
    OTHER_SCREENSHOT_NAME,
    BlockingGalleryClient,
    FakeAuthStore,
    FakeGalleryClient,
    FakeSessionSource,
    UploadHarness,
    build_upload_harness,
    write_screenshot,
)

_METADATA = PhotoMetadata(
    world=WorldInfo(id="wrld_abc", name="Sunset Beach", instance_id="12345"),
    players=(Player(id="usr_alice", name="Alice"),),
)


def _task(path: Path) -> UploadTask:
    return UploadTask(
        file_path=path, metadata=_METADATA, taken_at=datetime(2024, 1, 15, tzinfo=UTC)
    )


def _signal(path: Path, source: SignalSource) -> ScreenshotEvent:
    return ScreenshotEvent(
        file_path=path, detected_at=datetime.now(tz=UTC), source=source
    )


def _drain(harness: UploadHarness, *tasks: UploadTask) -> None:
    async def scenario() -> None:
        for task in tasks:
            harness.queue.enqueue(task)
        harness.queue.start()
        await asyncio.wait_for(harness.queue.wait_idle(), timeout=10)
        await harness.queue.stop()

    asyncio.run(scenario())


def _events_of(harness: UploadHarness, kind: type) -> list[object]:
    return [event for event in harness.events.recent() if isinstance(event, kind)]


def test_two_failures_then_success(tmp_path: Path) -> None:
    harness = build_upload_harness(FakeGalleryClient(failures_before_success=2))
    path = write_screenshot(tmp_path)
    harness.library.record_photo(path, _METADATA, datetime.now(tz=UTC))
    task = _task(path)

    _drain(harness, task)

    assert task.status is UploadStatus.SUCCEEDED
    assert task.attempt_count == 3
    assert task.gallery_url == "https://gallery.test/photos/3"
    record = harness.library.get(path)
    assert record is not None
    assert record.gallery_url == "https://gallery.test/photos/3"
    succeeded = _events_of(harness, UploadSucceeded)
    assert len(succeeded) == 1
    assert _events_of(harness, UploadFailed) == []


def test_exhausted_retries_fail_with_one_notification(tmp_path: Path) -> None:
    harness = build_upload_harness(
        FakeGalleryClient(failures_before_success=10), max_retries=3
    )
    task = _task(write_screenshot(tmp_path))

    _drain(harness, task)

    assert task.status is UploadStatus.FAILED
    assert task.attempt_count == 4
    failed = _events_of(harness, UploadFailed)
    assert len(failed) == 1
    assert failed[0].attempt_count == 4
    assert len(harness.gallery.submissions) == 4


def test_uploads_run_in_fifo_order(tmp_path: Path) -> None:
    harness = build_upload_harness()
    names = [
        "VRChat_2024-01-15_20-30-45.123_1920x1080.png",
        "VRChat_2024-01-15_20-31-45.123_1920x1080.png",
        "VRChat_2024-01-15_20-32-45.123_1920x1080.png",
    ]
    tasks = [_task(write_screenshot(tmp_path, name=name)) for name in names]

    _drain(harness, *tasks)

    submitted = [metadata["filename"] for _, metadata, _ in harness.gallery.submissions]
    assert submitted == names
    assert all(task.status is UploadStatus.SUCCEEDED for task in tasks)


def test_submission_carries_metadata_and_auth(tmp_path: Path) -> None:
    harness = build_upload_harness()
    task = _task(write_screenshot(tmp_path))

    _drain(harness, task)

    image, metadata, auth = harness.gallery.submissions[0]
    assert image.strategy == "fallback"
    assert (image.width, image.height) == (320, 180)
    assert metadata["filename"] == task.file_path.name
    assert metadata["views"] == 0
    assert metadata["world"]["id"] == "wrld_abc"
    assert metadata["players"] == [{"id": "usr_alice", "name": "Alice"}]
    assert auth.user_id == "usr_test"


def test_vanished_photo_is_skipped_silently(tmp_path: Path) -> None:
    harness = build_upload_harness()
    task = _task(tmp_path / "VRChat_2024-01-15_20-30-45.123_1920x1080.png")

    _drain(harness, task)

    assert task.status is UploadStatus.FAILED
    assert task.attempt_count == 1
    assert harness.gallery.submissions == []
    assert _events_of(harness, UploadFailed) == []


def test_rejected_shape_posts_notice(tmp_path: Path) -> None:
    harness = build_upload_harness()
    task = _task(write_screenshot(tmp_path, size=(300, 300)))

    _drain(harness, task)

    assert task.status is UploadStatus.FAILED
    assert len(_events_of(harness, PipelineNotice)) == 1
    assert _events_of(harness, UploadFailed) == []


def test_missing_auth_fails_without_retry(tmp_path: Path) -> None:
    harness = build_upload_harness(auth_store=FakeAuthStore(auth=None))
    task = _task(write_screenshot(tmp_path))

    _drain(harness, task)

    assert task.status is UploadStatus.FAILED
    assert task.attempt_count == 1
    assert harness.gallery.submissions == []
    assert len(_events_of(harness, UploadFailed)) == 1


def test_unverified_account_checked_once(tmp_path: Path) -> None:
    harness = build_upload_harness(FakeGalleryClient(verified=False))
    first = _task(write_screenshot(tmp_path))
    second = _task(
        write_screenshot(tmp_path, name="VRChat_2024-01-15_20-40-00.000_1920x1080.png")
    )

    _drain(harness, first, second)

    assert first.status is UploadStatus.FAILED
    assert second.status is UploadStatus.FAILED
    assert harness.gallery.verification_checks == 1
    assert len(_events_of(harness, UploadFailed)) == 2


def test_duplicate_enqueue_is_ignored(tmp_path: Path) -> None:
    harness = build_upload_harness()
    path = write_screenshot(tmp_path)

    async def scenario() -> tuple[bool, bool]:
        first = harness.queue.enqueue(_task(path))
        second = harness.queue.enqueue(_task(path))
        harness.queue.start()
        await asyncio.wait_for(harness.queue.wait_idle(), timeout=10)
        await harness.queue.stop()
        return first, second

    assert asyncio.run(scenario()) == (True, False)
    assert len(harness.gallery.submissions) == 1
    assert [task.status for task in harness.queue.tasks()] == [UploadStatus.SUCCEEDED]


def test_partially_written_photo_uploads_once_complete(tmp_path: Path) -> None:
    harness = build_upload_harness()
    harness.queue.retry_base_delay_seconds = 0.2
    matcher = MetadataMatcher(
        session_source=FakeSessionSource(),
        library=harness.library,
        events=harness.events,
        upload_sink=harness.queue,
        screenshot_pattern=DEFAULT_SCREENSHOT_PATTERN,
    )
    complete = write_screenshot(tmp_path / "staging")
    path = tmp_path / complete.name
    path.write_bytes(complete.read_bytes()[:40])

    async def first_failure() -> None:
        while not harness.queue.tasks() or harness.queue.tasks()[0].last_error is None:
            await asyncio.sleep(0.01)

    async def scenario() -> bool:
        matcher.match(_signal(path, SignalSource.LOG))
        harness.queue.start()
        await asyncio.wait_for(first_failure(), timeout=10)
        path.write_bytes(complete.read_bytes())
        accepted = matcher.match(_signal(path, SignalSource.DIRECTORY)) is not None
        await asyncio.wait_for(harness.queue.wait_idle(), timeout=10)
        await harness.queue.stop()
        return accepted

    assert asyncio.run(scenario()) is False
    [task] = harness.queue.tasks()
    assert task.status is UploadStatus.SUCCEEDED
    assert task.attempt_count == 2
    assert len(harness.gallery.submissions) == 1
    record = harness.library.get(path)
    assert record is not None
    assert record.gallery_url == "https://gallery.test/photos/1"


def test_stop_lets_in_flight_upload_finish(tmp_path: Path) -> None:
    gallery = BlockingGalleryClient()
    harness = build_upload_harness(gallery)
    task = _task(write_screenshot(tmp_path))

    async def scenario() -> bool:
        harness.queue.enqueue(task)
        harness.queue.start()
        await asyncio.wait_for(gallery.started.wait(), timeout=10)
        stopping = asyncio.create_task(harness.queue.stop())
        await asyncio.sleep(0.05)
        waited = not stopping.done()
        gallery.release.set()
        await asyncio.wait_for(stopping, timeout=10)
        return waited

    assert asyncio.run(scenario()) is True
    assert task.status is UploadStatus.SUCCEEDED
    assert harness.queue.running is False
    assert len(_events_of(harness, UploadSucceeded)) == 1


def test_enqueue_does_not_wait_for_in_flight_upload(tmp_path: Path) -> None:
    gallery = BlockingGalleryClient()
    harness = build_upload_harness(gallery)
    first = _task(write_screenshot(tmp_path))
    second = _task(write_screenshot(tmp_path, name=OTHER_SCREENSHOT_NAME))

    async def scenario() -> tuple[bool, list[UploadStatus]]:
        harness.queue.enqueue(first)
        harness.queue.start()
        await asyncio.wait_for(gallery.started.wait(), timeout=10)
        accepted = harness.queue.enqueue(second)
        statuses = [task.status for task in harness.queue.tasks()]
        gallery.release.set()
        await asyncio.wait_for(harness.queue.wait_idle(), timeout=10)
        await harness.queue.stop()
        return accepted, statuses

    accepted, statuses = asyncio.run(scenario())

    assert accepted is True
    assert statuses == [UploadStatus.UPLOADING, UploadStatus.PENDING]
    assert first.status is UploadStatus.SUCCEEDED
    assert second.status is UploadStatus.SUCCEEDED


def test_rejected_key_fails_and_rechecks_verification(tmp_path: Path) -> None:
    harness = build_upload_harness(FakeGalleryClient(rejects_key=True))
    first = _task(write_screenshot(tmp_path))
    second = _task(write_screenshot(tmp_path, name=OTHER_SCREENSHOT_NAME))

    _drain(harness, first, second)

    assert first.status is UploadStatus.FAILED
    assert first.attempt_count == 1
    assert second.status is UploadStatus.FAILED
    assert harness.gallery.verification_checks == 2
    assert len(_events_of(harness, UploadFailed)) == 2
