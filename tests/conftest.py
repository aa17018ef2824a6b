"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from PIL import Image

from gallevr_sync.adapters.directory_watchers import PollingDirectoryWatcher
from gallevr_sync.adapters.encoders import EncoderStrategy, PngEncoder
from gallevr_sync.adapters.gallery_client import GalleryClient
from gallevr_sync.adapters.platforms import DesktopPlatformService
from gallevr_sync.config import Settings
from gallevr_sync.containers import AppContainer
from gallevr_sync.domain.auth import AuthData
from gallevr_sync.domain.photos import EncodedImage, PhotoRecord, path_key
from gallevr_sync.domain.session import SessionSnapshot
from gallevr_sync.domain.uploads import UploadTask
from gallevr_sync.errors import (
    AuthenticationError,
    EncoderUnavailableError,
    UploadError,
)
from gallevr_sync.services.auth import AuthService, AuthStore
from gallevr_sync.services.cache import InMemoryCache
from gallevr_sync.services.directory_watcher import DirectoryWatcherService
from gallevr_sync.services.encoding import EncoderService
from gallevr_sync.services.events import EventBus
from gallevr_sync.services.library import PhotoLibraryRepository, PhotoLibraryService
from gallevr_sync.services.log_correlator import LogCorrelator
from gallevr_sync.services.matcher import MetadataMatcher
from gallevr_sync.services.notifications import NotificationService, SoundCuePlayer
from gallevr_sync.services.pipeline import PhotoPipeline
from gallevr_sync.services.uploads import UploadQueue

SCREENSHOT_NAME = "VRChat_2024-01-15_20-30-45.123_1920x1080.png"
OTHER_SCREENSHOT_NAME = "VRChat_2024-01-15_20-31-02.456_1920x1080.png"


def write_screenshot(
    directory: Path, name: str = SCREENSHOT_NAME, size: tuple[int, int] = (320, 180)
) -> Path:
    """Write a small PNG photo and return its path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    image = Image.new("RGB", size, color=(40, 120, 200))
    for x in range(0, size[0], 7):
        image.putpixel((x, x % size[1]), (255, 255, 0))
    image.save(path, format="PNG")
    return path


@dataclass
class InMemoryPhotoLibraryRepository(PhotoLibraryRepository):
    """In-memory photo library for tests."""

    records: dict[str, PhotoRecord] = field(default_factory=dict)

    def get(self, file_path: Path) -> PhotoRecord | None:
        return self.records.get(path_key(file_path))

    def save(self, record: PhotoRecord) -> None:
        self.records[path_key(record.file_path)] = record

    def list_records(self, limit: int) -> list[PhotoRecord]:
        records = sorted(
            self.records.values(), key=lambda item: item.taken_at, reverse=True
        )
        return records[:limit]

    async def flush(self) -> None:
        return None


@dataclass
class FakeGalleryClient(GalleryClient):
    """Gallery client that fails a configurable number of times."""

    failures_before_success: int = 0
    verified: bool = True
    submissions: list[tuple[EncodedImage, dict[str, object], AuthData]] = field(
        default_factory=list
    )
    verification_checks: int = 0
    rejects_key: bool = False
    closed: bool = False

    async def submit_photo(
        self, image: EncodedImage, metadata: dict[str, object], auth: AuthData
    ) -> str:
        self.submissions.append((image, metadata, auth))
        if self.rejects_key:
            raise AuthenticationError("access key revoked")
        if self.failures_before_success > 0:
            self.failures_before_success -= 1
            raise UploadError("gallery unavailable")
        return f"https://gallery.test/photos/{len(self.submissions)}"

    async def check_verification(self, auth: AuthData) -> bool:
        self.verification_checks += 1
        return self.verified

    async def close(self) -> None:
        self.closed = True


@dataclass
class BlockingGalleryClient(FakeGalleryClient):
    """Holds every submission until ``release`` is set."""

    started: asyncio.Event = field(default_factory=asyncio.Event)
    release: asyncio.Event = field(default_factory=asyncio.Event)

    async def submit_photo(
        self, image: EncodedImage, metadata: dict[str, object], auth: AuthData
    ) -> str:
        self.started.set()
        await self.release.wait()
        return await super().submit_photo(image, metadata, auth)


@dataclass
class FakeAuthStore(AuthStore):
    auth: AuthData | None = field(
        default_factory=lambda: AuthData(user_id="usr_test", access_key="key-123")
    )

    def load_auth(self) -> AuthData | None:
        return self.auth


@dataclass
class FakeSessionSource:
    """Reports a fixed session snapshot."""

    current: SessionSnapshot = field(default_factory=SessionSnapshot)
    calls: int = 0

    def snapshot(self) -> SessionSnapshot:
        self.calls += 1
        return self.current


@dataclass
class RecordingUploadSink:
    tasks: list[UploadTask] = field(default_factory=list)

    def enqueue(self, task: UploadTask) -> bool:
        self.tasks.append(task)
        return True


@dataclass
class UnavailableEncoder(EncoderStrategy):
    name = "native"
    format = "webp"
    adjustable_quality = True

    def encode(self, image: Image.Image, quality: int, method: int) -> bytes:
        raise EncoderUnavailableError("not built in")


@dataclass
class SizedEncoder(EncoderStrategy):
    """Returns ``quality * bytes_per_quality`` bytes and records each quality."""

    bytes_per_quality: int = 4096
    qualities: list[int] = field(default_factory=list)
    name = "native"
    format = "webp"
    adjustable_quality = True

    def encode(self, image: Image.Image, quality: int, method: int) -> bytes:
        self.qualities.append(quality)
        return b"x" * (quality * self.bytes_per_quality)


@dataclass
class UploadHarness:
    queue: UploadQueue
    gallery: FakeGalleryClient
    library: PhotoLibraryService
    events: EventBus


def build_upload_harness(
    gallery: FakeGalleryClient | None = None,
    auth_store: FakeAuthStore | None = None,
    max_retries: int = 3,
) -> UploadHarness:
    gallery = gallery or FakeGalleryClient()
    library = PhotoLibraryService(InMemoryPhotoLibraryRepository())
    events = EventBus()
    queue = UploadQueue(
        encoder=EncoderService(strategies=[PngEncoder()]),
        gallery_client=gallery,
        auth_service=AuthService(
            store=auth_store or FakeAuthStore(),
            gallery_client=gallery,
            cache=InMemoryCache(),
        ),
        library=library,
        events=events,
        max_retries=max_retries,
        retry_base_delay_seconds=0,
    )
    return UploadHarness(queue=queue, gallery=gallery, library=library, events=events)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        photos_directory=tmp_path / "photos",
        logs_directory=tmp_path / "logs",
        config_directory=tmp_path / "config",
        scratch_directory=tmp_path / "scratch",
        platform="desktop",
        watch_mode="polling",
        admin_token="admin-token",
        sound_enabled=False,
    )


@pytest.fixture
def gallery_client() -> FakeGalleryClient:
    return FakeGalleryClient()


@pytest.fixture
def container(settings: Settings, gallery_client: FakeGalleryClient) -> AppContainer:
    photos_directory = settings.photos_directory
    assert photos_directory is not None
    event_bus = EventBus()
    library_service = PhotoLibraryService(InMemoryPhotoLibraryRepository())
    upload_queue = UploadQueue(
        encoder=EncoderService(strategies=[PngEncoder()]),
        gallery_client=gallery_client,
        auth_service=AuthService(
            store=FakeAuthStore(),
            gallery_client=gallery_client,
            cache=InMemoryCache(),
        ),
        library=library_service,
        events=event_bus,
        retry_base_delay_seconds=0,
    )
    correlator = LogCorrelator(
        logs_directory=settings.logs_directory, poll_interval_seconds=0.01
    )
    matcher = MetadataMatcher(
        session_source=correlator,
        library=library_service,
        events=event_bus,
        upload_sink=upload_queue,
        screenshot_pattern=settings.screenshot_pattern,
    )
    pipeline = PhotoPipeline(
        correlator=correlator,
        directory_watcher=DirectoryWatcherService(
            directory=photos_directory,
            source=PollingDirectoryWatcher(interval_seconds=0.01),
            screenshot_pattern=settings.screenshot_pattern,
            stability_interval_seconds=0.01,
        ),
        matcher=matcher,
        upload_queue=upload_queue,
        notifications=NotificationService(
            events=event_bus, sound=SoundCuePlayer(command=None, enabled=False)
        ),
    )

    async def close_resources() -> None:
        await library_service.flush()
        await gallery_client.close()

    return AppContainer(
        settings=settings,
        platform=DesktopPlatformService(environ={"HOME": str(photos_directory)}),
        photos_directory=photos_directory,
        event_bus=event_bus,
        gallery_client=gallery_client,
        library_service=library_service,
        correlator=correlator,
        matcher=matcher,
        upload_queue=upload_queue,
        pipeline=pipeline,
        close_resources=close_resources,
    )
