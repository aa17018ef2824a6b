"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from gallevr_sync.adapters.encoders import (
    CwebpEncoder,
    EncoderStrategy,
    PillowWebpEncoder,
    PngEncoder,
)
from gallevr_sync.adapters.gallery_client import GalleryClient, HttpxGalleryClient
from gallevr_sync.adapters.json_auth_store import JsonAuthStore
from gallevr_sync.adapters.json_photo_library import JsonPhotoLibraryRepository
from gallevr_sync.adapters.platforms import (
    PlatformService,
    change_source_for,
    default_scratch_directory,
    platform_service_for,
)
from gallevr_sync.config import Settings, parse_sound_command, parse_watch_mode
from gallevr_sync.services.auth import AuthService
from gallevr_sync.services.cache import InMemoryCache
from gallevr_sync.services.directory_watcher import DirectoryWatcherService
from gallevr_sync.services.encoding import EncoderService
from gallevr_sync.services.events import EventBus
from gallevr_sync.services.library import PhotoLibraryService
from gallevr_sync.services.log_correlator import LogCorrelator
from gallevr_sync.services.matcher import MetadataMatcher
from gallevr_sync.services.notifications import NotificationService, SoundCuePlayer
from gallevr_sync.services.pipeline import PhotoPipeline
from gallevr_sync.services.uploads import UploadQueue


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    platform: PlatformService
    photos_directory: Path
    event_bus: EventBus
    gallery_client: GalleryClient
    library_service: PhotoLibraryService
    correlator: LogCorrelator
    matcher: MetadataMatcher
    upload_queue: UploadQueue
    pipeline: PhotoPipeline
    close_resources: Callable[[], Awaitable[None]]


def build_encoder_strategies(
    names: tuple[str, ...], settings: Settings, config_directory: Path
) -> list[EncoderStrategy]:
    """Instantiate encoder strategies in the given order."""
    scratch = settings.scratch_directory or default_scratch_directory()
    strategies: list[EncoderStrategy] = []
    for name in names:
        if name == "native":
            strategies.append(PillowWebpEncoder())
        elif name == "bundled":
            strategies.append(
                CwebpEncoder(
                    install_dir=config_directory / "bin",
                    scratch_dir=scratch,
                    bundle_path=settings.cwebp_bundle_path,
                    target_size_kb=settings.max_size_kb,
                )
            )
        elif name == "fallback":
            strategies.append(PngEncoder())
        else:
            raise ValueError(f"Unknown encoder strategy: {name}")
    return strategies


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    platform = platform_service_for(resolved_settings.platform)
    photos_directory = (
        resolved_settings.photos_directory or platform.photos_directory()
    )
    logs_directory = resolved_settings.logs_directory or platform.logs_directory()
    config_directory = (
        resolved_settings.config_directory or platform.config_directory()
    )
    watch_mode = (
        parse_watch_mode(resolved_settings.watch_mode)
        or platform.preferred_watch_mode()
    )

    event_bus = EventBus()
    library_service = PhotoLibraryService(
        JsonPhotoLibraryRepository(config_directory / "library.json")
    )
    gallery_client = HttpxGalleryClient.create(resolved_settings.gallery_base_url)
    auth_service = AuthService(
        store=JsonAuthStore(config_directory / "auth.json"),
        gallery_client=gallery_client,
        cache=InMemoryCache(),
        verification_ttl_seconds=resolved_settings.verification_ttl_seconds,
    )
    encoder = EncoderService(
        strategies=build_encoder_strategies(
            platform.encoder_chain(), resolved_settings, config_directory
        ),
        max_size_kb=resolved_settings.max_size_kb,
        quality=resolved_settings.webp_quality,
        method=resolved_settings.webp_method,
        max_dimension=resolved_settings.max_dimension,
        require_widescreen=resolved_settings.require_widescreen,
    )
    upload_queue = UploadQueue(
        encoder=encoder,
        gallery_client=gallery_client,
        auth_service=auth_service,
        library=library_service,
        events=event_bus,
        max_retries=resolved_settings.max_upload_retries,
        retry_base_delay_seconds=resolved_settings.retry_base_delay_seconds,
    )
    correlator = LogCorrelator(
        logs_directory=logs_directory,
        log_file_prefix=resolved_settings.log_file_prefix,
        poll_interval_seconds=resolved_settings.log_poll_interval_seconds,
        discovery_interval_seconds=resolved_settings.log_discovery_interval_seconds,
    )
    directory_watcher = DirectoryWatcherService(
        directory=photos_directory,
        source=change_source_for(
            watch_mode, resolved_settings.directory_poll_interval_seconds
        ),
        screenshot_pattern=resolved_settings.screenshot_pattern,
        stability_interval_seconds=resolved_settings.stability_interval_seconds,
    )
    matcher = MetadataMatcher(
        session_source=correlator,
        library=library_service,
        events=event_bus,
        upload_sink=upload_queue,
        upload_enabled=resolved_settings.upload_enabled,
        screenshot_pattern=resolved_settings.screenshot_pattern,
    )
    notifications = NotificationService(
        events=event_bus,
        sound=SoundCuePlayer(
            command=parse_sound_command(resolved_settings.sound_command),
            enabled=resolved_settings.sound_enabled,
            volume=resolved_settings.sound_volume,
        ),
    )
    pipeline = PhotoPipeline(
        correlator=correlator,
        directory_watcher=directory_watcher,
        matcher=matcher,
        upload_queue=upload_queue,
        notifications=notifications,
    )

    async def close_resources() -> None:
        await library_service.flush()
        await gallery_client.close()

    return AppContainer(
        settings=resolved_settings,
        platform=platform,
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
