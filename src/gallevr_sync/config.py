"""Application configuration."""

import os
import shlex
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("GALLEVR_ENVIRONMENT", "local")

DEFAULT_SCREENSHOT_PATTERN = (
    r"^VRChat_\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}\.\d{3}_\d+x\d+\.png$"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    gallery_base_url: str = "https://api.blueberry.coffee"
    photos_directory: Path | None = None
    logs_directory: Path | None = None
    config_directory: Path | None = None
    scratch_directory: Path | None = None
    platform: str | None = None
    watch_mode: str = "auto"
    screenshot_pattern: str = DEFAULT_SCREENSHOT_PATTERN
    log_file_prefix: str = "output_log_"
    log_poll_interval_seconds: float = 0.5
    log_discovery_interval_seconds: float = 5.0
    directory_poll_interval_seconds: float = 2.0
    stability_interval_seconds: float = 1.0
    upload_enabled: bool = True
    sound_enabled: bool = True
    sound_volume: float = 0.5
    sound_command: str | None = None
    webp_quality: int = 85
    webp_method: int = 6
    max_size_kb: int = 150
    max_dimension: int = 1080
    require_widescreen: bool = True
    cwebp_bundle_path: Path | None = None
    max_upload_retries: int = 3
    retry_base_delay_seconds: float = 2.0
    verification_ttl_seconds: int = 300
    admin_token: str | None = None
    monitor_host: str = "127.0.0.1"
    monitor_port: int = 8765
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_prefix="GALLEVR_",
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_watch_mode(raw: str | None) -> str | None:
    """Normalize the configured watch mode; ``None`` means platform default."""
    if raw is None:
        return None
    cleaned = raw.strip().lower()
    if cleaned in {"", "auto"}:
        return None
    if cleaned in {"native", "events"}:
        return "native"
    if cleaned in {"poll", "polling"}:
        return "polling"
    raise ValueError(f"Unknown watch mode: {raw}")


def parse_sound_command(raw: str | None) -> list[str] | None:
    """Split a configured sound command into argv form."""
    if raw is None:
        return None
    parts = shlex.split(raw)
    return parts or None
