"""Per-platform locations and capabilities."""

import os
import platform
import sys
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from gallevr_sync.adapters.directory_watchers import (
    DirectoryChangeSource,
    PollingDirectoryWatcher,
    WatchdogDirectoryWatcher,
)

_APP_DIRECTORY = "GalleVR"
# Steam app id of the VR client, used for Proton prefixes on Linux.
_PROTON_APP_ID = "438100"


class PlatformKind(str, Enum):
    WINDOWS = "windows"
    ANDROID = "android"
    DESKTOP = "desktop"


class PlatformService(Protocol):
    """Where files live and which capabilities exist on this platform."""

    kind: PlatformKind

    def photos_directory(self) -> Path:
        """Directory the VR client writes screenshots into."""

    def logs_directory(self) -> Path | None:
        """Directory holding session logs, when the platform exposes one."""

    def config_directory(self) -> Path:
        """Directory holding ``auth.json`` and the photo library."""

    def preferred_watch_mode(self) -> str:
        """Either ``"native"`` or ``"polling"``."""

    def encoder_chain(self) -> tuple[str, ...]:
        """Encoder strategy names in the order they should be tried."""


@dataclass
class WindowsPlatformService(PlatformService):
    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    kind = PlatformKind.WINDOWS

    def photos_directory(self) -> Path:
        return self._home() / "Pictures" / "VRChat"

    def logs_directory(self) -> Path | None:
        return self._roaming().parent / "LocalLow" / "VRChat" / "VRChat"

    def config_directory(self) -> Path:
        return self._roaming() / _APP_DIRECTORY

    def preferred_watch_mode(self) -> str:
        return "native"

    def encoder_chain(self) -> tuple[str, ...]:
        return ("bundled", "native", "fallback")

    def _home(self) -> Path:
        profile = self.environ.get("USERPROFILE")
        return Path(profile) if profile else Path.home()

    def _roaming(self) -> Path:
        app_data = self.environ.get("APPDATA")
        if app_data:
            return Path(app_data)
        return self._home() / "AppData" / "Roaming"


@dataclass
class AndroidPlatformService(PlatformService):
    """Standalone headset: shared storage, no native notifications."""

    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    kind = PlatformKind.ANDROID

    def photos_directory(self) -> Path:
        return self._storage_root() / "Pictures" / "VRChat"

    def logs_directory(self) -> Path | None:
        app_data = self._storage_root() / "Android" / "data"
        return app_data / "com.vrchat.oculus" / "files"

    def config_directory(self) -> Path:
        home = self.environ.get("HOME")
        base = Path(home) if home else self._storage_root()
        return base / f".{_APP_DIRECTORY.lower()}"

    def preferred_watch_mode(self) -> str:
        return "polling"

    def encoder_chain(self) -> tuple[str, ...]:
        return ("native", "fallback")

    def _storage_root(self) -> Path:
        return Path(self.environ.get("EXTERNAL_STORAGE", "/storage/emulated/0"))


@dataclass
class DesktopPlatformService(PlatformService):
    """Linux and macOS; logs are found inside a Proton prefix when present."""

    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    kind = PlatformKind.DESKTOP

    def photos_directory(self) -> Path:
        return self._home() / "Pictures" / "VRChat"

    def logs_directory(self) -> Path | None:
        prefix = self._home().joinpath(
            ".steam", "steam", "steamapps", "compatdata", _PROTON_APP_ID, "pfx"
        )
        logs = prefix.joinpath(
            "drive_c", "users", "steamuser", "AppData", "LocalLow", "VRChat", "VRChat"
        )
        return logs if logs.is_dir() else None

    def config_directory(self) -> Path:
        xdg = self.environ.get("XDG_CONFIG_HOME")
        base = Path(xdg) if xdg else self._home() / ".config"
        return base / _APP_DIRECTORY.lower()

    def preferred_watch_mode(self) -> str:
        return "native"

    def encoder_chain(self) -> tuple[str, ...]:
        return ("native", "bundled", "fallback")

    def _home(self) -> Path:
        home = self.environ.get("HOME")
        return Path(home) if home else Path.home()


def detect_platform() -> PlatformKind:
    if sys.platform == "android" or "ANDROID_ROOT" in os.environ:
        return PlatformKind.ANDROID
    if platform.system() == "Windows":
        return PlatformKind.WINDOWS
    return PlatformKind.DESKTOP


def platform_service_for(
    kind: PlatformKind | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> PlatformService:
    """Return the platform service for ``kind`` (detected when omitted)."""
    resolved = PlatformKind(kind.lower()) if isinstance(kind, str) else kind
    resolved = resolved or detect_platform()
    env = dict(os.environ) if environ is None else environ
    if resolved is PlatformKind.WINDOWS:
        return WindowsPlatformService(environ=env)
    if resolved is PlatformKind.ANDROID:
        return AndroidPlatformService(environ=env)
    return DesktopPlatformService(environ=env)


def change_source_for(
    watch_mode: str, interval_seconds: float = 2.0
) -> DirectoryChangeSource:
    """Build the directory change source for a resolved watch mode."""
    if watch_mode == "polling":
        return PollingDirectoryWatcher(interval_seconds=interval_seconds)
    return WatchdogDirectoryWatcher(retry_interval_seconds=interval_seconds)


def default_scratch_directory() -> Path:
    return Path(tempfile.gettempdir()) / _APP_DIRECTORY.lower()
