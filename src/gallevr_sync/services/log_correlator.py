"""Tails the platform session log and tracks world and player context."""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from gallevr_sync.domain.photos import ScreenshotEvent, SignalSource
from gallevr_sync.domain.session import LogSessionState, SessionSnapshot, WorldInfo
from gallevr_sync.services.log_parsing import (
    ParsedLine,
    PlayerJoined,
    PlayerLeft,
    RoomEntered,
    ScreenshotTaken,
    WorldJoined,
    parse_line,
)

_logger = logging.getLogger(__name__)


class CorrelatorState(str, Enum):
    NO_LOG_FILE = "no_log_file"
    TAILING = "tailing"


@dataclass
class LogCorrelator:
    """Follows the newest session log and keeps the current session state.

    Only content appended after the correlator starts is read. Log files that
    appear later are read from their beginning. Screenshot lines become
    ``ScreenshotEvent`` values carrying a snapshot of the session as it was
    when the line was parsed.
    """

    logs_directory: Path | None
    log_file_prefix: str = "output_log_"
    poll_interval_seconds: float = 0.5
    discovery_interval_seconds: float = 5.0
    recent_screenshot_limit: int = 512
    session: LogSessionState = field(default_factory=LogSessionState)
    state: CorrelatorState = field(default=CorrelatorState.NO_LOG_FILE, init=False)
    current_log_file: Path | None = field(default=None, init=False)
    _position: int = field(default=0, init=False)
    _remainder: bytes = field(default=b"", init=False)
    _recent_screenshots: OrderedDict[str, None] = field(
        default_factory=OrderedDict, init=False
    )
    _preexisting: set[Path] = field(default_factory=set, init=False)
    _started: bool = field(default=False, init=False)
    _last_discovery: float = field(default=0.0, init=False)

    def snapshot(self) -> SessionSnapshot:
        """Return a copy of the current session state."""
        return self.session.snapshot()

    def start(self, now: float | None = None) -> None:
        """Attach to the newest log file at its current end."""
        self._started = True
        self._reset()
        self._preexisting = set(self._list_log_files())
        self._discover(now=now if now is not None else _wall_clock())

    def poll_once(self, now: float | None = None) -> list[ScreenshotEvent]:
        """Read newly appended content and return fresh screenshot events."""
        current = now if now is not None else _wall_clock()
        if not self._started:
            self.start(now=current)
            return []
        if self.current_log_file is None:
            self._discover(now=current)
            if self.current_log_file is None:
                return []

        try:
            size = self.current_log_file.stat().st_size
        except FileNotFoundError:
            _logger.info("Log file no longer exists: %s", self.current_log_file)
            self._preexisting.discard(self.current_log_file)
            self._reset()
            self._discover(now=current)
            return []

        if size < self._position:
            _logger.info(
                "Log file shrank from %s to %s bytes, rescanning from start",
                self._position,
                size,
            )
            self._position = 0
            self._remainder = b""
        events = self._read_new_content()

        if current - self._last_discovery >= self.discovery_interval_seconds:
            self._last_discovery = current
            latest = self._find_latest_log_file()
            if latest is not None and latest != self.current_log_file:
                _logger.info("Switching to newer log file: %s", latest)
                self._adopt(latest)
                events.extend(self._read_new_content())
        return events

    async def run(self, sink: "asyncio.Queue[ScreenshotEvent]") -> None:
        """Poll the log forever, forwarding screenshot events to ``sink``."""
        self.start()
        _logger.info("Log correlator started for %s", self.logs_directory)
        try:
            while True:
                try:
                    for event in self.poll_once():
                        sink.put_nowait(event)
                except Exception:
                    _logger.exception("Log correlator poll failed")
                    self._reset()
                await asyncio.sleep(self.poll_interval_seconds)
        finally:
            _logger.info("Log correlator stopped")

    def _read_new_content(self) -> list[ScreenshotEvent]:
        if self.current_log_file is None:
            return []
        with self.current_log_file.open("rb") as handle:
            handle.seek(self._position)
            data = handle.read()
        if not data:
            return []
        self._position += len(data)
        return self._consume(data)

    def _consume(self, data: bytes) -> list[ScreenshotEvent]:
        chunks = (self._remainder + data).split(b"\n")
        self._remainder = chunks.pop()
        events: list[ScreenshotEvent] = []
        for raw in chunks:
            parsed = parse_line(raw.decode("utf-8", errors="replace"))
            if parsed is None:
                continue
            event = self._apply(parsed)
            if event is not None:
                events.append(event)
        return events

    def _apply(self, parsed: ParsedLine) -> ScreenshotEvent | None:
        if parsed.timestamp is not None:
            self.session.last_event_timestamp = parsed.timestamp
        event = parsed.event
        if isinstance(event, WorldJoined):
            world = event.world
            current = self.session.current_world
            # The room name may be logged before the join line.
            if current is not None and not current.id and current.name:
                world = replace(world, name=current.name)
            self.session.current_world = world
            self.session.present_players.clear()
        elif isinstance(event, RoomEntered):
            current = self.session.current_world
            if current is not None and current.id and not current.name:
                self.session.current_world = replace(current, name=event.name)
            else:
                self.session.current_world = WorldInfo(id="", name=event.name)
                self.session.present_players.clear()
        elif isinstance(event, PlayerJoined):
            self.session.present_players[event.player.id] = event.player
        elif isinstance(event, PlayerLeft):
            self.session.present_players.pop(event.player.id, None)
        elif isinstance(event, ScreenshotTaken):
            return self._screenshot_event(event.path)
        return None

    def _screenshot_event(self, path: Path) -> ScreenshotEvent | None:
        key = str(path)
        if key in self._recent_screenshots:
            self._recent_screenshots.move_to_end(key)
            return None
        self._recent_screenshots[key] = None
        while len(self._recent_screenshots) > self.recent_screenshot_limit:
            self._recent_screenshots.popitem(last=False)
        _logger.info("Screenshot detected from log: %s", path)
        return ScreenshotEvent(
            file_path=path,
            detected_at=datetime.now(tz=UTC),
            source=SignalSource.LOG,
            session=self.session.snapshot(),
        )

    def _discover(self, now: float) -> None:
        self._last_discovery = now
        latest = self._find_latest_log_file()
        if latest is not None:
            self._adopt(latest)

    def _adopt(self, path: Path) -> None:
        try:
            size = path.stat().st_size
        except OSError:
            _logger.warning("Cannot stat log file: %s", path)
            return
        self.current_log_file = path
        self._position = size if path in self._preexisting else 0
        self._remainder = b""
        self.state = CorrelatorState.TAILING
        _logger.info("Tailing log file %s from offset %s", path, self._position)

    def _reset(self) -> None:
        self.current_log_file = None
        self._position = 0
        self._remainder = b""
        self.state = CorrelatorState.NO_LOG_FILE

    def _list_log_files(self) -> list[Path]:
        if self.logs_directory is None:
            return []
        try:
            return [
                entry
                for entry in self.logs_directory.iterdir()
                if entry.is_file() and entry.name.startswith(self.log_file_prefix)
            ]
        except FileNotFoundError:
            _logger.debug("Logs directory does not exist: %s", self.logs_directory)
            return []
        except OSError:
            _logger.warning("Cannot list logs directory: %s", self.logs_directory)
            return []

    def _find_latest_log_file(self) -> Path | None:
        candidates = self._list_log_files()
        if not candidates:
            return None
        return max(candidates, key=_modified_time)


def _modified_time(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


def _wall_clock() -> float:
    return datetime.now(tz=UTC).timestamp()
