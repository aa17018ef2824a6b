"""Line grammar for the platform's session log."""

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from gallevr_sync.domain.session import Player, WorldInfo

_TIMESTAMP_RE = re.compile(r"^(\d{4}\.\d{2}\.\d{2} \d{2}:\d{2}:\d{2})")
_SCREENSHOT_RE = re.compile(
    r"\d{4}\.\d{2}\.\d{2} \d{2}:\d{2}:\d{2} Debug\s+-\s+"
    r"\[VRC Camera\] Took screenshot to: (.+\.png)"
)
_ROOM_RE = re.compile(r"\[Behaviour\] Entering Room: (.+)$")
_PLAYER_RE = re.compile(r"\[Behaviour\] OnPlayer(Joined|Left) (.+?) \((.+?)\)")
_JOIN_PREFIX = r"\[Behaviour\] Joining (wrld_[^:\s]+):"


@dataclass(frozen=True)
class ScreenshotTaken:
    path: Path


@dataclass(frozen=True)
class WorldJoined:
    world: WorldInfo


@dataclass(frozen=True)
class RoomEntered:
    name: str


@dataclass(frozen=True)
class PlayerJoined:
    player: Player


@dataclass(frozen=True)
class PlayerLeft:
    player: Player


LogEvent = ScreenshotTaken | WorldJoined | RoomEntered | PlayerJoined | PlayerLeft


@dataclass(frozen=True)
class ParsedLine:
    """A recognized log line."""

    timestamp: datetime | None
    event: LogEvent | None


@dataclass(frozen=True)
class _WorldPattern:
    regex: re.Pattern[str]
    build: Callable[[re.Match[str]], WorldInfo]


_WORLD_PATTERNS: tuple[_WorldPattern, ...] = (
    _WorldPattern(
        regex=re.compile(
            _JOIN_PREFIX
            + r"([^~]+)~([^(]+)\(([^)]+)\)~canRequestInvite~region\(([^)]+)\)"
        ),
        build=lambda m: WorldInfo(
            id=m.group(1),
            name="",
            instance_id=m.group(2),
            access_type=m.group(3),
            owner_id=m.group(4),
            region=m.group(5),
            can_request_invite=True,
        ),
    ),
    _WorldPattern(
        regex=re.compile(
            _JOIN_PREFIX + r"([^~]+)~group\(([^)]+)\)~groupAccessType\(([^)]+)\)"
            r"~inviteOnly~region\(([^)]+)\)"
        ),
        build=lambda m: WorldInfo(
            id=m.group(1),
            name="",
            instance_id=m.group(2),
            access_type="group",
            group_id=m.group(3),
            group_access_type=m.group(4),
            region=m.group(5),
            invite_only=True,
        ),
    ),
    _WorldPattern(
        regex=re.compile(
            _JOIN_PREFIX + r"([^~]+)~group\(([^)]+)\)~groupAccessType\(([^)]+)\)"
            r"~region\(([^)]+)\)"
        ),
        build=lambda m: WorldInfo(
            id=m.group(1),
            name="",
            instance_id=m.group(2),
            access_type="group",
            group_id=m.group(3),
            group_access_type=m.group(4),
            region=m.group(5),
        ),
    ),
    _WorldPattern(
        regex=re.compile(
            _JOIN_PREFIX + r"([^~]+)~([^(]+)\(([^)]+)\)~region\(([^)]+)\)"
        ),
        build=lambda m: WorldInfo(
            id=m.group(1),
            name="",
            instance_id=m.group(2),
            access_type=m.group(3),
            owner_id=m.group(4),
            region=m.group(5),
        ),
    ),
    _WorldPattern(
        regex=re.compile(_JOIN_PREFIX + r"([^~]+)~region\(([^)]+)\)"),
        build=lambda m: WorldInfo(
            id=m.group(1),
            name="",
            instance_id=m.group(2),
            access_type="public",
            region=m.group(3),
        ),
    ),
    _WorldPattern(
        regex=re.compile(_JOIN_PREFIX + r"([^~\s]+)"),
        build=lambda m: WorldInfo(
            id=m.group(1),
            name="",
            instance_id=m.group(2),
        ),
    ),
)


def parse_line(line: str) -> ParsedLine | None:
    """Parse a single log line.

    Returns ``None`` for lines that carry neither a timestamp nor a known
    event. Unknown lines with a timestamp still advance the session clock.
    """
    stripped = line.rstrip("\r\n")
    if not stripped:
        return None
    timestamp = _parse_timestamp(stripped)
    event = _parse_event(stripped)
    if timestamp is None and event is None:
        return None
    return ParsedLine(timestamp=timestamp, event=event)


def _parse_timestamp(line: str) -> datetime | None:
    match = _TIMESTAMP_RE.match(line)
    if match is None:
        return None
    try:
        return datetime.strptime(match.group(1), "%Y.%m.%d %H:%M:%S")
    except ValueError:
        return None


def _parse_event(line: str) -> LogEvent | None:  # noqa: PLR0911
    if "[VRC Camera]" in line:
        match = _SCREENSHOT_RE.search(line)
        if match is None:
            return None
        path = match.group(1).strip()
        return ScreenshotTaken(path=Path(path)) if path else None

    if "[Behaviour]" not in line:
        return None

    if "Joining wrld_" in line:
        for pattern in _WORLD_PATTERNS:
            world_match = pattern.regex.search(line)
            if world_match is not None:
                return WorldJoined(world=pattern.build(world_match))
        return None

    room_match = _ROOM_RE.search(line)
    if room_match is not None:
        name = room_match.group(1).strip()
        return RoomEntered(name=name) if name else None

    player_match = _PLAYER_RE.search(line)
    if player_match is not None:
        player = Player(
            id=player_match.group(3).strip(), name=player_match.group(2).strip()
        )
        if not player.id:
            return None
        if player_match.group(1) == "Joined":
            return PlayerJoined(player=player)
        return PlayerLeft(player=player)

    return None
