"""Domain models for world and player context parsed from platform logs."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class WorldInfo:
    """A world instance the local user joined."""

    id: str
    name: str
    instance_id: str | None = None
    access_type: str | None = None
    region: str | None = None
    owner_id: str | None = None
    group_id: str | None = None
    group_access_type: str | None = None
    can_request_invite: bool | None = None
    invite_only: bool | None = None

    def to_payload(self) -> dict[str, object]:
        """Serialize using the gallery's camelCase field names."""
        payload: dict[str, object] = {"name": self.name, "id": self.id}
        optional = {
            "instanceId": self.instance_id,
            "accessType": self.access_type,
            "region": self.region,
            "ownerId": self.owner_id,
            "groupId": self.group_id,
            "groupAccessType": self.group_access_type,
            "canRequestInvite": self.can_request_invite,
            "inviteOnly": self.invite_only,
        }
        payload.update(
            {key: value for key, value in optional.items() if value is not None}
        )
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> "WorldInfo":
        """Build a world from its camelCase payload."""
        return cls(
            id=str(payload.get("id", "")),
            name=str(payload.get("name", "")),
            instance_id=_optional_str(payload.get("instanceId")),
            access_type=_optional_str(payload.get("accessType")),
            region=_optional_str(payload.get("region")),
            owner_id=_optional_str(payload.get("ownerId")),
            group_id=_optional_str(payload.get("groupId")),
            group_access_type=_optional_str(payload.get("groupAccessType")),
            can_request_invite=_optional_bool(payload.get("canRequestInvite")),
            invite_only=_optional_bool(payload.get("inviteOnly")),
        )


@dataclass(frozen=True)
class Player:
    """A user present in the same instance."""

    id: str
    name: str

    def to_payload(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable copy of the correlator's session state."""

    world: WorldInfo | None = None
    players: tuple[Player, ...] = ()
    last_event_timestamp: datetime | None = None


@dataclass
class LogSessionState:
    """Most recent known world and player context.

    Owned by the log correlator. Players are kept in join order so snapshots
    list them the way they arrived.
    """

    current_world: WorldInfo | None = None
    present_players: dict[str, Player] = field(default_factory=dict)
    last_event_timestamp: datetime | None = None

    def snapshot(self) -> SessionSnapshot:
        """Return a detached copy of the current state."""
        return SessionSnapshot(
            world=self.current_world,
            players=tuple(self.present_players.values()),
            last_event_timestamp=self.last_event_timestamp,
        )


def _optional_str(value: object) -> str | None:
    return None if value is None else str(value)


def _optional_bool(value: object) -> bool | None:
    return value if isinstance(value, bool) else None
