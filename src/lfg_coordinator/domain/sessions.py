"""Domain models for matchmaking sessions."""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum

SESSION_TTL = timedelta(minutes=20)
MIN_TARGET_SIZE = 2
MAX_TARGET_SIZE = 10


class SessionStatus(str, Enum):
    """Lifecycle status of a session."""

    WAITING = "waiting"
    FULL = "full"
    RESOURCE_FAILED = "resource_failed"
    ENDED = "ended"


class EndReason(str, Enum):
    """Why a session was ended."""

    MANUAL = "manual"
    EXPIRED = "expired"
    EMPTY = "empty"
    CREATOR_LEFT = "creator_left"


@dataclass(frozen=True)
class Player:
    """A roster entry."""

    id: str
    display_name: str
    joined_at: datetime


@dataclass
class Session:
    """In-memory state of an active session."""

    id: str
    creator_id: str
    guild_id: str
    location_id: str
    activity_kind: str
    activity_mode: str
    target_size: int
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    roster: list[Player] = field(default_factory=list)
    status: SessionStatus = SessionStatus.WAITING
    note: str | None = None
    presentation_handle: str | None = None
    resource_handle: str | None = None

    @property
    def is_full(self) -> bool:
        return len(self.roster) >= self.target_size

    def has_member(self, user_id: str) -> bool:
        return any(player.id == user_id for player in self.roster)

    def member_ids(self) -> list[str]:
        return [player.id for player in self.roster]

    def age(self, now: datetime) -> timedelta:
        return now - self.created_at

    def snapshot(self) -> "Session":
        """Return a detached copy safe to hand out of the registry."""
        return replace(self, roster=list(self.roster))


@dataclass(frozen=True)
class SessionRecord:
    """Durable mirror of a session, soft-deleted through ``active``."""

    id: str
    creator_id: str
    guild_id: str
    location_id: str
    activity_kind: str
    activity_mode: str
    target_size: int
    status: str
    roster: tuple[Player, ...]
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    note: str | None = None
    presentation_handle: str | None = None
    resource_handle: str | None = None
    active: bool = True

    @classmethod
    def from_session(cls, session: Session, active: bool = True) -> "SessionRecord":
        return cls(
            id=session.id,
            creator_id=session.creator_id,
            guild_id=session.guild_id,
            location_id=session.location_id,
            activity_kind=session.activity_kind,
            activity_mode=session.activity_mode,
            target_size=session.target_size,
            status=session.status.value,
            roster=tuple(session.roster),
            created_at=session.created_at,
            updated_at=session.updated_at,
            expires_at=session.expires_at,
            note=session.note,
            presentation_handle=session.presentation_handle,
            resource_handle=session.resource_handle,
            active=active,
        )

    def to_session(self) -> Session:
        try:
            status = SessionStatus(self.status)
        except ValueError:
            status = SessionStatus.WAITING
        return Session(
            id=self.id,
            creator_id=self.creator_id,
            guild_id=self.guild_id,
            location_id=self.location_id,
            activity_kind=self.activity_kind,
            activity_mode=self.activity_mode,
            target_size=self.target_size,
            created_at=self.created_at,
            updated_at=self.updated_at,
            expires_at=self.expires_at,
            roster=list(self.roster),
            status=status,
            note=self.note,
            presentation_handle=self.presentation_handle,
            resource_handle=self.resource_handle,
        )


def roster_to_json(roster: tuple[Player, ...] | list[Player]) -> list[dict[str, str]]:
    """Serialize a roster for JSON storage."""
    return [
        {
            "id": player.id,
            "display_name": player.display_name,
            "joined_at": player.joined_at.isoformat(),
        }
        for player in roster
    ]


def roster_from_json(payload: object) -> tuple[Player, ...]:
    """Parse a stored roster, skipping malformed entries."""
    if not isinstance(payload, list):
        return ()
    players: list[Player] = []
    for entry in payload:
        if not isinstance(entry, dict) or not entry.get("id"):
            continue
        try:
            joined_at = _parse_joined_at(entry.get("joined_at"))
        except ValueError:
            continue
        players.append(
            Player(
                id=str(entry["id"]),
                display_name=str(entry.get("display_name") or entry["id"]),
                joined_at=joined_at,
            )
        )
    return tuple(players)


def _parse_joined_at(value: object) -> datetime:
    if not isinstance(value, str):
        return datetime.min.replace(tzinfo=UTC)
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
