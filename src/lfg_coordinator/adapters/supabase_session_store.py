"""Supabase-backed session store."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from lfg_coordinator.domain.sessions import (
    SessionRecord,
    roster_from_json,
    roster_to_json,
)
from lfg_coordinator.services.sessions import SessionStore

_SESSION_COLUMNS = (
    "id, creator_id, guild_id, channel_id, message_id, game, gamemode, "
    "players_needed, info, status, current_players, voice_channel_id, "
    "created_at, updated_at, expires_at, is_active"
)


@dataclass
class SupabaseSessionStore(SessionStore):
    """Supabase implementation for session records and user pointers."""

    client: Client

    def upsert_session(self, record: SessionRecord) -> None:
        """Insert or overwrite a session row."""
        self.client.table("lfg_sessions").upsert(
            _record_to_row(record), on_conflict="id"
        ).execute()

    def fetch_session(self, session_id: str) -> SessionRecord | None:
        """Return a session by id, if present."""
        response = (
            self.client.table("lfg_sessions")
            .select(_SESSION_COLUMNS)
            .eq("id", session_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _row_to_record(response.data[0])

    def mark_inactive(self, session_id: str) -> None:
        """Soft-delete a session row."""
        self.client.table("lfg_sessions").update(
            {
                "is_active": False,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            }
        ).eq("id", session_id).execute()

    def list_active(self) -> list[SessionRecord]:
        """Return all sessions still flagged active."""
        response = (
            self.client.table("lfg_sessions")
            .select(_SESSION_COLUMNS)
            .eq("is_active", True)
            .execute()
        )
        return [_row_to_record(row) for row in response.data or []]

    def set_user_pointer(self, user_id: str, session_id: str) -> None:
        """Point a user at a session."""
        self.client.table("user_sessions").upsert(
            {
                "user_id": user_id,
                "session_id": session_id,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="user_id",
        ).execute()

    def get_user_pointer(self, user_id: str) -> str | None:
        """Return the session a user points at, if any."""
        response = (
            self.client.table("user_sessions")
            .select("session_id")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return response.data[0]["session_id"]

    def clear_user_pointer(self, user_id: str) -> None:
        """Remove a user's pointer."""
        self.client.table("user_sessions").delete().eq("user_id", user_id).execute()


def _record_to_row(record: SessionRecord) -> dict[str, object]:
    return {
        "id": record.id,
        "creator_id": record.creator_id,
        "guild_id": record.guild_id,
        "channel_id": record.location_id,
        "message_id": record.presentation_handle,
        "game": record.activity_kind,
        "gamemode": record.activity_mode,
        "players_needed": record.target_size,
        "info": record.note,
        "status": record.status,
        "current_players": roster_to_json(record.roster),
        "voice_channel_id": record.resource_handle,
        "created_at": record.created_at.isoformat(),
        "updated_at": record.updated_at.isoformat(),
        "expires_at": record.expires_at.isoformat(),
        "is_active": record.active,
    }


def _row_to_record(row: dict[str, object]) -> SessionRecord:
    return SessionRecord(
        id=str(row["id"]),
        creator_id=str(row["creator_id"]),
        guild_id=str(row["guild_id"]),
        location_id=str(row["channel_id"]),
        activity_kind=str(row["game"]),
        activity_mode=str(row["gamemode"]),
        target_size=int(row["players_needed"]),
        status=str(row["status"]),
        roster=roster_from_json(row.get("current_players")),
        created_at=_parse_timestamp(row["created_at"]),
        updated_at=_parse_timestamp(row["updated_at"]),
        expires_at=_parse_timestamp(row["expires_at"]),
        note=row.get("info"),
        presentation_handle=row.get("message_id"),
        resource_handle=row.get("voice_channel_id"),
        active=bool(row.get("is_active", True)),
    )


def _parse_timestamp(value: object) -> datetime:
    """Parse a timestamp column, assuming UTC when no offset is stored."""
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed
