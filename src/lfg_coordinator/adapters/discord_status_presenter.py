"""Session status messages rendered as Discord embeds."""

import logging
from dataclasses import dataclass

import httpx

from lfg_coordinator.adapters.discord_client import DiscordClient
from lfg_coordinator.domain.activities import display_name
from lfg_coordinator.domain.sessions import Session
from lfg_coordinator.services.sessions import StatusPresenter

logger = logging.getLogger(__name__)

COLOR_OPEN = 0x3498DB
COLOR_FULL = 0x00FF00
COLOR_ENDED = 0x95A5A6

ACTION_ROW = 1
BUTTON = 2
BUTTON_SUCCESS = 3
BUTTON_DANGER = 4


def _short_id(session_id: str) -> str:
    return session_id[-6:]


def build_status_embed(session: Session) -> dict[str, object]:
    """Render the live status card of a session."""
    game = display_name(session.activity_kind)
    marker = "✅" if session.is_full else "🔍"
    fields: list[dict[str, object]] = [
        {
            "name": "👥 Players",
            "value": f"{len(session.roster)}/{session.target_size}",
            "inline": True,
        },
        {"name": "🎮 Game Mode", "value": session.activity_mode, "inline": True},
        {
            "name": "👤 Created by",
            "value": f"<@{session.creator_id}>",
            "inline": True,
        },
    ]
    if session.note:
        fields.append({"name": "📝 Additional Info", "value": session.note})
    if session.roster:
        fields.append(
            {
                "name": "🎯 Current Players",
                "value": "\n".join(f"• <@{player.id}>" for player in session.roster),
            }
        )
    if session.resource_handle:
        fields.append(
            {
                "name": "🔊 Voice Channel",
                "value": f"<#{session.resource_handle}>",
                "inline": True,
            }
        )
    return {
        "title": f"{marker} {game} - {session.activity_mode}",
        "color": COLOR_FULL if session.is_full else COLOR_OPEN,
        "fields": fields,
        "footer": {"text": f"Session ID: {_short_id(session.id)} | Created"},
        "timestamp": session.created_at.isoformat(),
    }


def build_session_buttons(session: Session) -> list[dict[str, object]]:
    """Join and Leave buttons; Join is disabled once the roster is full."""
    return [
        {
            "type": ACTION_ROW,
            "components": [
                {
                    "type": BUTTON,
                    "custom_id": f"join_{session.id}",
                    "label": "Join Session",
                    "style": BUTTON_SUCCESS,
                    "emoji": {"name": "🎮"},
                    "disabled": session.is_full,
                },
                {
                    "type": BUTTON,
                    "custom_id": f"leave_{session.id}",
                    "label": "Leave Session",
                    "style": BUTTON_DANGER,
                    "emoji": {"name": "🚪"},
                },
            ],
        }
    ]


def build_ended_embed(session: Session) -> dict[str, object]:
    return {
        "title": f"⛔ Session Ended - {display_name(session.activity_kind)}",
        "color": COLOR_ENDED,
        "description": "This LFG session has ended.",
        "footer": {"text": f"Session ID: {_short_id(session.id)} | Ended"},
        "timestamp": session.updated_at.isoformat(),
    }


@dataclass
class DiscordStatusPresenter(StatusPresenter):
    """Keeps one status message per session in its origin channel."""

    client: DiscordClient

    async def post_or_update_status(self, session: Session) -> str | None:
        """Edit the existing message, or post a new one when that fails."""
        payload: dict[str, object] = {
            "embeds": [build_status_embed(session)],
            "components": build_session_buttons(session),
        }
        if session.presentation_handle:
            try:
                await self.client.edit_message(
                    session.location_id, session.presentation_handle, payload
                )
            except httpx.HTTPError:
                logger.warning(
                    "Failed to edit status message %s, posting a new one",
                    session.presentation_handle,
                )
            else:
                return session.presentation_handle
        message = await self.client.create_message(session.location_id, payload)
        message_id = message.get("id")
        return str(message_id) if message_id else None

    async def mark_ended(self, session: Session) -> None:
        if not session.presentation_handle:
            return
        await self.client.edit_message(
            session.location_id,
            session.presentation_handle,
            {"embeds": [build_ended_embed(session)], "components": []},
        )
