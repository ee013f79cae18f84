"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status

from lfg_coordinator.api.admin import router as admin_router
from lfg_coordinator.api.discord_models import (
    DiscordUser,
    Interaction,
    VoiceStateUpdate,
)
from lfg_coordinator.app_logging import configure_logging
from lfg_coordinator.containers import AppContainer
from lfg_coordinator.discord_commands import HELP_EMBED, discord_commands
from lfg_coordinator.domain.activities import display_name, suggest_modes
from lfg_coordinator.domain.outcomes import ActionResult, ErrorKind
from lfg_coordinator.domain.sessions import Session

PING = 1
APPLICATION_COMMAND = 2
MESSAGE_COMPONENT = 3
AUTOCOMPLETE = 4

PONG = 1
CHANNEL_MESSAGE = 4
AUTOCOMPLETE_RESULT = 8

EPHEMERAL = 1 << 6


def _get_relay_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.relay_token


async def require_relay(
    x_relay_token: str | None = Header(default=None),
    relay_token: str = Depends(_get_relay_token),
) -> None:
    """Ensure requests come from the gateway relay."""
    if not x_relay_token or x_relay_token != relay_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        await state_container.reconciler.reconcile()
        try:
            await state_container.discord_client.overwrite_global_commands(
                state_container.settings.discord_application_id, discord_commands()
            )
        except Exception:
            logger.exception("Failed to register Discord slash commands")
        state_container.lifecycle.start()
        yield
        await state_container.lifecycle.stop()
        state_container.session_service.timers.cancel_all()
        flushed = state_container.session_service.flush()
        logger.info("Flushed %d active sessions on shutdown", flushed)
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, object]:
        """Health check with the number of live sessions."""
        state_container: AppContainer = request.app.state.container
        return {
            "status": "ok",
            "active_sessions": len(state_container.session_service.registry),
        }

    @app.post("/discord/interactions", dependencies=[Depends(require_relay)])
    async def discord_interactions(
        interaction: Interaction, request: Request
    ) -> dict[str, object]:
        """Handle interactions forwarded by the gateway relay."""
        state_container: AppContainer = request.app.state.container
        if interaction.type == PING:
            return {"type": PONG}
        if interaction.type == AUTOCOMPLETE:
            return _autocomplete(interaction)
        actor = interaction.actor()
        if actor is None or interaction.guild_id is None:
            return _reply("❌ **This bot only works in servers.**")
        try:
            if interaction.type == APPLICATION_COMMAND:
                return await _handle_command(state_container, interaction, actor)
            if interaction.type == MESSAGE_COMPONENT:
                return await _handle_button(state_container, interaction, actor)
        except Exception:
            logger.exception(
                "Interaction handling failed",
                extra={"interaction_id": interaction.id},
            )
            return _reply(
                "❌ **Something went wrong!**\n\n"
                "Please try again. If the problem persists, contact support."
            )
        return _reply("❌ **Action failed!**\n\nPlease try again.")

    @app.post("/discord/voice-states", dependencies=[Depends(require_relay)])
    async def voice_states(
        update: VoiceStateUpdate, request: Request
    ) -> dict[str, str]:
        """Feed relayed voice state updates into the idle-resource watch."""
        state_container: AppContainer = request.app.state.container
        for change in state_container.voice_occupancy.apply(
            update.guild_id, update.user_id, update.channel_id
        ):
            state_container.lifecycle.on_occupancy_change(
                change.guild_id, change.channel_id, change.occupant_count
            )
        return {"status": "ok"}

    @app.post("/internal/tick", dependencies=[Depends(require_relay)])
    async def internal_tick(request: Request) -> dict[str, object]:
        """Run one lifecycle sweep on demand."""
        state_container: AppContainer = request.app.state.container
        report = await state_container.lifecycle.tick()
        return {"expired": report.expired, "reclaimed": report.reclaimed}

    return app


async def _handle_command(
    container: AppContainer, interaction: Interaction, actor: DiscordUser
) -> dict[str, object]:
    command = interaction.data.name if interaction.data else None
    service = container.session_service
    if command == "lfg":
        game = str(interaction.option("game") or "")
        mode = str(interaction.option("gamemode") or "")
        note = interaction.option("info")
        result = await service.create_session(
            user_id=actor.id,
            display_name=interaction.actor_display_name(),
            guild_id=str(interaction.guild_id),
            location_id=str(interaction.channel_id),
            activity_kind=game,
            activity_mode=mode,
            target_size=int(interaction.option("players") or 0),
            note=str(note) if note else None,
        )
        if result.error is not None:
            return _denial(result)
        return _reply(_format_created(result.session) + _format_warnings(result))
    if command == "quickjoin":
        result = await service.quick_join(
            user_id=actor.id,
            display_name=interaction.actor_display_name(),
            guild_id=str(interaction.guild_id),
            activity_kind=str(interaction.option("game") or ""),
            activity_mode=str(interaction.option("gamemode") or ""),
        )
        if result.error is not None:
            return _denial(result)
        return _reply(_format_quick_joined(result.session) + _format_warnings(result))
    if command == "endlfg":
        result = await service.end_own_session(actor.id)
        if result.error is not None:
            return _denial(result)
        game = display_name(result.session.activity_kind) if result.session else ""
        return _reply(
            f"✅ **Successfully ended your {game} session!**\n\n"
            "🔍 You can now create a new session or join others."
        )
    if command == "help":
        return {
            "type": CHANNEL_MESSAGE,
            "data": {"embeds": [HELP_EMBED], "flags": EPHEMERAL},
        }
    return _reply("❌ **Unknown command!**")


async def _handle_button(
    container: AppContainer, interaction: Interaction, actor: DiscordUser
) -> dict[str, object]:
    parsed = _parse_session_button(
        interaction.data.custom_id if interaction.data else None
    )
    if parsed is None:
        return _reply("❌ **Action failed!**\n\nPlease try again.")
    action, session_id = parsed
    service = container.session_service
    if action == "join":
        result = await service.join_session(
            actor.id, interaction.actor_display_name(), session_id
        )
        if result.error is not None:
            return _denial(result)
        if result.already_joined:
            return _reply(
                "✅ **You're already in this session!**\n\n"
                "🎮 You're all set to play."
            )
        return _reply(_format_joined(result.session) + _format_warnings(result))
    result = await service.leave_session(actor.id, session_id)
    if result.error is not None:
        return _denial(result)
    game = display_name(result.session.activity_kind) if result.session else ""
    return _reply(
        f"✅ **Successfully left {game} session!**\n\n"
        "🔍 You can now join other sessions or create your own."
    )


def _autocomplete(interaction: Interaction) -> dict[str, object]:
    focused = interaction.focused_option()
    choices: list[dict[str, str]] = []
    if focused is not None and focused.name == "gamemode":
        game = str(interaction.option("game") or "")
        choices = [
            {"name": mode, "value": mode}
            for mode in suggest_modes(game, str(focused.value or ""))
        ]
    return {"type": AUTOCOMPLETE_RESULT, "data": {"choices": choices}}


def _parse_session_button(custom_id: str | None) -> tuple[str, str] | None:
    if not custom_id:
        return None
    action, _, session_id = custom_id.partition("_")
    if action not in {"join", "leave"} or not session_id:
        return None
    return action, session_id


def _reply(content: str) -> dict[str, object]:
    return {"type": CHANNEL_MESSAGE, "data": {"content": content, "flags": EPHEMERAL}}


def _denial(result: ActionResult) -> dict[str, object]:
    error = result.error
    if error is None:
        return _reply("❌ **Action failed!**\n\nPlease try again.")
    content = f"❌ **{error.reason}**"
    if error.next_action:
        content += f"\n\n{error.next_action}"
    return _reply(content)


def _format_created(session: Session | None) -> str:
    if session is None:
        return "✅ **LFG session created!**"
    return (
        f"✅ **{display_name(session.activity_kind)} session created!**\n\n"
        f"🎮 **Game:** {display_name(session.activity_kind)} - "
        f"{session.activity_mode}\n"
        f"👥 **Players:** {len(session.roster)}/{session.target_size}\n"
        "🔍 Others can join with the **Join Session** button."
    )


def _format_joined(session: Session | None) -> str:
    if session is None:
        return "✅ **Successfully joined!**"
    game = display_name(session.activity_kind)
    return (
        f"✅ **Successfully joined {game}!**\n\n"
        f"🎮 **Game:** {game} - {session.activity_mode}\n"
        f"👥 **Players:** {len(session.roster)}/{session.target_size}\n"
        f"👤 **Session Creator:** <@{session.creator_id}>"
    )


def _format_quick_joined(session: Session | None) -> str:
    if session is None:
        return "✅ **Quick Join successful!**"
    return (
        "✅ **Quick Join successful!**\n\n"
        f"🎮 **Game:** {display_name(session.activity_kind)} - "
        f"{session.activity_mode}\n"
        f"👥 **Players:** {len(session.roster)}/{session.target_size}\n"
        f"👤 **Session Creator:** <@{session.creator_id}>\n"
        f"🆔 **Session ID:** {session.id[-6:]}"
    )


def _format_warnings(result: ActionResult) -> str:
    lines = []
    if ErrorKind.RESOURCE_PROVISION_FAILED in result.warnings:
        lines.append("⚠️ The private voice channel could not be created.")
    if ErrorKind.PRESENTATION_FAILED in result.warnings:
        lines.append("⚠️ The session message could not be updated.")
    if not lines:
        return ""
    return "\n\n" + "\n".join(lines)
