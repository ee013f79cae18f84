"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from lfg_coordinator.containers import AppContainer
    from lfg_coordinator.domain.sessions import Session

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request) -> dict[str, object]:
    """Return live sessions, oldest first."""
    container: AppContainer = request.app.state.container
    sessions = sorted(
        container.session_service.registry.list_active(),
        key=lambda session: session.created_at,
    )
    return {"sessions": [_session_summary(session) for session in sessions]}


@router.get("/watch", dependencies=[Depends(require_admin)])
async def list_watch(request: Request) -> dict[str, object]:
    """Return resources currently observed empty."""
    container: AppContainer = request.app.state.container
    return {
        "resources": [
            {
                "resource_id": entry.resource_id,
                "namespace": entry.namespace,
                "empty_since": entry.empty_since.isoformat(),
            }
            for entry in container.session_service.watch.entries()
        ]
    }


def _session_summary(session: Session) -> dict[str, object]:
    return {
        "id": session.id,
        "guild_id": session.guild_id,
        "creator_id": session.creator_id,
        "game": session.activity_kind,
        "gamemode": session.activity_mode,
        "status": session.status.value,
        "players": [player.id for player in session.roster],
        "players_needed": session.target_size,
        "voice_channel_id": session.resource_handle,
        "created_at": session.created_at.isoformat(),
        "expires_at": session.expires_at.isoformat(),
    }
