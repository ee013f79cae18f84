"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from supabase import create_client

from lfg_coordinator.adapters.discord_client import DiscordClient, HttpxDiscordClient
from lfg_coordinator.adapters.discord_status_presenter import DiscordStatusPresenter
from lfg_coordinator.adapters.discord_voice_backend import DiscordVoiceBackend
from lfg_coordinator.adapters.supabase_session_store import SupabaseSessionStore
from lfg_coordinator.adapters.voice_occupancy import VoiceOccupancy
from lfg_coordinator.config import Settings
from lfg_coordinator.services.lifecycle import LifecycleScheduler
from lfg_coordinator.services.provisioning import ResourceProvisioner
from lfg_coordinator.services.reconciler import RestartReconciler
from lfg_coordinator.services.registry import SessionRegistry
from lfg_coordinator.services.sessions import SessionService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    discord_client: DiscordClient
    voice_occupancy: VoiceOccupancy
    session_service: SessionService
    lifecycle: LifecycleScheduler
    reconciler: RestartReconciler
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    store = SupabaseSessionStore(supabase_client)
    discord_client = HttpxDiscordClient.create(
        resolved_settings.discord_bot_token,
        base_url=resolved_settings.discord_api_base_url,
    )
    voice_occupancy = VoiceOccupancy()
    backend = DiscordVoiceBackend(
        client=discord_client,
        occupancy=voice_occupancy,
        bot_user_id=resolved_settings.discord_application_id,
    )
    session_service = SessionService(
        registry=SessionRegistry(),
        store=store,
        provisioner=ResourceProvisioner(backend),
        presenter=DiscordStatusPresenter(discord_client),
        ttl=timedelta(minutes=resolved_settings.session_ttl_minutes),
    )
    lifecycle = LifecycleScheduler(
        session_service=session_service,
        idle_threshold=timedelta(seconds=resolved_settings.empty_resource_idle_seconds),
        interval_seconds=resolved_settings.sweep_interval_seconds,
    )
    reconciler = RestartReconciler(session_service)

    async def close_resources() -> None:
        await discord_client.close()

    return AppContainer(
        settings=resolved_settings,
        discord_client=discord_client,
        voice_occupancy=voice_occupancy,
        session_service=session_service,
        lifecycle=lifecycle,
        reconciler=reconciler,
        close_resources=close_resources,
    )
