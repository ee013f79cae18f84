"""Shared test fixtures."""

import asyncio
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta

import pytest

from lfg_coordinator.adapters.discord_client import DiscordClient
from lfg_coordinator.adapters.voice_occupancy import VoiceOccupancy
from lfg_coordinator.config import Settings
from lfg_coordinator.containers import AppContainer
from lfg_coordinator.domain.sessions import Session, SessionRecord
from lfg_coordinator.services.lifecycle import LifecycleScheduler
from lfg_coordinator.services.provisioning import ResourceBackend, ResourceProvisioner
from lfg_coordinator.services.reconciler import RestartReconciler
from lfg_coordinator.services.registry import SessionRegistry
from lfg_coordinator.services.sessions import (
    SessionService,
    SessionStore,
    StatusPresenter,
)

START = datetime(2024, 5, 1, 18, 0, tzinfo=UTC)


@dataclass
class FakeClock:
    """Manually advanced clock."""

    now: datetime = START

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def sequential_ids(prefix: str = "session") -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter):06d}"


@dataclass
class InMemorySessionStore(SessionStore):
    """In-memory session store for tests."""

    records: dict[str, SessionRecord] = field(default_factory=dict)
    pointers: dict[str, str] = field(default_factory=dict)
    inactive: list[str] = field(default_factory=list)
    writes: list[SessionRecord] = field(default_factory=list)
    fail_writes: bool = False

    def upsert_session(self, record: SessionRecord) -> None:
        if self.fail_writes:
            raise RuntimeError("store unavailable")
        self.records[record.id] = record
        self.writes.append(record)

    def fetch_session(self, session_id: str) -> SessionRecord | None:
        return self.records.get(session_id)

    def mark_inactive(self, session_id: str) -> None:
        if self.fail_writes:
            raise RuntimeError("store unavailable")
        self.inactive.append(session_id)
        record = self.records.get(session_id)
        if record is not None:
            self.records[session_id] = replace(record, active=False)

    def list_active(self) -> list[SessionRecord]:
        return [record for record in self.records.values() if record.active]

    def set_user_pointer(self, user_id: str, session_id: str) -> None:
        if self.fail_writes:
            raise RuntimeError("store unavailable")
        self.pointers[user_id] = session_id

    def get_user_pointer(self, user_id: str) -> str | None:
        return self.pointers.get(user_id)

    def clear_user_pointer(self, user_id: str) -> None:
        if self.fail_writes:
            raise RuntimeError("store unavailable")
        self.pointers.pop(user_id, None)


@dataclass
class FakeResourceBackend(ResourceBackend):
    """Fake platform backend that records resource calls."""

    missing: list[str] = field(default_factory=list)
    capability_error: Exception | None = None
    fail_create: bool = False
    fail_delete: set[str] = field(default_factory=set)
    create_gate: asyncio.Event | None = None
    groupings: dict[tuple[str, str], str] = field(default_factory=dict)
    resources: dict[str, str] = field(default_factory=dict)
    created: list[tuple[str, str, list[str]]] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    deleted_groupings: list[str] = field(default_factory=list)
    occupants: dict[str, int] = field(default_factory=dict)
    _counter: int = 0

    async def missing_capabilities(self, namespace: str) -> list[str]:
        if self.capability_error is not None:
            raise self.capability_error
        return list(self.missing)

    async def ensure_grouping_exists(self, namespace: str, activity_kind: str) -> str:
        key = (namespace, activity_kind)
        if key not in self.groupings:
            self.groupings[key] = f"category-{activity_kind}"
        return self.groupings[key]

    async def create_scoped_resource(
        self,
        namespace: str,
        grouping: str,
        name: str,
        allowed_member_ids: list[str],
    ) -> str:
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.fail_create:
            raise RuntimeError("missing permissions")
        self._counter += 1
        handle = f"voice-{self._counter}"
        self.resources[handle] = grouping
        self.created.append((handle, name, list(allowed_member_ids)))
        return handle

    async def delete_resource(self, resource_handle: str) -> str | None:
        if resource_handle in self.fail_delete:
            raise RuntimeError("delete failed")
        self.deleted.append(resource_handle)
        return self.resources.pop(resource_handle, None)

    async def delete_grouping_if_empty(self, namespace: str, grouping: str) -> bool:
        if grouping in self.resources.values():
            return False
        self.deleted_groupings.append(grouping)
        return True

    async def current_occupant_count(self, resource_handle: str) -> int:
        return self.occupants.get(resource_handle, 0)


@dataclass
class FakePresenter(StatusPresenter):
    """Fake presenter that records rendered sessions."""

    rendered: list[Session] = field(default_factory=list)
    ended: list[Session] = field(default_factory=list)
    fail: bool = False
    _counter: int = 0

    async def post_or_update_status(self, session: Session) -> str | None:
        if self.fail:
            raise RuntimeError("discord unavailable")
        self.rendered.append(session)
        if session.presentation_handle:
            return session.presentation_handle
        self._counter += 1
        return f"message-{self._counter}"

    async def mark_ended(self, session: Session) -> None:
        if self.fail:
            raise RuntimeError("discord unavailable")
        self.ended.append(session)


@dataclass
class FakeDiscordClient(DiscordClient):
    """Fake Discord client that records REST calls."""

    channels: list[dict[str, object]] = field(default_factory=list)
    member: dict[str, object] = field(default_factory=lambda: {"roles": []})
    roles: list[dict[str, object]] = field(default_factory=list)
    messages: list[tuple[str, dict[str, object]]] = field(default_factory=list)
    edits: list[tuple[str, str, dict[str, object]]] = field(default_factory=list)
    created_channels: list[tuple[dict[str, object], str | None]] = field(
        default_factory=list
    )
    deleted_channels: list[str] = field(default_factory=list)
    commands: list[dict[str, object]] | None = None
    edit_error: Exception | None = None
    commands_error: Exception | None = None
    closed: bool = False
    _counter: int = 0

    async def create_message(
        self, channel_id: str, payload: dict[str, object]
    ) -> dict[str, object]:
        self._counter += 1
        self.messages.append((channel_id, payload))
        return {"id": f"message-{self._counter}", "channel_id": channel_id}

    async def edit_message(
        self, channel_id: str, message_id: str, payload: dict[str, object]
    ) -> dict[str, object]:
        if self.edit_error is not None:
            raise self.edit_error
        self.edits.append((channel_id, message_id, payload))
        return {"id": message_id, "channel_id": channel_id}

    async def list_guild_channels(self, guild_id: str) -> list[dict[str, object]]:
        return list(self.channels)

    async def create_guild_channel(
        self, guild_id: str, payload: dict[str, object], reason: str | None = None
    ) -> dict[str, object]:
        self._counter += 1
        channel = {"id": f"channel-{self._counter}", "guild_id": guild_id, **payload}
        self.channels.append(channel)
        self.created_channels.append((payload, reason))
        return channel

    async def delete_channel(
        self, channel_id: str, reason: str | None = None
    ) -> dict[str, object]:
        self.deleted_channels.append(channel_id)
        for channel in self.channels:
            if channel["id"] == channel_id:
                self.channels.remove(channel)
                return channel
        return {"id": channel_id}

    async def get_guild_member(self, guild_id: str, user_id: str) -> dict[str, object]:
        return self.member

    async def list_guild_roles(self, guild_id: str) -> list[dict[str, object]]:
        return list(self.roles)

    async def overwrite_global_commands(
        self, application_id: str, commands: list[dict[str, object]]
    ) -> None:
        if self.commands_error is not None:
            raise self.commands_error
        self.commands = commands

    async def close(self) -> None:
        self.closed = True


def make_service(
    store: InMemorySessionStore | None = None,
    backend: FakeResourceBackend | None = None,
    presenter: FakePresenter | None = None,
    clock: FakeClock | None = None,
) -> SessionService:
    return SessionService(
        registry=SessionRegistry(),
        store=store or InMemorySessionStore(),
        provisioner=ResourceProvisioner(backend or FakeResourceBackend()),
        presenter=presenter or FakePresenter(),
        clock=clock or FakeClock(),
        id_factory=sequential_ids(),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        discord_bot_token="bot-token",
        discord_application_id="app-1",
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        admin_token="admin-token",
        relay_token="relay-token",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def backend() -> FakeResourceBackend:
    return FakeResourceBackend()


@pytest.fixture
def presenter() -> FakePresenter:
    return FakePresenter()


@pytest.fixture
def discord_client() -> FakeDiscordClient:
    return FakeDiscordClient()


@pytest.fixture
def session_service(
    store: InMemorySessionStore,
    backend: FakeResourceBackend,
    presenter: FakePresenter,
    clock: FakeClock,
) -> SessionService:
    return make_service(store, backend, presenter, clock)


@pytest.fixture
def container(
    settings: Settings,
    session_service: SessionService,
    discord_client: FakeDiscordClient,
    clock: FakeClock,
) -> AppContainer:
    lifecycle = LifecycleScheduler(
        session_service=session_service, interval_seconds=0, clock=clock
    )

    async def close_resources() -> None:
        await discord_client.close()

    return AppContainer(
        settings=settings,
        discord_client=discord_client,
        voice_occupancy=VoiceOccupancy(),
        session_service=session_service,
        lifecycle=lifecycle,
        reconciler=RestartReconciler(session_service),
        close_resources=close_resources,
    )
