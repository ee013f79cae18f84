"""Tests for startup reconciliation."""

import asyncio
from datetime import timedelta

from lfg_coordinator.domain.sessions import Player, SessionRecord, SessionStatus
from lfg_coordinator.services.reconciler import RestartReconciler
from lfg_coordinator.services.sessions import SessionService
from tests.conftest import (
    START,
    FakeClock,
    FakePresenter,
    FakeResourceBackend,
    InMemorySessionStore,
    make_service,
)


def _record(  # noqa: PLR0913
    session_id: str,
    creator_id: str,
    members: tuple[str, ...] = (),
    age: timedelta = timedelta(minutes=5),
    status: str = "waiting",
    size: int = 4,
    resource_handle: str | None = None,
) -> SessionRecord:
    created_at = START - age
    return SessionRecord(
        id=session_id,
        creator_id=creator_id,
        guild_id="guild-1",
        location_id="channel-1",
        activity_kind="apexlegends",
        activity_mode="Trios",
        target_size=size,
        status=status,
        roster=tuple(
            Player(id=user_id, display_name=user_id, joined_at=created_at)
            for user_id in (creator_id, *members)
        ),
        created_at=created_at,
        updated_at=created_at,
        expires_at=created_at + timedelta(minutes=20),
        resource_handle=resource_handle,
    )


def test_reconcile_restores_live_sessions(
    session_service: SessionService,
    store: InMemorySessionStore,
    backend: FakeResourceBackend,
    presenter: FakePresenter,
) -> None:
    store.records["live"] = _record(
        "live", "alice", ("bob",), size=2, status="full", resource_handle="voice-9"
    )
    store.records["stale"] = _record("stale", "carol", age=timedelta(minutes=25))

    async def scenario():
        report = await RestartReconciler(session_service).reconcile()
        return report, "live" in session_service.timers

    report, armed = asyncio.run(scenario())

    assert report.restored == ["live"]
    assert report.discarded == ["stale"]
    restored = session_service.registry.get("live")
    assert restored.status == SessionStatus.FULL
    assert restored.resource_handle == "voice-9"
    assert session_service.registry.get_creator("alice") == "live"
    assert store.pointers == {"alice": "live", "bob": "live"}
    assert store.inactive == ["stale"]
    assert armed
    assert backend.created == []
    assert presenter.rendered == []


def test_reconcile_resolves_conflicting_memberships(
    session_service: SessionService, store: InMemorySessionStore
) -> None:
    store.records["older"] = _record(
        "older", "alice", ("bob",), age=timedelta(minutes=10)
    )
    store.records["newer"] = _record(
        "newer", "carol", ("bob", "dave"), age=timedelta(minutes=5)
    )
    store.records["duplicate"] = _record(
        "duplicate", "alice", age=timedelta(minutes=2)
    )

    report = asyncio.run(RestartReconciler(session_service).reconcile())

    assert report.restored == ["older", "newer"]
    assert report.discarded == ["duplicate"]
    assert session_service.registry.get("newer").member_ids() == ["carol", "dave"]


def test_reconcile_reopens_sessions_below_capacity(
    session_service: SessionService, store: InMemorySessionStore
) -> None:
    store.records["older"] = _record(
        "older", "alice", ("bob",), age=timedelta(minutes=10)
    )
    store.records["full"] = _record(
        "full", "carol", ("bob",), size=2, status="full"
    )

    asyncio.run(RestartReconciler(session_service).reconcile())

    restored = session_service.registry.get("full")
    assert restored.member_ids() == ["carol"]
    assert restored.status == SessionStatus.WAITING


def test_reconcile_survives_store_outage(clock: FakeClock) -> None:
    class BrokenStore(InMemorySessionStore):
        def list_active(self) -> list[SessionRecord]:
            raise RuntimeError("store unavailable")

    service = make_service(store=BrokenStore(), clock=clock)

    report = asyncio.run(RestartReconciler(service).reconcile())

    assert report.restored == []
    assert len(service.registry) == 0


def test_reconcile_arms_timer_for_remaining_time(
    session_service: SessionService, store: InMemorySessionStore
) -> None:
    store.records["aged"] = _record("aged", "alice", age=timedelta(minutes=15))

    async def scenario():
        await RestartReconciler(session_service).reconcile()
        return session_service.timers.remaining_seconds("aged")

    remaining = asyncio.run(scenario())

    assert remaining is not None
    assert 295 < remaining <= 300


def test_reconcile_persists_adjusted_sessions(
    session_service: SessionService, store: InMemorySessionStore
) -> None:
    store.records["older"] = _record(
        "older", "alice", ("bob",), age=timedelta(minutes=10)
    )
    store.records["full"] = _record(
        "full", "carol", ("bob",), size=2, status="full"
    )

    asyncio.run(RestartReconciler(session_service).reconcile())

    stored = store.records["full"]
    assert stored.status == "waiting"
    assert [player.id for player in stored.roster] == ["carol"]
    assert stored.active


def test_reconcile_tolerates_write_failures(
    session_service: SessionService, store: InMemorySessionStore
) -> None:
    store.records["live"] = _record("live", "alice")
    store.fail_writes = True

    report = asyncio.run(RestartReconciler(session_service).reconcile())

    assert report.restored == ["live"]
    assert session_service.registry.get("live") is not None
