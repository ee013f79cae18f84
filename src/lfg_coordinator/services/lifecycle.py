"""Periodic sweep: session expiry and idle resource reclamation."""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from lfg_coordinator.domain.sessions import EndReason
from lfg_coordinator.services.provisioning import ResourceProvisioner
from lfg_coordinator.services.registry import EmptyResourceWatch, SessionRegistry
from lfg_coordinator.services.sessions import SessionService

logger = logging.getLogger(__name__)

EMPTY_RESOURCE_IDLE = timedelta(seconds=60)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class SweepReport:
    """What a single sweep pass did."""

    expired: list[str] = field(default_factory=list)
    reclaimed: list[str] = field(default_factory=list)


@dataclass
class LifecycleScheduler:
    """Expires stale sessions and deletes resources left empty."""

    session_service: SessionService
    idle_threshold: timedelta = EMPTY_RESOURCE_IDLE
    interval_seconds: float = 60.0
    clock: Callable[[], datetime] = _utcnow
    _task: asyncio.Task | None = field(default=None, init=False, repr=False)

    @property
    def registry(self) -> SessionRegistry:
        return self.session_service.registry

    @property
    def watch(self) -> EmptyResourceWatch:
        return self.session_service.watch

    @property
    def provisioner(self) -> ResourceProvisioner:
        return self.session_service.provisioner

    async def tick(self) -> SweepReport:
        """Run one sweep pass."""
        now = self.clock()
        expired = await self.expire_stale(now)
        reclaimed = await self.reclaim_idle(now)
        if expired or reclaimed:
            logger.info(
                "Sweep expired %d sessions and reclaimed %d resources",
                len(expired),
                len(reclaimed),
            )
        return SweepReport(expired=expired, reclaimed=reclaimed)

    async def expire_stale(self, now: datetime) -> list[str]:
        """End every session older than the TTL."""
        ttl = self.session_service.ttl
        stale = [
            session.id
            for session in self.registry.list_active()
            if session.age(now) > ttl
        ]
        expired = []
        for session_id in stale:
            if await self.session_service.end(session_id, EndReason.EXPIRED):
                expired.append(session_id)
        return expired

    async def reclaim_idle(self, now: datetime) -> list[str]:
        """Delete resources that stayed empty past the idle threshold."""
        reclaimed = []
        for entry in self.watch.idle_since(now, self.idle_threshold):
            try:
                occupants = await self.provisioner.occupant_count(entry.resource_id)
            except Exception:
                logger.exception("Failed to read occupancy of %s", entry.resource_id)
                self.watch.clear(entry.resource_id)
                continue
            if entry.resource_id not in self.watch:
                # An occupancy update arrived while we were waiting.
                continue
            self.watch.clear(entry.resource_id)
            if occupants > 0:
                continue
            logger.info("Reclaiming empty resource %s", entry.resource_id)
            if await self.provisioner.release(entry.namespace, entry.resource_id):
                reclaimed.append(entry.resource_id)
                await self.session_service.forget_resource(entry.resource_id)
        return reclaimed

    def on_occupancy_change(
        self, namespace: str, resource_id: str, occupant_count: int
    ) -> None:
        """Track resources that went empty and stop tracking refilled ones."""
        if occupant_count > 0:
            self.watch.clear(resource_id)
            return
        if resource_id in self.watch or self.registry.find_by_resource(resource_id):
            self.watch.mark_empty(resource_id, namespace, self.clock())

    def start(self) -> None:
        """Start the background sweep loop if an interval is configured."""
        if self.interval_seconds <= 0 or self._task is not None:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.tick()
            except Exception:
                logger.exception("Sweep failed")
