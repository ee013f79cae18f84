"""Startup reconciliation of durable session records."""

import logging
from dataclasses import dataclass, field

from lfg_coordinator.domain.sessions import Session, SessionRecord, SessionStatus
from lfg_coordinator.services.sessions import SessionService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileReport:
    """Outcome of a reconciliation pass."""

    restored: list[str] = field(default_factory=list)
    discarded: list[str] = field(default_factory=list)


@dataclass
class RestartReconciler:
    """Rebuilds the registry from the store after a process restart.

    Restored sessions keep their resource handle as stored and get an expiry
    timer for the time they have left; nothing is provisioned or rendered.
    """

    session_service: SessionService

    async def reconcile(self) -> ReconcileReport:
        store = self.session_service.store
        try:
            records = store.list_active()
        except Exception:
            logger.exception("Failed to load active sessions")
            return ReconcileReport()
        logger.info("Found %d active sessions in the store", len(records))

        now = self.session_service.clock()
        ttl = self.session_service.ttl
        restored: list[str] = []
        discarded: list[str] = []
        for record in sorted(records, key=lambda item: item.created_at):
            if now - record.created_at > ttl:
                self._discard(record.id)
                discarded.append(record.id)
                continue
            session = self._without_conflicts(record.to_session())
            if session is None:
                self._discard(record.id)
                discarded.append(record.id)
                continue
            if not self.session_service.restore(session):
                continue
            try:
                store.upsert_session(SessionRecord.from_session(session))
            except Exception:
                logger.exception("Failed to persist restored session %s", session.id)
            for member_id in session.member_ids():
                try:
                    store.set_user_pointer(member_id, session.id)
                except Exception:
                    logger.exception("Failed to restore pointer for %s", member_id)
            restored.append(session.id)

        logger.info(
            "Session restoration complete: restored %d, cleaned %d",
            len(restored),
            len(discarded),
        )
        return ReconcileReport(restored=restored, discarded=discarded)

    def _without_conflicts(self, session: Session) -> Session | None:
        """Drop players already placed in an earlier restored session."""
        registry = self.session_service.registry
        if registry.is_user_busy(session.creator_id):
            logger.warning(
                "Discarding session %s: creator %s already has a session",
                session.id,
                session.creator_id,
            )
            return None
        session.roster = [
            player
            for player in session.roster
            if player.id == session.creator_id or not registry.is_user_busy(player.id)
        ]
        if session.status != SessionStatus.WAITING and not session.is_full:
            session.status = SessionStatus.WAITING
        return session

    def _discard(self, session_id: str) -> None:
        try:
            self.session_service.store.mark_inactive(session_id)
        except Exception:
            logger.exception("Failed to mark session %s inactive", session_id)
