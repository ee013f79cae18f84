"""Membership engine for matchmaking sessions.

State transitions are decided inside ``SessionRegistry.mutate`` callbacks,
which are synchronous and therefore atomic on the event loop. Persistence,
provisioning and presentation calls happen after the decision is made and
never roll it back.
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol

from lfg_coordinator.domain import activities
from lfg_coordinator.domain.outcomes import ActionResult, ErrorKind, SessionError
from lfg_coordinator.domain.sessions import (
    MAX_TARGET_SIZE,
    MIN_TARGET_SIZE,
    SESSION_TTL,
    EndReason,
    Player,
    Session,
    SessionRecord,
    SessionStatus,
)
from lfg_coordinator.services.provisioning import ProvisioningError, ResourceProvisioner
from lfg_coordinator.services.registry import EmptyResourceWatch, SessionRegistry
from lfg_coordinator.services.timers import ExpiryTimers

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Durable mirror of sessions and user pointers."""

    def upsert_session(self, record: SessionRecord) -> None:
        """Insert or overwrite a session record."""

    def fetch_session(self, session_id: str) -> SessionRecord | None:
        """Return a stored session record, if present."""

    def mark_inactive(self, session_id: str) -> None:
        """Soft-delete a session record."""

    def list_active(self) -> list[SessionRecord]:
        """Return all records still flagged active."""

    def set_user_pointer(self, user_id: str, session_id: str) -> None:
        """Point a user at the session they are in."""

    def get_user_pointer(self, user_id: str) -> str | None:
        """Return the session a user points at, if any."""

    def clear_user_pointer(self, user_id: str) -> None:
        """Remove a user's session pointer."""


class StatusPresenter(Protocol):
    """Renders session status where players can see it."""

    async def post_or_update_status(self, session: Session) -> str | None:
        """Post or refresh the status message and return its handle."""

    async def mark_ended(self, session: Session) -> None:
        """Replace the status message with an ended notice."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _roster_unchanged(session: Session, provisioned_for: Session) -> bool:
    """Whether a resource scoped to ``provisioned_for`` still fits the session."""
    return session.status == SessionStatus.FULL and set(session.member_ids()) == set(
        provisioned_for.member_ids()
    )


def new_session_id() -> str:
    """Generate an opaque session id."""
    return secrets.token_hex(12)


@dataclass(frozen=True)
class _JoinDecision:
    snapshot: Session | None = None
    error: SessionError | None = None
    already_joined: bool = False
    became_full: bool = False


@dataclass(frozen=True)
class _Departure:
    snapshot: Session | None = None
    error: SessionError | None = None
    end_reason: EndReason | None = None


@dataclass(frozen=True)
class _Attachment:
    snapshot: Session | None = None
    replaced: str | None = None
    stale: bool = False


_NOT_FOUND = SessionError(
    kind=ErrorKind.NOT_FOUND,
    reason="Session not found!",
    next_action="This session may have expired or been deleted.",
)


@dataclass
class SessionService:
    """Create, join, leave, quick-join and end sessions."""

    registry: SessionRegistry
    store: SessionStore
    provisioner: ResourceProvisioner
    presenter: StatusPresenter
    timers: ExpiryTimers = field(default_factory=ExpiryTimers)
    watch: EmptyResourceWatch = field(default_factory=EmptyResourceWatch)
    ttl: timedelta = SESSION_TTL
    clock: Callable[[], datetime] = _utcnow
    id_factory: Callable[[], str] = new_session_id

    async def create_session(  # noqa: PLR0913
        self,
        user_id: str,
        display_name: str,
        guild_id: str,
        location_id: str,
        activity_kind: str,
        activity_mode: str,
        target_size: int,
        note: str | None = None,
    ) -> ActionResult:
        """Create a session with the requester as its first player."""
        denial = self._busy_denial(user_id)
        if denial is not None:
            return denial
        if not activities.is_valid_mode(activity_kind, activity_mode):
            return ActionResult.denied(
                ErrorKind.INVALID_MODE,
                "Invalid game mode!",
                "Please select a valid game mode for the chosen game.",
            )
        if not MIN_TARGET_SIZE <= target_size <= MAX_TARGET_SIZE:
            return ActionResult.denied(
                ErrorKind.INVALID_TARGET_SIZE,
                f"Player count must be between {MIN_TARGET_SIZE} and "
                f"{MAX_TARGET_SIZE}.",
                "Pick a player count that includes yourself.",
            )
        denial = await self._capability_denial(guild_id)
        if denial is not None:
            return denial
        # The capability check awaited; re-validate before committing.
        denial = self._busy_denial(user_id)
        if denial is not None:
            return denial

        now = self.clock()
        session = Session(
            id=self.id_factory(),
            creator_id=user_id,
            guild_id=guild_id,
            location_id=location_id,
            activity_kind=activity_kind,
            activity_mode=activity_mode,
            target_size=target_size,
            created_at=now,
            updated_at=now,
            expires_at=now + self.ttl,
            roster=[Player(id=user_id, display_name=display_name, joined_at=now)],
            note=note,
        )
        self.registry.create(session)
        self.registry.set_creator(user_id, session.id)
        self._arm_expiry(session.id, session.expires_at)

        warnings: list[ErrorKind] = []
        self._persist(session.snapshot(), warnings)
        self._set_pointer(user_id, session.id, warnings)
        await self._present(session.id, warnings)
        logger.info(
            "Created session %s: %s - %s by %s",
            session.id,
            activities.display_name(activity_kind),
            activity_mode,
            user_id,
        )
        return ActionResult(
            session=self._current(session.id, session), warnings=tuple(warnings)
        )

    async def join_session(
        self, user_id: str, display_name: str, session_id: str
    ) -> ActionResult:
        """Add the user to a session, provisioning once it fills."""
        decision = await self.registry.mutate(
            session_id, lambda session: self._admit(session, user_id, display_name)
        )
        if decision is None:
            return ActionResult(error=_NOT_FOUND)
        if decision.error is not None:
            return ActionResult(error=decision.error)
        if decision.already_joined:
            return ActionResult(session=decision.snapshot, already_joined=True)

        warnings: list[ErrorKind] = []
        self._persist(decision.snapshot, warnings)
        self._set_pointer(user_id, session_id, warnings)
        if decision.became_full:
            logger.info("Session %s is full, provisioning resource", session_id)
            await self._provision(session_id, warnings)
        await self._present(session_id, warnings)
        logger.info("User %s joined session %s", user_id, session_id)
        return ActionResult(
            session=self._current(session_id, decision.snapshot),
            warnings=tuple(warnings),
        )

    async def leave_session(self, user_id: str, session_id: str) -> ActionResult:
        """Remove the user; the session ends if the creator leaves or it empties."""
        departure = await self.registry.mutate(
            session_id, lambda session: self._depart(session, user_id)
        )
        if departure is None:
            return ActionResult(error=_NOT_FOUND)
        if departure.error is not None:
            return ActionResult(error=departure.error)

        warnings: list[ErrorKind] = []
        self._clear_pointer(user_id, warnings)
        if departure.end_reason is not None:
            await self._finish_end(departure.snapshot, departure.end_reason, warnings)
            return ActionResult(session=departure.snapshot, warnings=tuple(warnings))

        self._persist(departure.snapshot, warnings)
        await self._present(session_id, warnings)
        logger.info("User %s left session %s", user_id, session_id)
        return ActionResult(
            session=self._current(session_id, departure.snapshot),
            warnings=tuple(warnings),
        )

    async def quick_join(
        self,
        user_id: str,
        display_name: str,
        guild_id: str,
        activity_kind: str,
        activity_mode: str,
    ) -> ActionResult:
        """Join the oldest open session matching the filters."""
        denial = self._busy_denial(user_id)
        if denial is not None:
            return denial
        candidates = sorted(
            (
                session
                for session in self.registry.list_active()
                if session.guild_id == guild_id
                and session.activity_kind == activity_kind
                and session.activity_mode == activity_mode
                and session.status == SessionStatus.WAITING
                and not session.is_full
            ),
            key=lambda session: session.created_at,
        )
        for candidate in candidates:
            result = await self.join_session(user_id, display_name, candidate.id)
            if result.error is not None and result.error.kind in {
                ErrorKind.SESSION_FULL,
                ErrorKind.NOT_FOUND,
            }:
                continue
            return result
        return ActionResult.denied(
            ErrorKind.NO_AVAILABLE_SESSION,
            f"No available {activities.display_name(activity_kind)} sessions found "
            f"for {activity_mode}!",
            "Create your own session with /lfg or try a different game/mode.",
        )

    async def end_own_session(self, user_id: str) -> ActionResult:
        """End the session the user created."""
        session_id = self.registry.get_creator(user_id)
        if session_id is None:
            return ActionResult.denied(
                ErrorKind.NOT_FOUND,
                "You don't have an active session!",
                "Create a session with /lfg first.",
            )
        ended = await self._end(session_id, EndReason.MANUAL)
        if ended is None:
            self.registry.clear_creator(user_id)
            self._clear_pointer(user_id, [])
            return ActionResult.denied(
                ErrorKind.NOT_FOUND,
                "Session not found!",
                "Your session may have already expired.",
            )
        return ActionResult(session=ended)

    async def end(self, session_id: str, reason: EndReason) -> bool:
        """End a session; ending an absent session is a no-op."""
        return await self._end(session_id, reason) is not None

    def restore(self, session: Session) -> bool:
        """Register a reconciled session without provisioning anything."""
        if self.registry.get(session.id) is not None:
            return False
        self.registry.create(session)
        self.registry.set_creator(session.creator_id, session.id)
        self._arm_expiry(session.id, session.expires_at)
        return True

    def flush(self) -> int:
        """Persist every active session and return how many were written."""
        written = 0
        for session in self.registry.list_active():
            if self._persist(session.snapshot(), []):
                written += 1
        return written

    async def forget_resource(self, resource_handle: str) -> None:
        """Detach a reclaimed resource from whichever session holds it."""
        owner = self.registry.find_by_resource(resource_handle)
        if owner is None:
            return

        def _detach_handle(session: Session) -> Session | None:
            if session.resource_handle != resource_handle:
                return None
            session.resource_handle = None
            session.updated_at = self.clock()
            return session.snapshot()

        updated = await self.registry.mutate(owner.id, _detach_handle)
        if updated is not None:
            warnings: list[ErrorKind] = []
            self._persist(updated, warnings)
            await self._present(owner.id, warnings)

    def _busy_denial(self, user_id: str) -> ActionResult | None:
        busy = self.registry.busy_session(user_id)
        if busy is None:
            return None
        if busy.creator_id == user_id:
            return ActionResult.denied(
                ErrorKind.ALREADY_ACTIVE,
                "You already have an active session!",
                "Use /endlfg to end your current session first.",
            )
        return ActionResult.denied(
            ErrorKind.ALREADY_ACTIVE,
            "You're already in a session: "
            f"{activities.display_name(busy.activity_kind)} - {busy.activity_mode}.",
            "Leave your current session first.",
        )

    async def _capability_denial(self, guild_id: str) -> ActionResult | None:
        try:
            missing = await self.provisioner.missing_capabilities(guild_id)
        except Exception:
            logger.exception("Failed to check capabilities in %s", guild_id)
            return ActionResult.denied(
                ErrorKind.PERMISSION_DENIED,
                "Could not verify the bot's permissions.",
                "Please try again, or ask a server admin to check the bot's role.",
            )
        if not missing:
            return None
        return ActionResult.denied(
            ErrorKind.PERMISSION_DENIED,
            "Bot is missing required permissions: " + ", ".join(missing) + ".",
            "Ask a server admin to grant the bot: " + ", ".join(missing) + ".",
        )

    def _admit(
        self, session: Session, user_id: str, display_name: str
    ) -> _JoinDecision:
        if session.has_member(user_id):
            return _JoinDecision(snapshot=session.snapshot(), already_joined=True)
        if session.is_full:
            return _JoinDecision(
                error=SessionError(
                    kind=ErrorKind.SESSION_FULL,
                    reason="Session is full!",
                    next_action="Look for other sessions or create your own with /lfg.",
                )
            )
        other = self.registry.busy_session(user_id)
        if other is not None and other.id != session.id:
            return _JoinDecision(
                error=SessionError(
                    kind=ErrorKind.ALREADY_ACTIVE,
                    reason="You're already in another session: "
                    f"{activities.display_name(other.activity_kind)} - "
                    f"{other.activity_mode}.",
                    next_action="Leave your current session first to join this one.",
                )
            )
        now = self.clock()
        session.roster.append(
            Player(id=user_id, display_name=display_name, joined_at=now)
        )
        session.updated_at = now
        became_full = session.status == SessionStatus.WAITING and session.is_full
        if became_full:
            session.status = SessionStatus.FULL
        return _JoinDecision(snapshot=session.snapshot(), became_full=became_full)

    def _depart(self, session: Session, user_id: str) -> _Departure:
        if not session.has_member(user_id):
            return _Departure(
                error=SessionError(
                    kind=ErrorKind.NOT_A_MEMBER,
                    reason="You're not in this session!",
                    next_action="You can only leave sessions you've joined.",
                )
            )
        session.roster = [player for player in session.roster if player.id != user_id]
        session.updated_at = self.clock()
        if user_id == session.creator_id:
            return _Departure(
                snapshot=self._detach(session), end_reason=EndReason.CREATOR_LEFT
            )
        if not session.roster:
            return _Departure(
                snapshot=self._detach(session), end_reason=EndReason.EMPTY
            )
        if (
            session.status in {SessionStatus.FULL, SessionStatus.RESOURCE_FAILED}
            and not session.is_full
        ):
            session.status = SessionStatus.WAITING
        return _Departure(snapshot=session.snapshot())

    def _detach(self, session: Session) -> Session:
        """Remove a session from every in-memory index; runs once per session."""
        self.registry.remove(session.id)
        self.timers.cancel(session.id)
        if session.resource_handle:
            self.watch.clear(session.resource_handle)
        session.status = SessionStatus.ENDED
        session.updated_at = self.clock()
        return session.snapshot()

    async def _end(self, session_id: str, reason: EndReason) -> Session | None:
        snapshot = await self.registry.mutate(session_id, self._detach)
        if snapshot is None:
            logger.debug("Session %s already ended", session_id)
            return None
        await self._finish_end(snapshot, reason, [])
        return snapshot

    async def _finish_end(
        self, snapshot: Session, reason: EndReason, warnings: list[ErrorKind]
    ) -> None:
        logger.info("Ending session %s (reason: %s)", snapshot.id, reason.value)
        if snapshot.resource_handle:
            released = await self.provisioner.release(
                snapshot.guild_id, snapshot.resource_handle
            )
            if not released:
                # Left on the watch so the sweep makes one more attempt.
                self.watch.mark_empty(
                    snapshot.resource_handle, snapshot.guild_id, self.clock()
                )
        for member_id in dict.fromkeys([snapshot.creator_id, *snapshot.member_ids()]):
            self._clear_pointer(member_id, warnings)
        try:
            self.store.mark_inactive(snapshot.id)
        except Exception:
            logger.exception("Failed to mark session %s inactive", snapshot.id)
            warnings.append(ErrorKind.PERSISTENCE_FAILED)
        try:
            await self.presenter.mark_ended(snapshot)
        except Exception:
            logger.exception("Failed to mark session %s as ended", snapshot.id)
            warnings.append(ErrorKind.PRESENTATION_FAILED)

    async def _provision(self, session_id: str, warnings: list[ErrorKind]) -> None:
        session = self.registry.get(session_id)
        if session is None:
            return
        snapshot = session.snapshot()
        try:
            handle = await self.provisioner.provision(snapshot)
        except ProvisioningError:
            logger.exception("Resource provisioning failed for session %s", session_id)
            warnings.append(ErrorKind.RESOURCE_PROVISION_FAILED)
            failed = await self.registry.mutate(
                session_id,
                lambda current: self._mark_provision_failed(current, snapshot),
            )
            if failed is not None:
                self._persist(failed, warnings)
            return

        attachment = await self.registry.mutate(
            session_id, lambda current: self._attach_resource(current, snapshot, handle)
        )
        if attachment is None:
            logger.info("Session %s ended while provisioning", session_id)
            await self.provisioner.release(snapshot.guild_id, handle)
            return
        if attachment.stale:
            logger.info(
                "Roster of session %s changed while provisioning, releasing %s",
                session_id,
                handle,
            )
            await self.provisioner.release(snapshot.guild_id, handle)
            return
        self._persist(attachment.snapshot, warnings)
        # Nobody is connected yet.
        self.watch.mark_empty(handle, snapshot.guild_id, self.clock())
        replaced = attachment.replaced
        if replaced and replaced != handle:
            self.watch.clear(replaced)
            await self.provisioner.release(snapshot.guild_id, replaced)

    def _mark_provision_failed(
        self, session: Session, provisioned_for: Session
    ) -> Session | None:
        if not _roster_unchanged(session, provisioned_for):
            return None
        session.status = SessionStatus.RESOURCE_FAILED
        session.updated_at = self.clock()
        return session.snapshot()

    def _attach_resource(
        self, session: Session, provisioned_for: Session, handle: str
    ) -> _Attachment:
        if not _roster_unchanged(session, provisioned_for):
            return _Attachment(stale=True)
        replaced = session.resource_handle
        session.resource_handle = handle
        session.updated_at = self.clock()
        return _Attachment(snapshot=session.snapshot(), replaced=replaced)

    async def _present(self, session_id: str, warnings: list[ErrorKind]) -> None:
        session = self.registry.get(session_id)
        if session is None:
            return
        try:
            handle = await self.presenter.post_or_update_status(session.snapshot())
        except Exception:
            logger.exception("Failed to render status for session %s", session_id)
            warnings.append(ErrorKind.PRESENTATION_FAILED)
            return
        if handle is None:
            return

        def _attach_presentation(current: Session) -> Session | None:
            if current.presentation_handle == handle:
                return None
            current.presentation_handle = handle
            return current.snapshot()

        updated = await self.registry.mutate(session_id, _attach_presentation)
        if updated is not None:
            self._persist(updated, warnings)

    def _arm_expiry(self, session_id: str, expires_at: datetime) -> None:
        delay = (expires_at - self.clock()).total_seconds()
        self.timers.arm(session_id, delay, self._expire)

    async def _expire(self, session_id: str) -> None:
        await self.end(session_id, EndReason.EXPIRED)

    def _current(self, session_id: str, fallback: Session) -> Session:
        session = self.registry.get(session_id)
        return session.snapshot() if session is not None else fallback

    def _persist(self, snapshot: Session, warnings: list[ErrorKind]) -> bool:
        try:
            self.store.upsert_session(SessionRecord.from_session(snapshot))
        except Exception:
            logger.exception("Failed to persist session %s", snapshot.id)
            warnings.append(ErrorKind.PERSISTENCE_FAILED)
            return False
        return True

    def _set_pointer(
        self, user_id: str, session_id: str, warnings: list[ErrorKind]
    ) -> None:
        try:
            self.store.set_user_pointer(user_id, session_id)
        except Exception:
            logger.exception("Failed to store session pointer for %s", user_id)
            warnings.append(ErrorKind.PERSISTENCE_FAILED)

    def _clear_pointer(self, user_id: str, warnings: list[ErrorKind]) -> None:
        try:
            self.store.clear_user_pointer(user_id)
        except Exception:
            logger.exception("Failed to clear session pointer for %s", user_id)
            warnings.append(ErrorKind.PERSISTENCE_FAILED)
