"""Result values returned by session actions."""

from dataclasses import dataclass
from enum import Enum

from lfg_coordinator.domain.sessions import Session


class ErrorKind(str, Enum):
    """Reasons an action can be denied or degraded."""

    ALREADY_ACTIVE = "already_active"
    NOT_FOUND = "not_found"
    NOT_A_MEMBER = "not_a_member"
    SESSION_FULL = "session_full"
    INVALID_MODE = "invalid_mode"
    INVALID_TARGET_SIZE = "invalid_target_size"
    PERMISSION_DENIED = "permission_denied"
    NO_AVAILABLE_SESSION = "no_available_session"
    RESOURCE_PROVISION_FAILED = "resource_provision_failed"
    PERSISTENCE_FAILED = "persistence_failed"
    PRESENTATION_FAILED = "presentation_failed"


@dataclass(frozen=True)
class SessionError:
    """A user-facing denial with an optional next step."""

    kind: ErrorKind
    reason: str
    next_action: str | None = None


@dataclass(frozen=True)
class ActionResult:
    """Outcome of an inbound session action."""

    session: Session | None = None
    error: SessionError | None = None
    already_joined: bool = False
    warnings: tuple[ErrorKind, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def denied(
        cls, kind: ErrorKind, reason: str, next_action: str | None = None
    ) -> "ActionResult":
        return cls(
            error=SessionError(kind=kind, reason=reason, next_action=next_action)
        )
