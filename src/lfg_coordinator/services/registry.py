"""In-memory session registry and empty-resource watch.

The registry owns the authoritative ``Session`` objects for the live process.
Every roster mutation goes through ``mutate``: the per-session lock is taken,
the session is re-read, and the synchronous callback runs to completion before
any other coroutine can observe the session.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TypeVar

from lfg_coordinator.domain.sessions import Session

T = TypeVar("T")


class SessionRegistry:
    """Active sessions keyed by id, plus the creator index."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._creators: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, session: Session) -> None:
        """Register a new session."""
        if session.id in self._sessions:
            raise ValueError(f"Session {session.id} already registered")
        self._sessions[session.id] = session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Session | None:
        """Drop a session along with its creator entry and lock."""
        session = self._sessions.pop(session_id, None)
        self._locks.pop(session_id, None)
        if session is not None and self._creators.get(session.creator_id) == session_id:
            del self._creators[session.creator_id]
        return session

    def list_active(self) -> list[Session]:
        return list(self._sessions.values())

    def lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def mutate(self, session_id: str, fn: Callable[[Session], T]) -> T | None:
        """Run ``fn`` against the session under its lock.

        Returns None without calling ``fn`` when the session is absent, which
        includes the case where it was removed while we waited for the lock.
        """
        if session_id not in self._sessions:
            return None
        async with self.lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                return None
            return fn(session)

    def set_creator(self, user_id: str, session_id: str) -> None:
        self._creators[user_id] = session_id

    def get_creator(self, user_id: str) -> str | None:
        return self._creators.get(user_id)

    def clear_creator(self, user_id: str) -> None:
        self._creators.pop(user_id, None)

    def member_session(self, user_id: str) -> Session | None:
        """Return the session whose roster contains the user, if any."""
        for session in self._sessions.values():
            if session.has_member(user_id):
                return session
        return None

    def busy_session(self, user_id: str) -> Session | None:
        """Return the session the user created or belongs to, if any."""
        created = self._creators.get(user_id)
        if created is not None and created in self._sessions:
            return self._sessions[created]
        return self.member_session(user_id)

    def is_user_busy(self, user_id: str) -> bool:
        return self.busy_session(user_id) is not None

    def find_by_resource(self, resource_handle: str) -> Session | None:
        for session in self._sessions.values():
            if session.resource_handle == resource_handle:
                return session
        return None


@dataclass(frozen=True)
class WatchEntry:
    """A provisioned resource observed with zero occupants."""

    resource_id: str
    namespace: str
    empty_since: datetime


class EmptyResourceWatch:
    """Resources that went empty, keyed by resource id."""

    def __init__(self) -> None:
        self._entries: dict[str, WatchEntry] = {}

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def mark_empty(self, resource_id: str, namespace: str, now: datetime) -> None:
        """Start watching a resource; repeated reports keep the first timestamp."""
        if resource_id not in self._entries:
            self._entries[resource_id] = WatchEntry(resource_id, namespace, now)

    def clear(self, resource_id: str) -> bool:
        return self._entries.pop(resource_id, None) is not None

    def entries(self) -> list[WatchEntry]:
        return list(self._entries.values())

    def idle_since(self, now: datetime, threshold: timedelta) -> list[WatchEntry]:
        """Return entries that have been empty longer than the threshold."""
        return [
            entry
            for entry in self._entries.values()
            if now - entry.empty_since > threshold
        ]
