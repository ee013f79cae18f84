"""Per-session expiry timers on the running event loop."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[str], Awaitable[object]]


class ExpiryTimers:
    """One pending timer per session id."""

    def __init__(self) -> None:
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def arm(
        self, session_id: str, delay_seconds: float, callback: ExpiryCallback
    ) -> None:
        """Schedule ``callback(session_id)``, replacing any pending timer."""
        self.cancel(session_id)
        loop = asyncio.get_running_loop()
        self._handles[session_id] = loop.call_later(
            max(delay_seconds, 0.0), self._fire, session_id, callback
        )

    def remaining_seconds(self, session_id: str) -> float | None:
        """Seconds until the pending timer fires, or None when nothing is armed."""
        handle = self._handles.get(session_id)
        if handle is None:
            return None
        return max(handle.when() - asyncio.get_running_loop().time(), 0.0)

    def cancel(self, session_id: str) -> bool:
        handle = self._handles.pop(session_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def _fire(self, session_id: str, callback: ExpiryCallback) -> None:
        self._handles.pop(session_id, None)
        task = asyncio.ensure_future(callback(session_id))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Expiry callback failed", exc_info=error)
