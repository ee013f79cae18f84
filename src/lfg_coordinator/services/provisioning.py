"""Scoped voice resource provisioning.

The engine decides when a resource is created or reclaimed; the backend only
executes the platform calls.
"""

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from lfg_coordinator.domain.activities import display_name
from lfg_coordinator.domain.sessions import Session

logger = logging.getLogger(__name__)

_MAX_NAME_LENGTH = 100
_UNSAFE_CHARS = re.compile(r"[^a-z0-9-]")


class ProvisioningError(RuntimeError):
    """Raised when a scoped resource could not be created."""


class ResourceBackend(Protocol):
    """Platform operations for voice resources."""

    async def missing_capabilities(self, namespace: str) -> list[str]:
        """Return the capabilities the bot lacks in the namespace."""

    async def ensure_grouping_exists(self, namespace: str, activity_kind: str) -> str:
        """Return the grouping for an activity kind, creating it if needed."""

    async def create_scoped_resource(
        self,
        namespace: str,
        grouping: str,
        name: str,
        allowed_member_ids: list[str],
    ) -> str:
        """Create a resource only the given members can access."""

    async def delete_resource(self, resource_handle: str) -> str | None:
        """Delete a resource and return its grouping, if it had one."""

    async def delete_grouping_if_empty(self, namespace: str, grouping: str) -> bool:
        """Delete the grouping when nothing is left in it."""

    async def current_occupant_count(self, resource_handle: str) -> int:
        """Return how many users are connected to the resource."""


def grouping_name(activity_kind: str) -> str:
    """Build the name of the per-activity grouping."""
    return f"🎮 {display_name(activity_kind)}"[:_MAX_NAME_LENGTH]


def resource_name(activity_kind: str, activity_mode: str, session_id: str) -> str:
    """Build a platform-safe resource name for a session."""
    raw = f"{activity_kind}-{activity_mode}-{session_id[-6:]}".lower()
    return _UNSAFE_CHARS.sub("", raw)[:_MAX_NAME_LENGTH]


@dataclass
class ResourceProvisioner:
    """Creates and releases scoped resources for full sessions."""

    backend: ResourceBackend

    async def missing_capabilities(self, namespace: str) -> list[str]:
        return await self.backend.missing_capabilities(namespace)

    async def provision(self, session: Session) -> str:
        """Create a resource scoped to the session roster."""
        members = session.member_ids()
        if not members:
            raise ProvisioningError(f"Session {session.id} has no members")
        try:
            grouping = await self.backend.ensure_grouping_exists(
                session.guild_id, session.activity_kind
            )
            handle = await self.backend.create_scoped_resource(
                session.guild_id,
                grouping,
                resource_name(session.activity_kind, session.activity_mode, session.id),
                members,
            )
        except Exception as exc:
            raise ProvisioningError(
                f"Failed to provision resource for session {session.id}"
            ) from exc
        logger.info("Provisioned resource %s for session %s", handle, session.id)
        return handle

    async def release(self, namespace: str, resource_handle: str) -> bool:
        """Delete a resource and its grouping if now empty; never raises."""
        try:
            grouping = await self.backend.delete_resource(resource_handle)
        except Exception:
            logger.exception("Failed to delete resource %s", resource_handle)
            return False
        if grouping:
            try:
                await self.backend.delete_grouping_if_empty(namespace, grouping)
            except Exception:
                logger.exception("Failed to clean up grouping %s", grouping)
        logger.info("Released resource %s", resource_handle)
        return True

    async def occupant_count(self, resource_handle: str) -> int:
        return await self.backend.current_occupant_count(resource_handle)
