"""Discord voice channels as scoped session resources."""

import logging
from dataclasses import dataclass

import httpx

from lfg_coordinator.adapters.discord_client import DiscordClient
from lfg_coordinator.adapters.voice_occupancy import VoiceOccupancy
from lfg_coordinator.services.provisioning import ResourceBackend, grouping_name

logger = logging.getLogger(__name__)

ADMINISTRATOR = 1 << 3
MANAGE_CHANNELS = 1 << 4
VIEW_CHANNEL = 1 << 10
CONNECT = 1 << 20

REQUIRED_PERMISSIONS: tuple[tuple[str, int], ...] = (
    ("Manage Channels", MANAGE_CHANNELS),
    ("Connect", CONNECT),
)

CATEGORY_CHANNEL = 4
VOICE_CHANNEL = 2
ROLE_OVERWRITE = 0
MEMBER_OVERWRITE = 1


@dataclass
class DiscordVoiceBackend(ResourceBackend):
    """Private voice channels grouped under one category per game."""

    client: DiscordClient
    occupancy: VoiceOccupancy
    bot_user_id: str

    async def missing_capabilities(self, namespace: str) -> list[str]:
        """Resolve the bot's guild permissions from its roles."""
        member = await self.client.get_guild_member(namespace, self.bot_user_id)
        roles = await self.client.list_guild_roles(namespace)
        # The @everyone role shares the guild id.
        role_ids = {str(role_id) for role_id in member.get("roles", [])} | {namespace}
        permissions = 0
        for role in roles:
            if str(role.get("id")) in role_ids:
                permissions |= int(role.get("permissions", 0))
        if permissions & ADMINISTRATOR:
            return []
        return [name for name, bit in REQUIRED_PERMISSIONS if not permissions & bit]

    async def ensure_grouping_exists(self, namespace: str, activity_kind: str) -> str:
        """Find the game's category case-insensitively or create it."""
        name = grouping_name(activity_kind)
        for channel in await self.client.list_guild_channels(namespace):
            if (
                channel.get("type") == CATEGORY_CHANNEL
                and str(channel.get("name", "")).lower() == name.lower()
            ):
                return str(channel["id"])
        logger.info("Creating category %s in %s", name, namespace)
        category = await self.client.create_guild_channel(
            namespace,
            {"name": name, "type": CATEGORY_CHANNEL},
            reason="LFG: game category for voice channels",
        )
        return str(category["id"])

    async def create_scoped_resource(
        self,
        namespace: str,
        grouping: str,
        name: str,
        allowed_member_ids: list[str],
    ) -> str:
        """Create a voice channel only the roster and the bot can see."""
        member_access = str(VIEW_CHANNEL | CONNECT)
        overwrites: list[dict[str, object]] = [
            {
                "id": namespace,
                "type": ROLE_OVERWRITE,
                "deny": member_access,
            },
            {
                "id": self.bot_user_id,
                "type": MEMBER_OVERWRITE,
                "allow": str(VIEW_CHANNEL | CONNECT | MANAGE_CHANNELS),
            },
        ]
        overwrites.extend(
            {"id": member_id, "type": MEMBER_OVERWRITE, "allow": member_access}
            for member_id in allowed_member_ids
        )
        channel = await self.client.create_guild_channel(
            namespace,
            {
                "name": name,
                "type": VOICE_CHANNEL,
                "parent_id": grouping,
                "permission_overwrites": overwrites,
            },
            reason="LFG: private voice channel for a full session",
        )
        return str(channel["id"])

    async def delete_resource(self, resource_handle: str) -> str | None:
        """Delete the voice channel; an already deleted channel is not an error."""
        try:
            channel = await self.client.delete_channel(
                resource_handle, reason="LFG: session voice channel cleanup"
            )
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code != httpx.codes.NOT_FOUND:
                raise
            channel = {}
        self.occupancy.forget_channel(resource_handle)
        parent_id = channel.get("parent_id")
        return str(parent_id) if parent_id else None

    async def delete_grouping_if_empty(self, namespace: str, grouping: str) -> bool:
        """Delete the category when no channels remain under it."""
        channels = await self.client.list_guild_channels(namespace)
        if any(str(channel.get("parent_id")) == grouping for channel in channels):
            return False
        await self.client.delete_channel(grouping, reason="LFG: empty game category")
        logger.info("Deleted empty category %s", grouping)
        return True

    async def current_occupant_count(self, resource_handle: str) -> int:
        return self.occupancy.count(resource_handle)
