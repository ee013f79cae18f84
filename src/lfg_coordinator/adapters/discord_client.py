"""Discord REST API client adapter."""

from dataclasses import dataclass
from typing import Protocol

import httpx

DEFAULT_API_BASE_URL = "https://discord.com/api/v10"


class DiscordClient(Protocol):
    """Interface for the Discord REST calls the bot makes."""

    async def create_message(
        self, channel_id: str, payload: dict[str, object]
    ) -> dict[str, object]:
        """Post a message to a channel and return it."""

    async def edit_message(
        self, channel_id: str, message_id: str, payload: dict[str, object]
    ) -> dict[str, object]:
        """Edit an existing message and return it."""

    async def list_guild_channels(self, guild_id: str) -> list[dict[str, object]]:
        """Return every channel in a guild."""

    async def create_guild_channel(
        self, guild_id: str, payload: dict[str, object], reason: str | None = None
    ) -> dict[str, object]:
        """Create a channel in a guild and return it."""

    async def delete_channel(
        self, channel_id: str, reason: str | None = None
    ) -> dict[str, object]:
        """Delete a channel and return the deleted channel object."""

    async def get_guild_member(self, guild_id: str, user_id: str) -> dict[str, object]:
        """Return a guild member."""

    async def list_guild_roles(self, guild_id: str) -> list[dict[str, object]]:
        """Return every role in a guild."""

    async def overwrite_global_commands(
        self, application_id: str, commands: list[dict[str, object]]
    ) -> None:
        """Replace the application's global slash commands."""


@dataclass
class HttpxDiscordClient:
    """Discord client implemented with httpx."""

    bot_token: str
    http_client: httpx.AsyncClient
    base_url: str = DEFAULT_API_BASE_URL

    @classmethod
    def create(
        cls, bot_token: str, base_url: str = DEFAULT_API_BASE_URL
    ) -> "HttpxDiscordClient":
        """Create a Discord client with a managed httpx session."""
        return cls(
            bot_token=bot_token,
            http_client=httpx.AsyncClient(),
            base_url=base_url,
        )

    async def create_message(
        self, channel_id: str, payload: dict[str, object]
    ) -> dict[str, object]:
        """Post a message using the create message endpoint."""
        return await self._request(
            "POST", f"/channels/{channel_id}/messages", json=payload
        )

    async def edit_message(
        self, channel_id: str, message_id: str, payload: dict[str, object]
    ) -> dict[str, object]:
        """Edit a message using the edit message endpoint."""
        return await self._request(
            "PATCH", f"/channels/{channel_id}/messages/{message_id}", json=payload
        )

    async def list_guild_channels(self, guild_id: str) -> list[dict[str, object]]:
        """Return guild channels."""
        return await self._request("GET", f"/guilds/{guild_id}/channels")

    async def create_guild_channel(
        self, guild_id: str, payload: dict[str, object], reason: str | None = None
    ) -> dict[str, object]:
        """Create a guild channel."""
        return await self._request(
            "POST", f"/guilds/{guild_id}/channels", json=payload, reason=reason
        )

    async def delete_channel(
        self, channel_id: str, reason: str | None = None
    ) -> dict[str, object]:
        """Delete a channel."""
        return await self._request("DELETE", f"/channels/{channel_id}", reason=reason)

    async def get_guild_member(self, guild_id: str, user_id: str) -> dict[str, object]:
        """Return a guild member."""
        return await self._request("GET", f"/guilds/{guild_id}/members/{user_id}")

    async def list_guild_roles(self, guild_id: str) -> list[dict[str, object]]:
        """Return guild roles."""
        return await self._request("GET", f"/guilds/{guild_id}/roles")

    async def overwrite_global_commands(
        self, application_id: str, commands: list[dict[str, object]]
    ) -> None:
        """Bulk overwrite global application commands."""
        await self._request(
            "PUT", f"/applications/{application_id}/commands", json=commands
        )

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: object | None = None,
        reason: str | None = None,
    ):  # type: ignore[no-untyped-def]
        headers = {"Authorization": f"Bot {self.bot_token}"}
        if reason:
            headers["X-Audit-Log-Reason"] = reason
        response = await self.http_client.request(
            method, f"{self.base_url}{path}", json=json, headers=headers, timeout=10
        )
        response.raise_for_status()
        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return {}
        return response.json()
