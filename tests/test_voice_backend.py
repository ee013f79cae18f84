"""Tests for the Discord voice channel backend."""

import asyncio

import httpx
import pytest

from lfg_coordinator.adapters.discord_voice_backend import (
    ADMINISTRATOR,
    CONNECT,
    MANAGE_CHANNELS,
    VIEW_CHANNEL,
    DiscordVoiceBackend,
)
from lfg_coordinator.adapters.voice_occupancy import VoiceOccupancy
from tests.conftest import FakeDiscordClient


def _backend(client: FakeDiscordClient) -> DiscordVoiceBackend:
    return DiscordVoiceBackend(
        client=client, occupancy=VoiceOccupancy(), bot_user_id="bot-1"
    )


def test_missing_capabilities_resolves_role_permissions() -> None:
    client = FakeDiscordClient(
        member={"roles": ["role-bot"]},
        roles=[
            {"id": "guild-1", "permissions": str(VIEW_CHANNEL)},
            {"id": "role-bot", "permissions": str(MANAGE_CHANNELS)},
            {"id": "role-other", "permissions": str(CONNECT)},
        ],
    )

    missing = asyncio.run(_backend(client).missing_capabilities("guild-1"))

    assert missing == ["Connect"]


def test_administrator_has_every_capability() -> None:
    client = FakeDiscordClient(
        member={"roles": ["role-admin"]},
        roles=[{"id": "role-admin", "permissions": str(ADMINISTRATOR)}],
    )

    assert asyncio.run(_backend(client).missing_capabilities("guild-1")) == []


def test_grouping_lookup_is_case_insensitive() -> None:
    client = FakeDiscordClient(
        channels=[
            {"id": "text-1", "type": 0, "name": "🎮 valorant"},
            {"id": "cat-1", "type": 4, "name": "🎮 VALORANT"},
        ]
    )

    backend = _backend(client)

    grouping = asyncio.run(backend.ensure_grouping_exists("guild-1", "valorant"))

    assert grouping == "cat-1"
    assert client.created_channels == []


def test_grouping_is_created_when_absent() -> None:
    client = FakeDiscordClient()

    grouping = asyncio.run(
        _backend(client).ensure_grouping_exists("guild-1", "apexlegends")
    )

    payload, reason = client.created_channels[0]
    assert grouping == "channel-1"
    assert payload == {"name": "🎮 Apex Legends", "type": 4}
    assert reason


def test_scoped_resource_is_private_to_roster() -> None:
    client = FakeDiscordClient()

    handle = asyncio.run(
        _backend(client).create_scoped_resource(
            "guild-1", "cat-1", "apexlegends-trios-000001", ["111", "222"]
        )
    )

    payload, _reason = client.created_channels[0]
    assert handle == "channel-1"
    assert payload["type"] == 2
    assert payload["parent_id"] == "cat-1"
    overwrites = {item["id"]: item for item in payload["permission_overwrites"]}
    assert overwrites["guild-1"]["deny"] == str(VIEW_CHANNEL | CONNECT)
    assert int(overwrites["bot-1"]["allow"]) & MANAGE_CHANNELS
    assert overwrites["111"]["allow"] == str(VIEW_CHANNEL | CONNECT)
    assert overwrites["222"]["type"] == 1


def test_delete_resource_returns_grouping_and_cleans_up() -> None:
    client = FakeDiscordClient(
        channels=[
            {"id": "cat-1", "type": 4, "name": "🎮 Overwatch"},
            {"id": "voice-1", "type": 2, "parent_id": "cat-1"},
        ]
    )
    backend = _backend(client)
    backend.occupancy.apply("guild-1", "111", "voice-1")

    async def scenario():
        grouping = await backend.delete_resource("voice-1")
        deleted = await backend.delete_grouping_if_empty("guild-1", "cat-1")
        return grouping, deleted

    grouping, deleted = asyncio.run(scenario())

    assert grouping == "cat-1"
    assert deleted
    assert client.deleted_channels == ["voice-1", "cat-1"]
    assert backend.occupancy.count("voice-1") == 0


def test_grouping_with_channels_is_kept() -> None:
    client = FakeDiscordClient(
        channels=[
            {"id": "cat-1", "type": 4, "name": "🎮 Overwatch"},
            {"id": "voice-2", "type": 2, "parent_id": "cat-1"},
        ]
    )

    deleted = asyncio.run(_backend(client).delete_grouping_if_empty("guild-1", "cat-1"))

    assert not deleted
    assert client.deleted_channels == []


class _GoneClient(FakeDiscordClient):
    status_code = 404

    async def delete_channel(
        self, channel_id: str, reason: str | None = None
    ) -> dict[str, object]:
        request = httpx.Request("DELETE", f"https://discord.test/channels/{channel_id}")
        response = httpx.Response(self.status_code, request=request)
        raise httpx.HTTPStatusError("error", request=request, response=response)


def test_already_deleted_resource_is_not_an_error() -> None:
    backend = _backend(_GoneClient())

    assert asyncio.run(backend.delete_resource("voice-1")) is None


def test_other_delete_errors_propagate() -> None:
    client = _GoneClient()
    client.status_code = 403
    backend = _backend(client)

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(backend.delete_resource("voice-1"))


def test_occupant_count_reads_voice_states() -> None:
    backend = _backend(FakeDiscordClient())
    backend.occupancy.apply("guild-1", "111", "voice-1")
    backend.occupancy.apply("guild-1", "222", "voice-1")

    assert asyncio.run(backend.current_occupant_count("voice-1")) == 2
