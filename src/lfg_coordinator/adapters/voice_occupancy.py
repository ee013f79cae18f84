"""Voice channel occupancy tracked from relayed voice state updates."""

from dataclasses import dataclass


@dataclass(frozen=True)
class OccupancyChange:
    """A channel whose occupant count changed."""

    guild_id: str
    channel_id: str
    occupant_count: int


class VoiceOccupancy:
    """Who is connected to which voice channel."""

    def __init__(self) -> None:
        self._user_channels: dict[tuple[str, str], str] = {}
        self._members: dict[str, set[str]] = {}

    def apply(
        self, guild_id: str, user_id: str, channel_id: str | None
    ) -> list[OccupancyChange]:
        """Record a voice state update and return the affected channels."""
        key = (guild_id, user_id)
        previous = self._user_channels.get(key)
        if previous == channel_id:
            return []
        changes: list[OccupancyChange] = []
        if previous is not None:
            members = self._members.get(previous, set())
            members.discard(user_id)
            if not members:
                self._members.pop(previous, None)
            changes.append(OccupancyChange(guild_id, previous, len(members)))
        if channel_id is None:
            self._user_channels.pop(key, None)
        else:
            self._user_channels[key] = channel_id
            members = self._members.setdefault(channel_id, set())
            members.add(user_id)
            changes.append(OccupancyChange(guild_id, channel_id, len(members)))
        return changes

    def count(self, channel_id: str) -> int:
        return len(self._members.get(channel_id, ()))

    def forget_channel(self, channel_id: str) -> None:
        """Drop a deleted channel and everyone recorded in it."""
        for user_key in [
            key for key, value in self._user_channels.items() if value == channel_id
        ]:
            del self._user_channels[user_key]
        self._members.pop(channel_id, None)
