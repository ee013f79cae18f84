"""Pydantic models for payloads forwarded by the Discord gateway relay."""

from pydantic import BaseModel


class DiscordUser(BaseModel):
    """Discord user payload."""

    id: str
    username: str | None = None
    global_name: str | None = None


class DiscordMember(BaseModel):
    """Guild member payload attached to guild interactions."""

    user: DiscordUser | None = None
    nick: str | None = None


class InteractionOption(BaseModel):
    """Slash command option payload."""

    name: str
    type: int
    value: str | int | float | bool | None = None
    focused: bool | None = None


class InteractionData(BaseModel):
    """Command or component data of an interaction."""

    name: str | None = None
    custom_id: str | None = None
    component_type: int | None = None
    options: list[InteractionOption] | None = None


class Interaction(BaseModel):
    """Discord interaction payload."""

    id: str
    type: int
    application_id: str | None = None
    token: str | None = None
    guild_id: str | None = None
    channel_id: str | None = None
    member: DiscordMember | None = None
    user: DiscordUser | None = None
    data: InteractionData | None = None

    def actor(self) -> DiscordUser | None:
        """Return the invoking user for guild and DM interactions."""
        if self.member is not None and self.member.user is not None:
            return self.member.user
        return self.user

    def actor_display_name(self) -> str:
        actor = self.actor()
        if actor is None:
            return "unknown"
        if self.member is not None and self.member.nick:
            return self.member.nick
        return actor.global_name or actor.username or actor.id

    def option(self, name: str) -> str | int | float | bool | None:
        if self.data is None or not self.data.options:
            return None
        for option in self.data.options:
            if option.name == name:
                return option.value
        return None

    def focused_option(self) -> InteractionOption | None:
        if self.data is None or not self.data.options:
            return None
        for option in self.data.options:
            if option.focused:
                return option
        return None


class VoiceStateUpdate(BaseModel):
    """Voice state update; a missing channel id means the user disconnected."""

    guild_id: str
    user_id: str
    channel_id: str | None = None
