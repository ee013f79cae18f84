"""Catalog of supported activities and their modes."""

from dataclasses import dataclass

MAX_SUGGESTIONS = 25


@dataclass(frozen=True)
class Activity:
    """An activity players can group up for."""

    value: str
    name: str
    modes: tuple[str, ...]


ACTIVITIES: tuple[Activity, ...] = (
    Activity(
        "valorant", "Valorant", ("Competitive", "Unrated", "Spike Rush", "Deathmatch")
    ),
    Activity(
        "fortnite",
        "Fortnite",
        ("Battle Royale", "Zero Build", "Creative", "Save the World"),
    ),
    Activity("brawlhalla", "Brawlhalla", ("1v1", "2v2", "Ranked", "Experimental")),
    Activity("thefinals", "The Finals", ("Quick Cash", "Bank It", "Tournament")),
    Activity("roblox", "Roblox", ("Various", "Roleplay", "Simulator", "Obby")),
    Activity("minecraft", "Minecraft", ("Survival", "Creative", "PvP", "Minigames")),
    Activity("marvelrivals", "Marvel Rivals", ("Quick Match", "Competitive", "Custom")),
    Activity("rocketleague", "Rocket League", ("3v3", "2v2", "1v1", "Hoops")),
    Activity("apexlegends", "Apex Legends", ("Trios", "Duos", "Ranked", "Arenas")),
    Activity(
        "callofduty", "Call of Duty", ("Multiplayer", "Warzone", "Search & Destroy")
    ),
    Activity("overwatch", "Overwatch", ("Competitive", "Quick Play", "Arcade")),
)

_BY_VALUE = {activity.value: activity for activity in ACTIVITIES}


def find_activity(value: str | None) -> Activity | None:
    """Return the activity for a value, if known."""
    if value is None:
        return None
    return _BY_VALUE.get(value)


def display_name(value: str) -> str:
    """Return a human-friendly activity name, falling back to the raw value."""
    activity = find_activity(value)
    return activity.name if activity else value


def is_valid_mode(kind: str, mode: str) -> bool:
    """Check that a mode belongs to the activity."""
    activity = find_activity(kind)
    return activity is not None and mode in activity.modes


def suggest_modes(kind: str | None, fragment: str) -> list[str]:
    """Return modes containing the fragment, case-insensitively."""
    activity = find_activity(kind)
    if activity is None:
        return []
    needle = fragment.lower()
    return [mode for mode in activity.modes if needle in mode.lower()][
        :MAX_SUGGESTIONS
    ]
