"""Discord slash command configuration."""

from dataclasses import dataclass, field
from enum import Enum

from lfg_coordinator.domain.activities import ACTIVITIES
from lfg_coordinator.domain.sessions import MAX_TARGET_SIZE, MIN_TARGET_SIZE

CHAT_INPUT = 1

OPTION_STRING = 3
OPTION_INTEGER = 4

INFO_MAX_LENGTH = 200


@dataclass(frozen=True)
class SlashCommand:
    """Declarative slash command definition."""

    name: str
    description: str
    options: tuple[dict[str, object], ...] = field(default=())


def _game_option(description: str) -> dict[str, object]:
    return {
        "type": OPTION_STRING,
        "name": "game",
        "description": description,
        "required": True,
        "choices": [
            {"name": activity.name, "value": activity.value} for activity in ACTIVITIES
        ],
    }


def _mode_option(description: str) -> dict[str, object]:
    return {
        "type": OPTION_STRING,
        "name": "gamemode",
        "description": description,
        "required": True,
        "autocomplete": True,
    }


class BotCommand(Enum):
    """Enum of slash commands (single source of truth)."""

    LFG = SlashCommand(
        "lfg",
        "Create a Looking for Group session",
        (
            _game_option("Select the game you want to play"),
            _mode_option("Select the game mode"),
            {
                "type": OPTION_INTEGER,
                "name": "players",
                "description": "Number of players needed (including yourself)",
                "required": True,
                "min_value": MIN_TARGET_SIZE,
                "max_value": MAX_TARGET_SIZE,
            },
            {
                "type": OPTION_STRING,
                "name": "info",
                "description": "Additional information about your session",
                "required": False,
                "max_length": INFO_MAX_LENGTH,
            },
        ),
    )
    QUICKJOIN = SlashCommand(
        "quickjoin",
        "Instantly join an available LFG session",
        (
            _game_option("Game you want to join"),
            _mode_option("Game mode you want to join"),
        ),
    )
    ENDLFG = SlashCommand("endlfg", "End your current LFG session")
    HELP = SlashCommand("help", "Show bot commands and features")


def discord_commands() -> list[dict[str, object]]:
    """Return commands formatted for the Discord bulk overwrite endpoint."""
    return [
        {
            "name": entry.value.name,
            "description": entry.value.description,
            "type": CHAT_INPUT,
            "options": list(entry.value.options),
        }
        for entry in BotCommand
    ]


HELP_EMBED: dict[str, object] = {
    "title": "🎮 LFG Bot - Commands & Features",
    "color": 0x3498DB,
    "description": (
        "**Looking for Group (LFG) Bot** helps you find teammates and organize "
        "gaming sessions!"
    ),
    "fields": [
        {
            "name": "🚀 Main Commands",
            "value": "`/lfg` - Create a new LFG session\n"
            "`/quickjoin` - Instantly join an available session\n"
            "`/endlfg` - End your current LFG session\n"
            "`/help` - Show this help message",
        },
        {
            "name": "🎯 How It Works",
            "value": "1️⃣ Create a session with `/lfg`\n"
            "2️⃣ Others join with the **Join Session** button\n"
            "3️⃣ When full, a private voice channel is created\n"
            "4️⃣ Play together and have fun!",
        },
        {
            "name": "🎮 Supported Games",
            "value": "\n".join(f"• {activity.name}" for activity in ACTIVITIES),
        },
        {
            "name": "⚙️ Tips",
            "value": "• You can only be in **one session** at a time\n"
            "• Sessions auto-expire after **20 minutes**\n"
            "• Use **Quick Join** for faster matchmaking\n"
            "• Voice channels auto-delete when empty",
        },
    ],
    "footer": {"text": "LFG Bot"},
}
