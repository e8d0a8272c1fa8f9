"""Telegram bot command configuration."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class TelegramCommand:
    """Declarative bot command definition."""

    command: str
    description: str


class BotCommand(Enum):
    """Enum of bot commands (single source of truth)."""

    START = TelegramCommand("start", "Start or continue onboarding")
    HELP = TelegramCommand("help", "How the onboarding works")

    def matches(self, text: str | None) -> bool:
        """Return true when the message text invokes this command."""
        if not text:
            return False
        head = text.split(maxsplit=1)[0] if text.strip() else ""
        return head.split("@", maxsplit=1)[0] == f"/{self.value.command}"


def telegram_commands() -> list[dict[str, str]]:
    """Return commands formatted for Telegram API."""
    return [
        {"command": entry.value.command, "description": entry.value.description}
        for entry in BotCommand
    ]


CHAT_MENU_BUTTON: dict[str, object] = {"type": "commands"}
