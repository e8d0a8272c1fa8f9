"""Outbound message delivery with explicit send modes."""

import logging
from dataclasses import dataclass
from enum import StrEnum

from onboarding_bot.adapters.telegram_client import TelegramClient

logger = logging.getLogger(__name__)


class MessageMode(StrEnum):
    """How an outbound message relates to the message that triggered it."""

    NEW = "new"
    EDIT_IF_POSSIBLE = "edit_if_possible"


@dataclass(frozen=True)
class Prompt:
    """Represents the next user-facing message."""

    text: str
    reply_markup: dict | None = None


@dataclass(frozen=True)
class ChatRef:
    """Where to reply: a chat and, for button presses, the pressed message."""

    chat_id: int
    message_id: int | None = None


@dataclass
class Messenger:
    """Sends prompts to a chat in NEW or EDIT_IF_POSSIBLE mode."""

    telegram_client: TelegramClient

    async def send(
        self,
        chat: ChatRef,
        prompt: Prompt,
        mode: MessageMode = MessageMode.NEW,
        *,
        keep_previous: bool = False,
    ) -> None:
        """Deliver a prompt.

        NEW removes the pressed message (unless keep_previous is set) and sends a
        fresh one. EDIT_IF_POSSIBLE rewrites the pressed message in place and
        falls back to a fresh message when there is nothing to edit.
        """
        if mode is MessageMode.EDIT_IF_POSSIBLE and chat.message_id is not None:
            try:
                await self.telegram_client.edit_message_text(
                    chat_id=chat.chat_id,
                    message_id=chat.message_id,
                    text=prompt.text,
                    reply_markup=prompt.reply_markup,
                )
                return
            except Exception:
                logger.warning(
                    "Editing message failed, sending a new one",
                    extra={"chat_id": chat.chat_id, "message_id": chat.message_id},
                )
        elif chat.message_id is not None and not keep_previous:
            await self._delete_quietly(chat.chat_id, chat.message_id)
        await self.telegram_client.send_message(
            chat_id=chat.chat_id,
            text=prompt.text,
            reply_markup=prompt.reply_markup,
        )

    async def _delete_quietly(self, chat_id: int, message_id: int) -> None:
        try:
            await self.telegram_client.delete_message(
                chat_id=chat_id, message_id=message_id
            )
        except Exception:
            logger.warning(
                "Failed to delete previous message",
                extra={"chat_id": chat_id, "message_id": message_id},
            )
