"""FastAPI application factory."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request

from onboarding_bot.api.notifications import router as notifications_router
from onboarding_bot.api.telegram_models import TelegramPhotoSize, TelegramUpdate
from onboarding_bot.app_logging import configure_logging
from onboarding_bot.config import parse_allowed_user_ids
from onboarding_bot.containers import AppContainer
from onboarding_bot.services.messaging import ChatRef, Prompt
from onboarding_bot.services.prompts import GENERIC_ERROR_TEXT, HELP_TEXT
from onboarding_bot.telegram_commands import (
    CHAT_MENU_BUTTON,
    BotCommand,
    telegram_commands,
)

logger = logging.getLogger(__name__)


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    allowed_user_ids = parse_allowed_user_ids(
        container.settings.telegram_allowed_user_ids
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            await state_container.telegram_client.set_my_commands(
                telegram_commands()
            )
            await state_container.telegram_client.set_chat_menu_button(
                CHAT_MENU_BUTTON
            )
        except Exception:
            logger.exception("Failed to sync Telegram bot commands")
        dispatcher = state_container.analysis_dispatcher
        dispatcher.start()
        outcome_consumer = asyncio.create_task(
            state_container.notification_bridge.consume_outcomes(dispatcher.completed)
        )
        yield
        outcome_consumer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await outcome_consumer
        await dispatcher.stop()
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(notifications_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/telegram/webhook")
    async def telegram_webhook(
        update: TelegramUpdate, request: Request
    ) -> dict[str, str]:
        """Handle Telegram webhook updates."""
        state_container: AppContainer = request.app.state.container
        user_id = _extract_user_id(update)
        if user_id is not None and not _is_user_allowed(user_id, allowed_user_ids):
            if update.callback_query:
                await state_container.telegram_client.answer_callback_query(
                    update.callback_query.id,
                    text="Not authorized.",
                )
                return {"status": "ok"}
            if update.message:
                await state_container.telegram_client.send_message(
                    chat_id=update.message.chat.id,
                    text="This bot is private.",
                )
                return {"status": "ok"}
        try:
            await _dispatch_update(state_container, update)
        except Exception as exc:
            logger.exception(
                "Failed to handle Telegram update",
                extra={"update_id": update.update_id, "user_id": user_id},
            )
            chat_id = _extract_chat_id(update)
            if chat_id is not None:
                await state_container.telegram_client.send_message(
                    chat_id=chat_id,
                    text=_format_error(state_container, exc, GENERIC_ERROR_TEXT),
                )
        return {"status": "ok"}

    return app


async def _dispatch_update(container: AppContainer, update: TelegramUpdate) -> None:
    if update.callback_query:
        callback = update.callback_query
        await container.telegram_client.answer_callback_query(callback.id)
        if callback.data and callback.message:
            user = container.user_service.ensure_user(
                callback.from_user.id, callback.from_user.language_code
            )
            chat = ChatRef(
                chat_id=callback.message.chat.id,
                message_id=callback.message.message_id,
            )
            await container.onboarding_service.handle_button_action(
                user, chat, callback.data
            )
        return

    message = update.message
    if message is None:
        return
    user = container.user_service.ensure_user(
        message.from_user.id, message.from_user.language_code
    )
    chat = ChatRef(chat_id=message.chat.id)

    if BotCommand.START.matches(message.text):
        await container.onboarding_service.start(user, chat)
        return
    if BotCommand.HELP.matches(message.text):
        await container.messenger.send(chat, Prompt(HELP_TEXT))
        return
    if message.photo:
        photo = _select_largest_photo(message.photo)
        await container.photo_intake_service.handle_incoming_photo(
            user, chat, photo.file_id, message.media_group_id
        )
        return
    if message.voice:
        await container.onboarding_service.handle_voice(
            user, chat, message.voice.file_id
        )
        return
    if message.text:
        await container.onboarding_service.handle_text(user, chat, message.text)


def _select_largest_photo(photos: list[TelegramPhotoSize]) -> TelegramPhotoSize:
    """Select the largest photo size from the Telegram payload."""
    return max(photos, key=lambda photo: (photo.width * photo.height))


def _extract_user_id(update: TelegramUpdate) -> int | None:
    """Extract Telegram user id from update, if present."""
    if update.callback_query:
        return update.callback_query.from_user.id
    if update.message:
        return update.message.from_user.id
    return None


def _extract_chat_id(update: TelegramUpdate) -> int | None:
    if update.callback_query and update.callback_query.message:
        return update.callback_query.message.chat.id
    if update.message:
        return update.message.chat.id
    return None


def _is_user_allowed(user_id: int, allowed: set[int] | None) -> bool:
    """Return true when the user is allowed to interact with the bot."""
    return allowed is None or user_id in allowed


def _format_error(state_container: AppContainer, exc: Exception, fallback: str) -> str:
    """Return a user-facing error message with local debug info."""
    if state_container.settings.environment == "local":
        detail = f"{type(exc).__name__}: {exc}".strip()
        if detail:
            return f"{fallback} (debug: {detail})"
    return fallback
