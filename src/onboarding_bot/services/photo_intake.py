"""Photo intake: face and palm classification with media-group coalescing."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from onboarding_bot.adapters.telegram_file_client import TelegramFileClient
from onboarding_bot.domain.models import UserRecord
from onboarding_bot.domain.pipeline import PipelineState
from onboarding_bot.domain.sessions import MediaGroupEntry, PhotoSession, PhotoStage
from onboarding_bot.services.cache import Cache
from onboarding_bot.services.messaging import ChatRef, Messenger, Prompt
from onboarding_bot.services.prompts import (
    FACE_REJECTED_TEXT,
    GROUP_REJECTED_TEXT,
    PHOTO_RETRY_TEXT,
    PHOTOS_ALREADY_RECEIVED_TEXT,
    palms_prompt,
    second_palm_offer_prompt,
)
from onboarding_bot.services.scheduling import DelayedTaskScheduler
from onboarding_bot.services.vision import VisionService

logger = logging.getLogger(__name__)

MEDIA_GROUP_WINDOW_SECONDS = 1.0
MIN_PHOTO_RATING = 1
MAX_PALM_PHOTOS = 2
GROUP_PRECHECK_MIN_PHOTOS = 3
SESSION_TTL_SECONDS = 24 * 60 * 60


class PhotoValidationError(Exception):
    """Raised when a photo or photo set scores below the threshold."""

    def __init__(self, rating: int) -> None:
        super().__init__(f"Photo rating {rating} is below {MIN_PHOTO_RATING}")
        self.rating = rating


class IntakeCompletionHandler(Protocol):
    """Receives sessions that reached the completed stage."""

    async def complete_photo_intake(
        self, user_id: UUID, chat: ChatRef, session: PhotoSession
    ) -> None:
        """Persist the photos and continue the onboarding."""


@dataclass
class PhotoSessionStore:
    """Ephemeral per-user photo sessions, at most one per user."""

    cache: Cache

    def get(self, user_id: UUID) -> PhotoSession | None:
        session = self.cache.get(_session_key(user_id))
        return session if isinstance(session, PhotoSession) else None

    def get_or_create(self, user_id: UUID) -> PhotoSession:
        session = self.get(user_id)
        if session is None:
            session = PhotoSession(user_id=user_id)
        self.save(session)
        return session

    def save(self, session: PhotoSession) -> None:
        self.cache.set(_session_key(session.user_id), session, SESSION_TTL_SECONDS)

    def clear(self, user_id: UUID) -> None:
        self.cache.delete(_session_key(user_id))


@dataclass
class PhotoIntakeService:
    """Turns single photos and photo bursts into a face and palm photos."""

    sessions: PhotoSessionStore
    vision_service: VisionService
    file_client: TelegramFileClient
    messenger: Messenger
    scheduler: DelayedTaskScheduler
    completion: IntakeCompletionHandler
    clock: Callable[[], float] = time.monotonic
    _groups: dict[str, MediaGroupEntry] = field(default_factory=dict)

    async def handle_incoming_photo(
        self,
        user: UserRecord,
        chat: ChatRef,
        photo_ref: str,
        media_group_id: str | None = None,
    ) -> None:
        """Entry point for photo messages."""
        if user.pipeline_state is not PipelineState.WAITING_PHOTOS:
            logger.info(
                "Ignoring photo outside photo intake",
                extra={"user_id": str(user.id), "state": str(user.pipeline_state)},
            )
            return
        if media_group_id:
            self.submit_grouped_photos(user.id, chat, media_group_id, photo_ref)
            return
        await self.submit_single_photo(user.id, chat, photo_ref)

    async def submit_single_photo(
        self, user_id: UUID, chat: ChatRef, photo_ref: str
    ) -> None:
        """Route one photo to the handler for the current stage."""
        session = self.sessions.get_or_create(user_id)
        try:
            if session.stage is PhotoStage.WAITING_FACE:
                await self._accept_face(session, photo_ref)
                await self.messenger.send(chat, palms_prompt())
            elif session.stage is PhotoStage.WAITING_PALMS:
                session.add_palm(photo_ref)
                if len(session.palm_photos) >= MAX_PALM_PHOTOS:
                    await self._complete(session, chat)
                else:
                    await self.messenger.send(chat, second_palm_offer_prompt())
            else:
                await self.messenger.send(chat, Prompt(PHOTOS_ALREADY_RECEIVED_TEXT))
        except PhotoValidationError as exc:
            logger.info(
                "Face photo rejected",
                extra={"user_id": str(user_id), "rating": exc.rating},
            )
            await self.messenger.send(chat, Prompt(FACE_REJECTED_TEXT))
        except Exception:
            logger.exception("Failed to process photo", extra={"user_id": str(user_id)})
            await self.messenger.send(chat, Prompt(PHOTO_RETRY_TEXT))

    def submit_grouped_photos(
        self, user_id: UUID, chat: ChatRef, group_id: str, photo_ref: str
    ) -> None:
        """Buffer a photo of a media group until the window closes.

        The window is anchored to the first photo of the group. Later photos
        only refresh the chat used for replies.
        """
        entry = self._groups.get(group_id)
        if entry is None:
            entry = MediaGroupEntry(
                group_id=group_id,
                owner_user_id=user_id,
                chat_id=chat.chat_id,
                arrived_at=self.clock(),
            )
            self._groups[group_id] = entry

            async def flush() -> None:
                await self.flush_group(group_id)

            self.scheduler.schedule(
                _group_key(group_id), MEDIA_GROUP_WINDOW_SECONDS, flush
            )
        entry.photos.append(photo_ref)
        entry.chat_id = chat.chat_id

    async def flush_group(self, group_id: str) -> None:
        """Apply all buffered photos of a group to the owner's session."""
        entry = self._groups.pop(group_id, None)
        if entry is None or not entry.photos:
            return
        chat = ChatRef(entry.chat_id)
        user_id = entry.owner_user_id
        logger.info(
            "Flushing media group",
            extra={
                "user_id": str(user_id),
                "group_id": group_id,
                "photo_count": len(entry.photos),
                "waited_seconds": round(self.clock() - entry.arrived_at, 3),
            },
        )
        session = self.sessions.get_or_create(user_id)
        try:
            if session.stage is PhotoStage.COMPLETED:
                logger.info("Ignoring media group for completed session")
                return
            if len(entry.photos) >= GROUP_PRECHECK_MIN_PHOTOS:
                await self._check_photo_set(entry.photos)
            if session.stage is PhotoStage.WAITING_FACE:
                face, *palms = entry.photos
                await self._accept_face(session, face)
            else:
                palms = entry.photos
            for photo_ref in palms:
                session.add_palm(photo_ref)
            if session.palm_photos:
                await self._complete(session, chat)
            else:
                await self.messenger.send(chat, palms_prompt())
        except PhotoValidationError as exc:
            logger.info(
                "Media group rejected",
                extra={"user_id": str(user_id), "rating": exc.rating},
            )
            text = (
                FACE_REJECTED_TEXT
                if session.stage is PhotoStage.WAITING_FACE
                and len(entry.photos) < GROUP_PRECHECK_MIN_PHOTOS
                else GROUP_REJECTED_TEXT
            )
            await self.messenger.send(chat, Prompt(text))
        except Exception:
            logger.exception(
                "Failed to process media group",
                extra={"user_id": str(user_id), "group_id": group_id},
            )
            await self.messenger.send(chat, Prompt(PHOTO_RETRY_TEXT))

    def clear_session(self, user_id: UUID) -> None:
        self.sessions.clear(user_id)

    async def _accept_face(self, session: PhotoSession, photo_ref: str) -> None:
        image = await self.file_client.download_file_bytes(photo_ref)
        rating = await self.vision_service.score_face_photo(image)
        if rating < MIN_PHOTO_RATING:
            raise PhotoValidationError(rating)
        session.accept_face(photo_ref)

    async def _check_photo_set(self, photo_refs: list[str]) -> None:
        images = [
            await self.file_client.download_file_bytes(ref) for ref in photo_refs
        ]
        rating = await self.vision_service.score_photo_set(images)
        if rating < MIN_PHOTO_RATING:
            raise PhotoValidationError(rating)

    async def _complete(self, session: PhotoSession, chat: ChatRef) -> None:
        session.complete()
        await self.completion.complete_photo_intake(session.user_id, chat, session)


def _session_key(user_id: UUID) -> str:
    return f"photo_session:{user_id}"


def _group_key(group_id: str) -> str:
    return f"media_group:{group_id}"
