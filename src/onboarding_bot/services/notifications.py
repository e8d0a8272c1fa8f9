"""Applies out-of-band notification events to the onboarding flow."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from onboarding_bot.domain.models import UserRecord
from onboarding_bot.domain.notifications import (
    PROCEED_TO_FINAL_MESSAGE,
    NotificationEvent,
    NotificationType,
)
from onboarding_bot.domain.pipeline import PipelineState, PipelineTrigger
from onboarding_bot.services.analysis import AnalysisJobOutcome, AnalysisJobStatus
from onboarding_bot.services.cache import Cache
from onboarding_bot.services.messaging import ChatRef, Messenger, Prompt
from onboarding_bot.services.onboarding import OnboardingService
from onboarding_bot.services.prompts import (
    AI_REFUSAL_TEXT,
    ANALYSIS_FAILED_TEXT,
    FACE_NOT_DETECTED_TEXT,
    ready_to_survey_prompt,
)
from onboarding_bot.services.user_info import UserInfoService
from onboarding_bot.services.users import UserService

logger = logging.getLogger(__name__)

MINI_APP_CLOSURE_TTL_SECONDS = 30

_FAILURE_TEXTS: dict[str, str] = {
    NotificationType.ANALYSIS_FAILED: ANALYSIS_FAILED_TEXT,
    NotificationType.FACE_NOT_DETECTED: FACE_NOT_DETECTED_TEXT,
    NotificationType.AI_ANALYSIS_REFUSAL: AI_REFUSAL_TEXT,
}


@dataclass
class NotificationBridge:
    """Consumes at-least-once events and applies each occurrence once."""

    user_service: UserService
    user_info_service: UserInfoService
    onboarding_service: OnboardingService
    messenger: Messenger
    closure_cache: Cache

    async def handle(self, event: NotificationEvent) -> None:
        """Dispatch an event by type. Errors are logged, never raised."""
        handlers: dict[
            str, Callable[[UserRecord, NotificationEvent], Awaitable[None]]
        ] = {
            NotificationType.ANALYSIS_COMPLETE: self._on_analysis_complete,
            NotificationType.ANALYSIS_FAILED: self._on_failure,
            NotificationType.FACE_NOT_DETECTED: self._on_failure,
            NotificationType.AI_ANALYSIS_REFUSAL: self._on_failure,
            NotificationType.MINI_APP_CLOSED: self._on_mini_app_closed,
        }
        handler = handlers.get(event.type)
        if handler is None:
            if event.type in set(NotificationType):
                logger.info(
                    "Notification handled outside onboarding",
                    extra={"event_type": event.type},
                )
            else:
                logger.warning(
                    "Unknown notification type", extra={"event_type": event.type}
                )
            return
        if event.type == NotificationType.MINI_APP_CLOSED and self._is_duplicate(
            event
        ):
            return
        try:
            user = self.user_service.get_user(event.subject_user_id)
            if user is None:
                logger.warning(
                    "Notification for unknown user",
                    extra={
                        "event_type": event.type,
                        "user_id": str(event.subject_user_id),
                    },
                )
                return
            await handler(user, event)
        except Exception:
            logger.exception(
                "Failed to handle notification",
                extra={
                    "event_type": event.type,
                    "user_id": str(event.subject_user_id),
                },
            )

    async def consume_outcomes(
        self, outcomes: asyncio.Queue[AnalysisJobOutcome]
    ) -> None:
        """Drain background analysis outcomes until cancelled."""
        while True:
            outcome = await outcomes.get()
            try:
                self.record_outcome(outcome)
            finally:
                outcomes.task_done()

    def record_outcome(self, outcome: AnalysisJobOutcome) -> None:
        job = outcome.job
        extra: dict[str, object] = {
            "user_id": str(job.user_id),
            "chat_id": job.chat_id,
            "submitted_at": job.submitted_at.isoformat(),
        }
        if outcome.status is AnalysisJobStatus.FAILED:
            logger.warning(
                "Background analysis outcome: failed",
                extra={**extra, "error": outcome.error},
            )
            return
        logger.info("Background analysis outcome: succeeded", extra=extra)

    def _is_duplicate(self, event: NotificationEvent) -> bool:
        self.closure_cache.sweep()
        key = f"mini_app_closed:{event.subject_user_id}"
        if self.closure_cache.get(key) is not None:
            logger.warning(
                "Duplicate mini app closure ignored",
                extra={"user_id": str(event.subject_user_id)},
            )
            return True
        self.closure_cache.set(key, True, MINI_APP_CLOSURE_TTL_SECONDS)
        return False

    async def _on_failure(self, user: UserRecord, event: NotificationEvent) -> None:
        chat = ChatRef(event.chat_id)
        await self.messenger.send(chat, Prompt(_FAILURE_TEXTS[event.type]))
        await self.onboarding_service.restart_photo_intake(user, chat)

    async def _on_analysis_complete(
        self, user: UserRecord, event: NotificationEvent
    ) -> None:
        description = event.data.get("description")
        if isinstance(description, str) and description:
            info = self.user_info_service.get_or_create(user.id)
            self.user_info_service.update(info, description=description)
        if not self.user_service.can_apply(user, PipelineTrigger.ANALYSIS_DELIVERED):
            logger.info(
                "Analysis result stored without changing state",
                extra={"user_id": str(user.id), "state": str(user.pipeline_state)},
            )
            return
        self.user_service.transition(user, PipelineTrigger.ANALYSIS_DELIVERED)
        await self.messenger.send(ChatRef(event.chat_id), ready_to_survey_prompt())

    async def _on_mini_app_closed(
        self, user: UserRecord, event: NotificationEvent
    ) -> None:
        if event.data.get("nextAction") != PROCEED_TO_FINAL_MESSAGE:
            logger.info(
                "Mini app closed without a follow-up action",
                extra={"user_id": str(user.id)},
            )
            return
        if user.pipeline_state is PipelineState.ONBOARDING_COMPLETE:
            logger.info(
                "Mini app closed after onboarding completed",
                extra={"user_id": str(user.id)},
            )
            return
        await self.onboarding_service.handle_mini_app_finish(
            user, ChatRef(event.chat_id)
        )
