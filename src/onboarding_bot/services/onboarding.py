"""Onboarding orchestrator: survey, feelings, final steps and resume."""

import logging
import re
from dataclasses import dataclass
from uuid import UUID

from onboarding_bot.adapters.telegram_file_client import TelegramFileClient
from onboarding_bot.domain.models import UserRecord
from onboarding_bot.domain.pipeline import (
    FunnelMilestone,
    PipelineState,
    PipelineTrigger,
)
from onboarding_bot.domain.sessions import PhotoSession, PhotoStage
from onboarding_bot.domain.survey import (
    CUSTOM_ANSWER_MAX_LENGTH,
    CUSTOM_ANSWER_MIN_LENGTH,
    SURVEY_LENGTH,
    SURVEY_QUESTIONS,
)
from onboarding_bot.services.analysis import AnalysisDispatcher
from onboarding_bot.services.messaging import ChatRef, MessageMode, Messenger, Prompt
from onboarding_bot.services.photo_intake import PhotoSessionStore
from onboarding_bot.services.prompts import (
    COMPLETED_TEXT,
    CUSTOM_ANSWER_LONG_TEXT,
    CUSTOM_ANSWER_SHORT_TEXT,
    GENERIC_ERROR_TEXT,
    INTAKE_FAILED_TEXT,
    SECOND_PALM_REQUEST_TEXT,
    VOICE_FAILED_TEXT,
    final_choices_prompt,
    final_message_prompt,
    format_feelings,
    mini_app_prompt,
    photo_request_prompt,
    purchase_prompt,
    question_prompt,
    ready_to_survey_prompt,
    repost_prompt,
    share_prompt,
    voice_prompt,
)
from onboarding_bot.services.transcription import TranscriptionService
from onboarding_bot.services.user_info import UserInfoService
from onboarding_bot.services.users import UserService

logger = logging.getLogger(__name__)

_SURVEY_ANSWER_PATTERN = re.compile(r"^survey_q(\d+)_(\d+)$")
_SURVEY_BACK_PATTERN = re.compile(r"^survey_back_to_q(\d+)$")
_RESTART_STATES = {
    "face_back": frozenset({PipelineState.WAITING_PHOTOS}),
    "survey_restart": frozenset(
        {PipelineState.READY_TO_START_SURVEY, PipelineState.SURVEY_IN_PROGRESS}
    ),
}


@dataclass
class OnboardingService:  # noqa: PLR0904
    """Drives a user from photo intake to the final choices."""

    user_service: UserService
    user_info_service: UserInfoService
    photo_sessions: PhotoSessionStore
    analysis_dispatcher: AnalysisDispatcher
    transcription_service: TranscriptionService
    file_client: TelegramFileClient
    messenger: Messenger
    mini_app_url: str
    bot_username: str
    repost_video_url: str

    async def start(self, user: UserRecord, chat: ChatRef) -> None:
        """Handle /start: resume a flow in progress or begin photo intake."""
        if (
            user.pipeline_state is not None
            and user.pipeline_state is not PipelineState.ONBOARDING_COMPLETE
        ):
            await self.resume(user, chat)
            return
        await self.restart_photo_intake(user, chat)

    async def restart_photo_intake(
        self, user: UserRecord, chat: ChatRef
    ) -> UserRecord:
        """Clear the photo session and ask for photos again."""
        self.photo_sessions.clear(user.id)
        user = self.user_service.transition(user, PipelineTrigger.INTAKE_RESET)
        await self.messenger.send(chat, photo_request_prompt())
        return user

    async def resume(self, user: UserRecord, chat: ChatRef) -> None:  # noqa: PLR0912
        """Send the next message implied by the persisted state.

        Only durable state is consulted. Sending twice in a row yields the same
        message, except where an inconsistent survey state is repaired first.
        """
        state = user.pipeline_state
        try:
            if state is PipelineState.WAITING_PHOTOS:
                await self.messenger.send(chat, photo_request_prompt())
            elif state in {
                PipelineState.READY_TO_START_SURVEY,
                PipelineState.ANALYSIS_COMPLETED,
            }:
                await self.messenger.send(chat, ready_to_survey_prompt())
            elif state is PipelineState.SURVEY_IN_PROGRESS:
                await self._resume_survey(user, chat)
            elif state is PipelineState.WAITING_VOICE_SURVEY:
                await self.messenger.send(chat, voice_prompt())
            elif state is PipelineState.MINI_APP_OPENED:
                await self.messenger.send(chat, mini_app_prompt(self.mini_app_url))
            elif state is PipelineState.FINAL_MESSAGE_SENT:
                await self.messenger.send(chat, self._final_message(user.id))
            elif state is PipelineState.ONBOARDING_COMPLETE:
                await self.messenger.send(chat, Prompt(COMPLETED_TEXT))
            else:
                await self.restart_photo_intake(user, chat)
        except Exception:
            logger.exception(
                "Failed to resume onboarding", extra={"user_id": str(user.id)}
            )
            await self.messenger.send(chat, Prompt(GENERIC_ERROR_TEXT))

    async def complete_photo_intake(
        self, user_id: UUID, chat: ChatRef, session: PhotoSession
    ) -> None:
        """Persist the collected photos and offer the survey."""
        user = self.user_service.get_user(user_id)
        try:
            if user is None or not self.user_service.can_apply(
                user, PipelineTrigger.PHOTOS_COMPLETED
            ):
                logger.info(
                    "Dropping completed photo session outside photo intake",
                    extra={"user_id": str(user_id)},
                )
                return
            info = self.user_info_service.get_or_create(user_id)
            self.user_info_service.update(info, photo_refs=tuple(session.photos))
            user = self.user_service.mark_milestone(
                user, FunnelMilestone.FIRST_PHOTO_ANALYSIS
            )
            self.user_service.transition(user, PipelineTrigger.PHOTOS_COMPLETED)
            await self.messenger.send(chat, ready_to_survey_prompt())
        except Exception:
            logger.exception(
                "Failed to complete photo intake", extra={"user_id": str(user_id)}
            )
            if user is not None:
                self.user_service.transition(user, PipelineTrigger.INTAKE_RESET)
            await self.messenger.send(chat, Prompt(INTAKE_FAILED_TEXT))
        finally:
            self.photo_sessions.clear(user_id)

    async def start_survey(self, user: UserRecord, chat: ChatRef) -> None:
        """Reset stored answers and ask the first question."""
        if not self.user_service.can_apply(user, PipelineTrigger.SURVEY_STARTED):
            _log_state_mismatch(user, "start survey")
            return
        info = self.user_info_service.get_or_create(user.id)
        self.user_info_service.reset_survey(info)
        self.user_service.transition(user, PipelineTrigger.SURVEY_STARTED)
        await self.messenger.send(chat, question_prompt(1))

    async def handle_survey_answer(
        self,
        user: UserRecord,
        chat: ChatRef,
        question: int,
        answer_index: int,
        custom_text: str | None = None,
    ) -> None:
        """Store an answer and move to the next question or the voice prompt."""
        if not self.user_service.can_apply(user, PipelineTrigger.QUESTION_ANSWERED):
            _log_state_mismatch(user, "answer survey question")
            return
        info = self.user_info_service.get_or_create(user.id)
        if question != info.survey_progress + 1:
            logger.info(
                "Ignoring answer for a question that is not current",
                extra={"user_id": str(user.id), "question": question},
            )
            return
        survey_question = SURVEY_QUESTIONS.get(question)
        answer_text = custom_text
        if answer_text is None and survey_question is not None:
            answer_text = survey_question.option_text(answer_index)
        if answer_text is None:
            logger.info(
                "Ignoring unknown survey option",
                extra={"user_id": str(user.id), "question": question},
            )
            return

        self.user_info_service.record_answer(
            info,
            question,
            answer_index,
            answer_text,
            is_custom=custom_text is not None,
        )
        if question < SURVEY_LENGTH:
            self.user_service.transition(user, PipelineTrigger.QUESTION_ANSWERED)
            await self.messenger.send(
                chat, question_prompt(question + 1), MessageMode.EDIT_IF_POSSIBLE
            )
            return
        await self._send_voice_question(user, chat)

    async def handle_custom_answer(
        self, user: UserRecord, chat: ChatRef, text: str
    ) -> None:
        """Accept typed text as the answer to the current question."""
        cleaned = text.strip()
        if len(cleaned) < CUSTOM_ANSWER_MIN_LENGTH:
            await self.messenger.send(chat, Prompt(CUSTOM_ANSWER_SHORT_TEXT))
            return
        if len(cleaned) > CUSTOM_ANSWER_MAX_LENGTH:
            await self.messenger.send(chat, Prompt(CUSTOM_ANSWER_LONG_TEXT))
            return
        info = self.user_info_service.get_or_create(user.id)
        question = min(info.survey_progress + 1, SURVEY_LENGTH)
        await self.handle_survey_answer(user, chat, question, 0, custom_text=cleaned)

    async def navigate_back(
        self, user: UserRecord, chat: ChatRef, question: int
    ) -> None:
        """Return to a question, deleting that answer and every later one."""
        if not 1 <= question <= SURVEY_LENGTH:
            return
        if not self.user_service.can_apply(user, PipelineTrigger.SURVEY_REWOUND):
            _log_state_mismatch(user, "navigate back")
            return
        info = self.user_info_service.get_or_create(user.id)
        if question > info.survey_progress + 1:
            logger.info(
                "Ignoring back navigation past the current question",
                extra={"user_id": str(user.id), "question": question},
            )
            return
        self.user_info_service.rewind_to(info, question)
        self.user_service.transition(user, PipelineTrigger.SURVEY_REWOUND)
        await self.messenger.send(
            chat, question_prompt(question), MessageMode.EDIT_IF_POSSIBLE
        )

    async def handle_incoming_voice_or_text(
        self,
        user: UserRecord,
        chat: ChatRef,
        *,
        voice_file_id: str | None = None,
        text: str | None = None,
    ) -> None:
        """Capture feelings from a voice note or typed text."""
        if user.pipeline_state is not PipelineState.WAITING_VOICE_SURVEY:
            _log_state_mismatch(user, "capture feelings")
            return
        if voice_file_id is not None:
            try:
                audio = await self.file_client.download_file_bytes(voice_file_id)
                feelings = await self.transcription_service.transcribe(
                    audio, user.language
                )
            except Exception:
                logger.exception(
                    "Voice transcription failed", extra={"user_id": str(user.id)}
                )
                feelings = ""
            if not feelings:
                await self.messenger.send(chat, Prompt(VOICE_FAILED_TEXT))
                return
        else:
            feelings = (text or "").strip()
            if len(feelings) < CUSTOM_ANSWER_MIN_LENGTH:
                await self.messenger.send(chat, Prompt(CUSTOM_ANSWER_SHORT_TEXT))
                return

        user = self.user_service.mark_milestone(user, FunnelMilestone.FEELINGS_SHARED)
        await self._complete_survey(user, chat, feelings)

    async def handle_mini_app_finish(self, user: UserRecord, chat: ChatRef) -> None:
        """The mini app was closed: send the final summary."""
        if not self.user_service.can_apply(user, PipelineTrigger.MINI_APP_CLOSED):
            _log_state_mismatch(user, "finish mini app")
            return
        user = self.user_service.mark_milestone(
            user, FunnelMilestone.HYPOTHESIS_RECEIVED
        )
        await self.messenger.send(chat, self._final_message(user.id))
        self.user_service.transition(user, PipelineTrigger.MINI_APP_CLOSED)

    async def send_final_choices(self, user: UserRecord, chat: ChatRef) -> None:
        """Show the share, repost and purchase menu."""
        if user.pipeline_state is PipelineState.ONBOARDING_COMPLETE:
            await self.messenger.send(chat, final_choices_prompt())
            return
        if not self.user_service.can_apply(user, PipelineTrigger.FINAL_ACKNOWLEDGED):
            _log_state_mismatch(user, "send final choices")
            return
        await self.messenger.send(chat, final_choices_prompt())
        self.user_service.transition(user, PipelineTrigger.FINAL_ACKNOWLEDGED)

    async def retry_photo_analysis(self, user: UserRecord, chat: ChatRef) -> None:
        """Drop the previous analysis output and collect photos again."""
        info = self.user_info_service.get_latest(user.id)
        if info is not None:
            self.user_info_service.update(info, description=None)
        await self.restart_photo_intake(user, chat)

    async def handle_text(self, user: UserRecord, chat: ChatRef, text: str) -> None:
        """Route free text according to the pipeline state."""
        if user.pipeline_state is PipelineState.SURVEY_IN_PROGRESS:
            await self.handle_custom_answer(user, chat, text)
        elif user.pipeline_state is PipelineState.WAITING_VOICE_SURVEY:
            await self.handle_incoming_voice_or_text(user, chat, text=text)
        else:
            await self.resume(user, chat)

    async def handle_voice(
        self, user: UserRecord, chat: ChatRef, voice_file_id: str
    ) -> None:
        """Route a voice note according to the pipeline state."""
        if user.pipeline_state is PipelineState.WAITING_VOICE_SURVEY:
            await self.handle_incoming_voice_or_text(
                user, chat, voice_file_id=voice_file_id
            )
        else:
            await self.resume(user, chat)

    async def handle_button_action(  # noqa: PLR0912
        self, user: UserRecord, chat: ChatRef, action: str
    ) -> None:
        """Dispatch a button press by its callback data."""
        if answer := _SURVEY_ANSWER_PATTERN.match(action):
            await self.handle_survey_answer(
                user, chat, int(answer.group(1)), int(answer.group(2))
            )
            return
        if back := _SURVEY_BACK_PATTERN.match(action):
            await self.navigate_back(user, chat, int(back.group(1)))
            return

        if action == "ready_to_start_survey":
            await self.start_survey(user, chat)
        elif action in {"face_back", "survey_restart"}:
            if user.pipeline_state not in _RESTART_STATES[action]:
                _log_state_mismatch(user, action)
                return
            await self.restart_photo_intake(user, chat)
        elif action in {"skip_palms", "complete_analysis"}:
            await self._finish_photo_intake_early(user, chat)
        elif action == "send_second_palm":
            await self.messenger.send(
                chat, Prompt(SECOND_PALM_REQUEST_TEXT), keep_previous=True
            )
        elif action in {"final_ready", "action_back"}:
            await self.send_final_choices(user, chat)
        elif action == "onboarding_share":
            referral_code = user.referral_code or str(user.telegram_user_id)
            await self.messenger.send(
                chat, share_prompt(self.bot_username, referral_code)
            )
        elif action == "onboarding_repost":
            self.user_service.mark_milestone(user, FunnelMilestone.VIDEO_SHARED)
            await self.messenger.send(chat, repost_prompt(self.repost_video_url))
        elif action == "onboarding_purchase":
            await self.messenger.send(chat, purchase_prompt())
        elif action == "retry_photo_analysis":
            await self.retry_photo_analysis(user, chat)
        else:
            logger.warning(
                "Unknown button action",
                extra={"user_id": str(user.id), "action": action},
            )

    async def _resume_survey(self, user: UserRecord, chat: ChatRef) -> None:
        info = self.user_info_service.get_latest(user.id)
        progress = info.survey_progress if info else 0
        if progress < SURVEY_LENGTH:
            await self.messenger.send(chat, question_prompt(progress + 1))
            return
        if progress == SURVEY_LENGTH:
            logger.warning(
                "Survey answered but voice prompt missing, repairing",
                extra={"user_id": str(user.id)},
            )
            await self._send_voice_question(user, chat)
            return
        logger.warning(
            "Survey progress out of range, restarting survey",
            extra={"user_id": str(user.id), "progress": progress},
        )
        if info is not None:
            self.user_info_service.reset_survey(info)
        await self.messenger.send(chat, question_prompt(1))

    async def _send_voice_question(self, user: UserRecord, chat: ChatRef) -> None:
        user = self.user_service.mark_milestone(user, FunnelMilestone.PSY_TEST_PASSED)
        self.user_service.transition(user, PipelineTrigger.SURVEY_FINISHED)
        await self.messenger.send(chat, voice_prompt(), MessageMode.EDIT_IF_POSSIBLE)

    async def _complete_survey(
        self, user: UserRecord, chat: ChatRef, feelings: str
    ) -> None:
        info = self.user_info_service.get_or_create(user.id)
        self.user_info_service.update(
            info, feelings=format_feelings(info.survey_answers, feelings)
        )
        self.analysis_dispatcher.dispatch(user.id, chat.chat_id)
        self.user_service.transition(user, PipelineTrigger.FEELINGS_CAPTURED)
        await self.messenger.send(chat, mini_app_prompt(self.mini_app_url))

    async def _finish_photo_intake_early(
        self, user: UserRecord, chat: ChatRef
    ) -> None:
        session = self.photo_sessions.get(user.id)
        if (
            user.pipeline_state is not PipelineState.WAITING_PHOTOS
            or session is None
            or session.stage is not PhotoStage.WAITING_PALMS
        ):
            _log_state_mismatch(user, "finish photo intake")
            return
        session.complete()
        await self.complete_photo_intake(user.id, chat, session)

    def _final_message(self, user_id: UUID) -> Prompt:
        info = self.user_info_service.get_latest(user_id)
        return final_message_prompt(info.summary_text if info else None)


def _log_state_mismatch(user: UserRecord, action: str) -> None:
    logger.info(
        "Ignoring action in unexpected pipeline state",
        extra={
            "user_id": str(user.id),
            "action": action,
            "state": str(user.pipeline_state),
        },
    )
