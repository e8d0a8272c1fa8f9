"""Tests for the notification bridge."""

import asyncio
import contextlib
from datetime import UTC, datetime
from uuid import UUID, uuid4

import pytest

from onboarding_bot.containers import AppContainer
from onboarding_bot.domain.notifications import (
    PROCEED_TO_FINAL_MESSAGE,
    NotificationEvent,
    NotificationType,
)
from onboarding_bot.domain.pipeline import PipelineState
from onboarding_bot.domain.sessions import PhotoSession
from onboarding_bot.services.analysis import (
    AnalysisJob,
    AnalysisJobOutcome,
    AnalysisJobStatus,
)
from onboarding_bot.services.prompts import (
    AI_REFUSAL_TEXT,
    ANALYSIS_FAILED_TEXT,
    FACE_NOT_DETECTED_TEXT,
    PHOTO_REQUEST_TEXT,
)
from tests.conftest import (
    FakeClock,
    FakeTelegramClient,
    InMemoryUserInfoRepository,
    InMemoryUserRepository,
)

CHAT_ID = 555


def _event(
    event_type: str, user_id: UUID, data: dict[str, object] | None = None
) -> NotificationEvent:
    return NotificationEvent.model_validate(
        {
            "type": event_type,
            "userId": str(user_id),
            "chatId": CHAT_ID,
            "data": data or {},
        }
    )


def _closed(user_id: UUID) -> NotificationEvent:
    return _event(
        NotificationType.MINI_APP_CLOSED.value,
        user_id,
        {"nextAction": PROCEED_TO_FINAL_MESSAGE},
    )


def test_mini_app_closure_within_window_is_applied_once(
    container: AppContainer,
    user_repository: InMemoryUserRepository,
    telegram_client: FakeTelegramClient,
    clock: FakeClock,
) -> None:
    user = user_repository.add_user(CHAT_ID, PipelineState.MINI_APP_OPENED)
    bridge = container.notification_bridge

    async def scenario() -> None:
        await bridge.handle(_closed(user.id))
        clock.advance(5)
        await bridge.handle(_closed(user.id))

    asyncio.run(scenario())

    assert user_repository.transitions_to(PipelineState.FINAL_MESSAGE_SENT) == 1
    assert len(telegram_client.messages) == 1


def test_mini_app_closure_after_window_is_applied_again(
    container: AppContainer,
    user_repository: InMemoryUserRepository,
    telegram_client: FakeTelegramClient,
    clock: FakeClock,
) -> None:
    user = user_repository.add_user(CHAT_ID, PipelineState.MINI_APP_OPENED)
    bridge = container.notification_bridge

    async def scenario() -> None:
        await bridge.handle(_closed(user.id))
        clock.advance(40)
        await bridge.handle(_closed(user.id))

    asyncio.run(scenario())

    assert user_repository.transitions_to(PipelineState.FINAL_MESSAGE_SENT) == 2
    assert len(telegram_client.messages) == 2
    assert user_repository.users[user.id].pipeline_state is (
        PipelineState.FINAL_MESSAGE_SENT
    )


def test_mini_app_closure_without_follow_up_is_ignored(
    container: AppContainer,
    user_repository: InMemoryUserRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    user = user_repository.add_user(CHAT_ID, PipelineState.MINI_APP_OPENED)

    asyncio.run(
        container.notification_bridge.handle(
            _event(NotificationType.MINI_APP_CLOSED.value, user.id)
        )
    )

    assert user_repository.state_history == []
    assert telegram_client.messages == []


def test_mini_app_closure_after_completion_is_ignored(
    container: AppContainer,
    user_repository: InMemoryUserRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    user = user_repository.add_user(CHAT_ID, PipelineState.ONBOARDING_COMPLETE)

    asyncio.run(container.notification_bridge.handle(_closed(user.id)))

    assert user_repository.state_history == []
    assert telegram_client.messages == []


@pytest.mark.parametrize(
    ("event_type", "text"),
    [
        (NotificationType.ANALYSIS_FAILED, ANALYSIS_FAILED_TEXT),
        (NotificationType.FACE_NOT_DETECTED, FACE_NOT_DETECTED_TEXT),
        (NotificationType.AI_ANALYSIS_REFUSAL, AI_REFUSAL_TEXT),
    ],
)
def test_failures_converge_on_photo_intake(
    event_type: NotificationType,
    text: str,
    container: AppContainer,
    user_repository: InMemoryUserRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    user = user_repository.add_user(CHAT_ID, PipelineState.MINI_APP_OPENED)
    sessions = container.onboarding_service.photo_sessions
    session = PhotoSession(user_id=user.id)
    session.accept_face("face")
    sessions.save(session)

    event = _event(event_type.value, user.id)
    asyncio.run(container.notification_bridge.handle(event))

    assert user_repository.users[user.id].pipeline_state is (
        PipelineState.WAITING_PHOTOS
    )
    assert sessions.get(user.id) is None
    assert telegram_client.texts == [text, PHOTO_REQUEST_TEXT]


def test_analysis_complete_during_intake_offers_survey(
    container: AppContainer,
    user_repository: InMemoryUserRepository,
    user_info_repository: InMemoryUserInfoRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    user = user_repository.add_user(CHAT_ID, PipelineState.WAITING_PHOTOS)

    asyncio.run(
        container.notification_bridge.handle(
            _event(
                NotificationType.ANALYSIS_COMPLETE.value,
                user.id,
                {"description": "Calm and focused."},
            )
        )
    )

    info = user_info_repository.get_latest(user.id)
    assert info is not None
    assert info.description == "Calm and focused."
    assert user_repository.users[user.id].pipeline_state is (
        PipelineState.ANALYSIS_COMPLETED
    )
    assert "ready_to_start_survey" in telegram_client.callback_data()


def test_analysis_complete_mid_survey_only_stores_result(
    container: AppContainer,
    user_repository: InMemoryUserRepository,
    user_info_repository: InMemoryUserInfoRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    user = user_repository.add_user(CHAT_ID, PipelineState.SURVEY_IN_PROGRESS)

    asyncio.run(
        container.notification_bridge.handle(
            _event(
                NotificationType.ANALYSIS_COMPLETE.value,
                user.id,
                {"description": "Calm and focused."},
            )
        )
    )

    info = user_info_repository.get_latest(user.id)
    assert info is not None
    assert info.description == "Calm and focused."
    assert user_repository.state_history == []
    assert telegram_client.messages == []


@pytest.mark.parametrize(
    "event_type",
    [NotificationType.PAYMENT_SUCCESS.value, "something_new"],
)
def test_events_outside_onboarding_are_skipped(
    event_type: str,
    container: AppContainer,
    user_repository: InMemoryUserRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    user = user_repository.add_user(CHAT_ID, PipelineState.MINI_APP_OPENED)

    asyncio.run(container.notification_bridge.handle(_event(event_type, user.id)))

    assert user_repository.state_history == []
    assert telegram_client.messages == []


def test_unknown_user_is_ignored(
    container: AppContainer,
    user_repository: InMemoryUserRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    asyncio.run(
        container.notification_bridge.handle(
            _event(NotificationType.ANALYSIS_FAILED.value, uuid4())
        )
    )

    assert user_repository.state_history == []
    assert telegram_client.messages == []


def test_analysis_outcomes_are_drained_from_the_dispatcher(
    container: AppContainer,
    telegram_client: FakeTelegramClient,
) -> None:
    outcomes = container.analysis_dispatcher.completed
    job = AnalysisJob(
        user_id=uuid4(), chat_id=CHAT_ID, submitted_at=datetime.now(tz=UTC)
    )

    async def scenario() -> bool:
        outcomes.put_nowait(
            AnalysisJobOutcome(job=job, status=AnalysisJobStatus.SUCCEEDED)
        )
        outcomes.put_nowait(
            AnalysisJobOutcome(
                job=job, status=AnalysisJobStatus.FAILED, error="AI_REFUSAL"
            )
        )
        consumer = asyncio.create_task(
            container.notification_bridge.consume_outcomes(outcomes)
        )
        await asyncio.wait_for(outcomes.join(), timeout=1)
        still_running = not consumer.done()
        consumer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await consumer
        return still_running

    assert asyncio.run(scenario())
    assert outcomes.empty()
    assert telegram_client.messages == []
