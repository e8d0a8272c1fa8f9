"""Shared test fixtures."""

import base64
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from onboarding_bot.adapters.telegram_client import TelegramClient
from onboarding_bot.adapters.telegram_file_client import TelegramFileClient
from onboarding_bot.config import Settings
from onboarding_bot.containers import AppContainer
from onboarding_bot.domain.analysis import AnalysisRecord, AnalysisType
from onboarding_bot.domain.models import Language, UserInfoRecord, UserRecord
from onboarding_bot.domain.pipeline import PipelineState
from onboarding_bot.domain.sessions import PhotoSession
from onboarding_bot.services.analysis import AnalysisDispatcher, AnalysisRepository
from onboarding_bot.services.cache import InMemoryCache
from onboarding_bot.services.messaging import ChatRef, Messenger
from onboarding_bot.services.notifications import NotificationBridge
from onboarding_bot.services.onboarding import OnboardingService
from onboarding_bot.services.photo_intake import (
    IntakeCompletionHandler,
    PhotoIntakeService,
    PhotoSessionStore,
)
from onboarding_bot.services.scheduling import DelayedCallback, DelayedTaskScheduler
from onboarding_bot.services.transcription import (
    TranscriptionClient,
    TranscriptionService,
)
from onboarding_bot.services.user_info import UserInfoRepository, UserInfoService
from onboarding_bot.services.users import UserRepository, UserService
from onboarding_bot.services.vision import VisionClient, VisionService

JPEG_MARKER = b"\xff\xd8\xff"


def decode_image_url(url: str) -> str:
    """Return the file id carried by a fake JPEG data URL."""
    prefix = "data:image/jpeg;base64,"
    assert url.startswith(prefix), url
    return base64.b64decode(url.removeprefix(prefix)).removeprefix(JPEG_MARKER).decode()


@dataclass
class InMemoryUserRepository(UserRepository):
    """In-memory user repository for tests."""

    users: dict[UUID, UserRecord] = field(default_factory=dict)
    state_history: list[tuple[UUID, PipelineState]] = field(default_factory=list)

    def get_by_telegram_id(self, telegram_user_id: int) -> UserRecord | None:
        for user in self.users.values():
            if user.telegram_user_id == telegram_user_id:
                return user
        return None

    def get_user(self, user_id: UUID) -> UserRecord | None:
        return self.users.get(user_id)

    def create_user(
        self, telegram_user_id: int, language: Language, referral_code: str
    ) -> UserRecord:
        user = UserRecord(
            id=uuid4(),
            telegram_user_id=telegram_user_id,
            language=language,
            referral_code=referral_code,
        )
        self.users[user.id] = user
        return user

    def update_user(self, user_id: UUID, fields: dict[str, object]) -> None:
        self.users[user_id] = replace(self.users[user_id], **fields)
        if "pipeline_state" in fields:
            self.state_history.append((user_id, fields["pipeline_state"]))

    def add_user(
        self,
        telegram_user_id: int = 555,
        state: PipelineState | None = None,
        referral_code: str | None = "ref-code",
    ) -> UserRecord:
        user = UserRecord(
            id=uuid4(),
            telegram_user_id=telegram_user_id,
            pipeline_state=state,
            referral_code=referral_code,
        )
        self.users[user.id] = user
        return user

    def transitions_to(self, state: PipelineState) -> int:
        return sum(1 for _, recorded in self.state_history if recorded is state)


@dataclass
class InMemoryUserInfoRepository(UserInfoRepository):
    """In-memory user info repository for tests."""

    infos: dict[UUID, UserInfoRecord] = field(default_factory=dict)

    def get_latest(self, user_id: UUID) -> UserInfoRecord | None:
        matching = [info for info in self.infos.values() if info.user_id == user_id]
        return matching[-1] if matching else None

    def create(self, user_id: UUID) -> UserInfoRecord:
        info = UserInfoRecord(id=uuid4(), user_id=user_id)
        self.infos[info.id] = info
        return info

    def update(self, info_id: UUID, fields: dict[str, object]) -> None:
        self.infos[info_id] = replace(self.infos[info_id], **fields)


@dataclass
class InMemoryAnalysisRepository(AnalysisRepository):
    """In-memory analysis repository for tests."""

    records: dict[UUID, dict[str, object]] = field(default_factory=dict)

    def create(
        self,
        user_id: UUID,
        analysis_type: AnalysisType,
        input_photo_ref: str,
        cost: int,
    ) -> AnalysisRecord:
        record = AnalysisRecord(id=uuid4(), user_id=user_id, status="PENDING")
        self.records[record.id] = {
            "user_id": user_id,
            "type": analysis_type,
            "input_photo_ref": input_photo_ref,
            "cost": cost,
            "status": "PENDING",
        }
        return record

    def complete(
        self, analysis_id: UUID, result_text: str, summary_text: str
    ) -> None:
        self.records[analysis_id].update(
            {
                "status": "COMPLETED",
                "analysis_result_text": result_text,
                "summary_text": summary_text,
            }
        )


@dataclass
class FakeTelegramClient(TelegramClient):
    """Fake Telegram client that records messages."""

    messages: list[tuple[int, str]] = field(default_factory=list)
    markups: list[dict | None] = field(default_factory=list)
    edits: list[tuple[int, int, str]] = field(default_factory=list)
    deleted: list[tuple[int, int]] = field(default_factory=list)
    callbacks: list[tuple[str, str | None]] = field(default_factory=list)
    commands: list[dict[str, str]] | None = None
    menu_button: dict[str, object] | None = None
    fail_edits: bool = False
    next_message_id: int = 1000

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> int | None:
        self.messages.append((chat_id, text))
        self.markups.append(reply_markup)
        self.next_message_id += 1
        return self.next_message_id

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: dict | None = None,
    ) -> None:
        if self.fail_edits:
            raise RuntimeError("message is not modified")
        self.edits.append((chat_id, message_id, text))
        self.markups.append(reply_markup)

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        self.deleted.append((chat_id, message_id))

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None
    ) -> None:
        self.callbacks.append((callback_query_id, text))

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        self.commands = commands

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        self.menu_button = menu_button

    @property
    def texts(self) -> list[str]:
        return [text for _, text in self.messages]

    def callback_data(self, index: int = -1) -> list[str]:
        """Callback data of the buttons on a sent message."""
        markup = self.markups[index] or {}
        return [
            button.get("callback_data", "")
            for row in markup.get("inline_keyboard", [])
            for button in row
        ]


@dataclass
class FakeTelegramFileClient(TelegramFileClient):
    """Fake Telegram file client; file bytes are a JPEG marker plus the id."""

    downloads: list[str] = field(default_factory=list)

    async def get_file_url(self, file_id: str) -> str:
        return f"https://files.test/{file_id}"

    async def download_file_bytes(self, file_id: str) -> bytes:
        self.downloads.append(file_id)
        return JPEG_MARKER + file_id.encode()


@dataclass
class FakeVisionClient(VisionClient):
    """Fake vision client returning configured ratings and analyses."""

    face_rating: int = 4
    set_rating: int = 4
    analysis_payloads: list[dict[str, object]] = field(
        default_factory=lambda: [
            {
                "refused": False,
                "full_answer": "A detailed answer.",
                "block_hypothesis": "A block hypothesis.",
                "short_summary": "You are resilient.",
            }
        ]
    )
    calls: list[tuple[tuple[str, ...], str]] = field(default_factory=list)

    async def extract(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        image_urls: list[str],
        schema: dict[str, object],
        prompt: str,
    ) -> dict[str, object]:
        self.calls.append((tuple(image_urls), prompt))
        properties = schema.get("properties", {})
        if isinstance(properties, dict) and "full_answer" in properties:
            if len(self.analysis_payloads) > 1:
                return self.analysis_payloads.pop(0)
            return self.analysis_payloads[0]
        rating = self.face_rating if len(image_urls) == 1 else self.set_rating
        return {"rating": rating, "reason": None}

    def file_ids(self, index: int = -1) -> list[str]:
        """File ids of the images sent in a call, decoded from data URLs."""
        image_urls, _ = self.calls[index]
        return [decode_image_url(url) for url in image_urls]


@dataclass
class FakeTranscriptionClient(TranscriptionClient):
    """Fake speech-to-text client."""

    text: str = "I feel calm but a little tired."
    languages: list[str] = field(default_factory=list)

    async def transcribe(self, audio: bytes, language: str) -> str:
        self.languages.append(language)
        return self.text


@dataclass
class ManualScheduler(DelayedTaskScheduler):
    """Delayed-task scheduler fired explicitly by tests."""

    tasks: dict[str, tuple[float, DelayedCallback]] = field(default_factory=dict)
    scheduled: list[tuple[str, float]] = field(default_factory=list)

    def schedule(
        self, key: str, delay_seconds: float, callback: DelayedCallback
    ) -> None:
        self.tasks[key] = (delay_seconds, callback)
        self.scheduled.append((key, delay_seconds))

    def cancel(self, key: str) -> bool:
        return self.tasks.pop(key, None) is not None

    def is_pending(self, key: str) -> bool:
        return key in self.tasks

    async def fire_all(self) -> None:
        for key in list(self.tasks):
            _, callback = self.tasks.pop(key)
            await callback()


@dataclass
class FakeClock:
    """Controllable clock for TTL caches."""

    now: datetime = field(default_factory=lambda: datetime(2026, 1, 1, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class RecordingCompletionHandler(IntakeCompletionHandler):
    """Records completed photo sessions without clearing them."""

    completed: list[PhotoSession] = field(default_factory=list)

    async def complete_photo_intake(
        self, user_id: UUID, chat: ChatRef, session: PhotoSession
    ) -> None:
        self.completed.append(session)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        telegram_bot_token="test-token",
        telegram_bot_username="test_onboarding_bot",
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        admin_token="admin-token",
        openai_api_key="openai-key",
        mini_app_url="https://app.example.com",
        repost_video_url="https://video.example.com/intro",
        support_username="support_team",
        environment="test",
    )


@pytest.fixture
def user_repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def user_info_repository() -> InMemoryUserInfoRepository:
    return InMemoryUserInfoRepository()


@pytest.fixture
def analysis_repository() -> InMemoryAnalysisRepository:
    return InMemoryAnalysisRepository()


@pytest.fixture
def telegram_client() -> FakeTelegramClient:
    return FakeTelegramClient()


@pytest.fixture
def file_client() -> FakeTelegramFileClient:
    return FakeTelegramFileClient()


@pytest.fixture
def vision_client() -> FakeVisionClient:
    return FakeVisionClient()


@pytest.fixture
def transcription_client() -> FakeTranscriptionClient:
    return FakeTranscriptionClient()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    user_repository: InMemoryUserRepository,
    user_info_repository: InMemoryUserInfoRepository,
    analysis_repository: InMemoryAnalysisRepository,
    telegram_client: FakeTelegramClient,
    file_client: FakeTelegramFileClient,
    vision_client: FakeVisionClient,
    transcription_client: FakeTranscriptionClient,
    scheduler: ManualScheduler,
    clock: FakeClock,
) -> AppContainer:
    user_service = UserService(user_repository)
    user_info_service = UserInfoService(user_info_repository)
    messenger = Messenger(telegram_client)
    vision_service = VisionService(
        client=vision_client,
        model=settings.openai_model,
        reasoning_effort=settings.openai_reasoning_effort,
        store=settings.openai_store,
    )
    analysis_dispatcher = AnalysisDispatcher(
        user_info_service=user_info_service,
        analysis_repository=analysis_repository,
        vision_service=vision_service,
        file_client=file_client,
        messenger=messenger,
        support_username=settings.support_username,
    )
    photo_sessions = PhotoSessionStore(InMemoryCache(clock=clock))
    onboarding_service = OnboardingService(
        user_service=user_service,
        user_info_service=user_info_service,
        photo_sessions=photo_sessions,
        analysis_dispatcher=analysis_dispatcher,
        transcription_service=TranscriptionService(transcription_client),
        file_client=file_client,
        messenger=messenger,
        mini_app_url=settings.mini_app_url,
        bot_username=settings.telegram_bot_username,
        repost_video_url=settings.repost_video_url,
    )
    photo_intake_service = PhotoIntakeService(
        sessions=photo_sessions,
        vision_service=vision_service,
        file_client=file_client,
        messenger=messenger,
        scheduler=scheduler,
        completion=onboarding_service,
    )
    notification_bridge = NotificationBridge(
        user_service=user_service,
        user_info_service=user_info_service,
        onboarding_service=onboarding_service,
        messenger=messenger,
        closure_cache=InMemoryCache(clock=clock),
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        telegram_client=telegram_client,
        telegram_file_client=file_client,
        messenger=messenger,
        user_service=user_service,
        user_info_service=user_info_service,
        photo_intake_service=photo_intake_service,
        onboarding_service=onboarding_service,
        analysis_dispatcher=analysis_dispatcher,
        notification_bridge=notification_bridge,
        close_resources=close_resources,
    )
