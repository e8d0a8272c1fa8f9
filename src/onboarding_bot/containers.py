"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from onboarding_bot.adapters.openai_transcription_client import (
    OpenAITranscriptionClient,
)
from onboarding_bot.adapters.openai_vision_client import OpenAIVisionClient
from onboarding_bot.adapters.supabase_analysis_repository import (
    SupabaseAnalysisRepository,
)
from onboarding_bot.adapters.supabase_user_info_repository import (
    SupabaseUserInfoRepository,
)
from onboarding_bot.adapters.supabase_user_repository import SupabaseUserRepository
from onboarding_bot.adapters.telegram_client import (
    HttpxTelegramClient,
    TelegramClient,
)
from onboarding_bot.adapters.telegram_file_client import (
    HttpxTelegramFileClient,
    TelegramFileClient,
)
from onboarding_bot.config import Settings
from onboarding_bot.services.analysis import AnalysisDispatcher
from onboarding_bot.services.cache import InMemoryCache
from onboarding_bot.services.messaging import Messenger
from onboarding_bot.services.notifications import NotificationBridge
from onboarding_bot.services.onboarding import OnboardingService
from onboarding_bot.services.photo_intake import PhotoIntakeService, PhotoSessionStore
from onboarding_bot.services.scheduling import AsyncioDelayedTaskScheduler
from onboarding_bot.services.transcription import TranscriptionService
from onboarding_bot.services.user_info import UserInfoService
from onboarding_bot.services.users import UserService
from onboarding_bot.services.vision import VisionService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    telegram_client: TelegramClient
    telegram_file_client: TelegramFileClient
    messenger: Messenger
    user_service: UserService
    user_info_service: UserInfoService
    photo_intake_service: PhotoIntakeService
    onboarding_service: OnboardingService
    analysis_dispatcher: AnalysisDispatcher
    notification_bridge: NotificationBridge
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    user_service = UserService(SupabaseUserRepository(supabase_client))
    user_info_service = UserInfoService(SupabaseUserInfoRepository(supabase_client))
    telegram_client = HttpxTelegramClient.create(resolved_settings.telegram_bot_token)
    telegram_file_client = HttpxTelegramFileClient.create(
        resolved_settings.telegram_bot_token
    )
    messenger = Messenger(telegram_client)
    vision_service = VisionService(
        client=OpenAIVisionClient.create(resolved_settings.openai_api_key),
        model=resolved_settings.openai_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
    )
    transcription_service = TranscriptionService(
        OpenAITranscriptionClient.create(
            resolved_settings.openai_api_key,
            model=resolved_settings.openai_transcription_model,
        )
    )
    analysis_dispatcher = AnalysisDispatcher(
        user_info_service=user_info_service,
        analysis_repository=SupabaseAnalysisRepository(supabase_client),
        vision_service=vision_service,
        file_client=telegram_file_client,
        messenger=messenger,
        support_username=resolved_settings.support_username,
    )
    photo_sessions = PhotoSessionStore(InMemoryCache())
    onboarding_service = OnboardingService(
        user_service=user_service,
        user_info_service=user_info_service,
        photo_sessions=photo_sessions,
        analysis_dispatcher=analysis_dispatcher,
        transcription_service=transcription_service,
        file_client=telegram_file_client,
        messenger=messenger,
        mini_app_url=resolved_settings.mini_app_url,
        bot_username=resolved_settings.telegram_bot_username,
        repost_video_url=resolved_settings.repost_video_url,
    )
    scheduler = AsyncioDelayedTaskScheduler()
    photo_intake_service = PhotoIntakeService(
        sessions=photo_sessions,
        vision_service=vision_service,
        file_client=telegram_file_client,
        messenger=messenger,
        scheduler=scheduler,
        completion=onboarding_service,
    )
    notification_bridge = NotificationBridge(
        user_service=user_service,
        user_info_service=user_info_service,
        onboarding_service=onboarding_service,
        messenger=messenger,
        closure_cache=InMemoryCache(),
    )

    async def close_resources() -> None:
        await scheduler.shutdown()
        await telegram_client.close()
        await telegram_file_client.close()

    return AppContainer(
        settings=resolved_settings,
        telegram_client=telegram_client,
        telegram_file_client=telegram_file_client,
        messenger=messenger,
        user_service=user_service,
        user_info_service=user_info_service,
        photo_intake_service=photo_intake_service,
        onboarding_service=onboarding_service,
        analysis_dispatcher=analysis_dispatcher,
        notification_bridge=notification_bridge,
        close_resources=close_resources,
    )
