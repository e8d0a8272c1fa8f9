"""User-related business logic."""

import logging
import secrets
from dataclasses import dataclass, replace
from typing import Protocol
from uuid import UUID

from onboarding_bot.domain.models import Language, UserRecord
from onboarding_bot.domain.pipeline import (
    FunnelMilestone,
    PipelineTrigger,
    can_transition,
    next_state,
)

logger = logging.getLogger(__name__)


class UserRepository(Protocol):
    """Persistence interface for user data."""

    def get_by_telegram_id(self, telegram_user_id: int) -> UserRecord | None:
        """Return the user for a Telegram user id, if present."""

    def get_user(self, user_id: UUID) -> UserRecord | None:
        """Return the user by id, if present."""

    def create_user(
        self, telegram_user_id: int, language: Language, referral_code: str
    ) -> UserRecord:
        """Create and return a new user record."""

    def update_user(self, user_id: UUID, fields: dict[str, object]) -> None:
        """Update the given fields of a user."""


@dataclass
class UserService:
    """Application service for user lifecycle and pipeline state."""

    repository: UserRepository

    def ensure_user(
        self, telegram_user_id: int, language_code: str | None = None
    ) -> UserRecord:
        """Ensure a user exists for the Telegram id and return it."""
        existing = self.repository.get_by_telegram_id(telegram_user_id)
        if existing:
            return existing

        created = self.repository.create_user(
            telegram_user_id,
            language=Language.from_code(language_code),
            referral_code=secrets.token_urlsafe(6),
        )
        return self.mark_milestone(created, FunnelMilestone.BOT_JOINED)

    def get_user(self, user_id: UUID) -> UserRecord | None:
        return self.repository.get_user(user_id)

    def can_apply(self, user: UserRecord, trigger: PipelineTrigger) -> bool:
        """Return true when the trigger is legal for the user's state."""
        return can_transition(user.pipeline_state, trigger)

    def transition(self, user: UserRecord, trigger: PipelineTrigger) -> UserRecord:
        """Apply a pipeline trigger and persist the new state."""
        target = next_state(user.pipeline_state, trigger)
        self.repository.update_user(user.id, {"pipeline_state": target})
        logger.info(
            "Pipeline transition",
            extra={
                "user_id": str(user.id),
                "trigger": str(trigger),
                "from_state": str(user.pipeline_state),
                "to_state": str(target),
            },
        )
        return replace(user, pipeline_state=target)

    def mark_milestone(
        self, user: UserRecord, milestone: FunnelMilestone
    ) -> UserRecord:
        """Advance the funnel milestone. Never moves backwards, never raises."""
        current = user.funnel_state
        if current is not None and current.rank >= milestone.rank:
            return user
        try:
            self.repository.update_user(user.id, {"funnel_state": milestone})
        except Exception:
            logger.exception(
                "Failed to mark funnel milestone",
                extra={"user_id": str(user.id), "milestone": str(milestone)},
            )
            return user
        return replace(user, funnel_state=milestone)
