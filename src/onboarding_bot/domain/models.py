"""Domain models for the onboarding bot."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID

from onboarding_bot.domain.pipeline import FunnelMilestone, PipelineState


class Language(StrEnum):
    """Conversation languages supported by the bot."""

    EN = "en"
    RU = "ru"

    @classmethod
    def from_code(cls, code: str | None) -> "Language":
        """Map a Telegram language code to a supported language."""
        if code and code.lower().startswith("ru"):
            return cls.RU
        return cls.EN


@dataclass(frozen=True)
class UserRecord:
    """Represents a user stored in the database."""

    id: UUID
    telegram_user_id: int
    pipeline_state: PipelineState | None = None
    language: Language = Language.EN
    analysis_credits: int = 0
    subscription_active: bool = False
    subscription_expires_at: datetime | None = None
    referral_code: str | None = None
    funnel_state: FunnelMilestone | None = None

    @property
    def chat_id(self) -> int:
        """Private chat id, which Telegram keeps equal to the user id."""
        return self.telegram_user_id


@dataclass(frozen=True)
class SurveyAnswer:
    """A stored answer to one survey question."""

    answer_index: int
    is_custom: bool
    answer_text: str
    timestamp: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "answerIndex": self.answer_index,
            "isCustom": self.is_custom,
            "answerText": self.answer_text,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "SurveyAnswer":
        return cls(
            answer_index=int(payload.get("answerIndex", 0)),
            is_custom=bool(payload.get("isCustom", False)),
            answer_text=str(payload.get("answerText", "")),
            timestamp=datetime.fromisoformat(str(payload["timestamp"])),
        )


@dataclass(frozen=True)
class UserInfoRecord:
    """Latest survey, photo and analysis data for a user."""

    id: UUID
    user_id: UUID
    survey_answers: dict[int, SurveyAnswer] = field(default_factory=dict)
    survey_progress: int = 0
    photo_refs: tuple[str, ...] = ()
    feelings: str | None = None
    block_hypothesis: str | None = None
    summary_text: str | None = None
    description: str | None = None
    luscher_test_completed: bool = False
    luscher_test_error: bool = False
    analysis_id: UUID | None = None
