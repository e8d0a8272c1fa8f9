"""Models for out-of-band notification events."""

from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

PROCEED_TO_FINAL_MESSAGE = "PROCEED_TO_FINAL_MESSAGE"


class NotificationType(StrEnum):
    """Known notification event types."""

    ANALYSIS_COMPLETE = "analysis_complete"
    ANALYSIS_FAILED = "analysis_failed"
    FACE_NOT_DETECTED = "face_not_detected"
    AI_ANALYSIS_REFUSAL = "ai_analysis_refusal"
    MINI_APP_CLOSED = "mini_app_closed"
    NEW_REFERRAL = "new_referral"
    REFERRAL_BONUS = "referral_bonus"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    FUNNEL_MESSAGE = "funnel_message"


class NotificationEvent(BaseModel):
    """Event delivered at least once from outside the conversation."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    subject_user_id: UUID = Field(alias="userId")
    chat_id: int = Field(alias="chatId")
    data: dict[str, object] = Field(default_factory=dict)
