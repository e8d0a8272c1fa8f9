"""Supabase-backed user repository."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from onboarding_bot.adapters.supabase_rows import parse_datetime, to_row
from onboarding_bot.domain.models import Language, UserRecord
from onboarding_bot.domain.pipeline import FunnelMilestone, parse_pipeline_state
from onboarding_bot.services.users import UserRepository

_USER_COLUMNS = (
    "id, telegram_user_id, pipeline_state, language, analysis_credits, "
    "subscription_active, subscription_expires_at, referral_code, funnel_state"
)


@dataclass
class SupabaseUserRepository(UserRepository):
    """Supabase implementation for user persistence."""

    client: Client

    def get_by_telegram_id(self, telegram_user_id: int) -> UserRecord | None:
        """Return the user for a Telegram user id, if present."""
        response = (
            self.client.table("users")
            .select(_USER_COLUMNS)
            .eq("telegram_user_id", telegram_user_id)
            .limit(1)
            .execute()
        )
        if response.data:
            return _to_user(response.data[0])
        return None

    def get_user(self, user_id: UUID) -> UserRecord | None:
        """Return the user by id, if present."""
        response = (
            self.client.table("users")
            .select(_USER_COLUMNS)
            .eq("id", str(user_id))
            .limit(1)
            .execute()
        )
        if response.data:
            return _to_user(response.data[0])
        return None

    def create_user(
        self, telegram_user_id: int, language: Language, referral_code: str
    ) -> UserRecord:
        """Create a new user row and return it."""
        response = (
            self.client.table("users")
            .insert(
                {
                    "telegram_user_id": telegram_user_id,
                    "language": language.value,
                    "referral_code": referral_code,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create user in Supabase")
        return _to_user(response.data[0])

    def update_user(self, user_id: UUID, fields: dict[str, object]) -> None:
        """Update user columns."""
        self.client.table("users").update(to_row(fields)).eq(
            "id", str(user_id)
        ).execute()


def _to_user(row: dict[str, object]) -> UserRecord:
    funnel_state = row.get("funnel_state")
    return UserRecord(
        id=UUID(str(row["id"])),
        telegram_user_id=int(row["telegram_user_id"]),
        pipeline_state=parse_pipeline_state(row.get("pipeline_state")),
        language=Language.from_code(row.get("language")),
        analysis_credits=int(row.get("analysis_credits") or 0),
        subscription_active=bool(row.get("subscription_active")),
        subscription_expires_at=parse_datetime(row.get("subscription_expires_at")),
        referral_code=row.get("referral_code"),
        funnel_state=(
            FunnelMilestone(funnel_state)
            if funnel_state in set(FunnelMilestone)
            else None
        ),
    )
