"""Supabase-backed user info repository."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from onboarding_bot.adapters.supabase_rows import (
    parse_survey_answers,
    parse_uuid,
    to_row,
)
from onboarding_bot.domain.models import UserInfoRecord
from onboarding_bot.services.user_info import UserInfoRepository


@dataclass
class SupabaseUserInfoRepository(UserInfoRepository):
    """Supabase implementation for user info persistence."""

    client: Client

    def get_latest(self, user_id: UUID) -> UserInfoRecord | None:
        """Return the newest user info row."""
        response = (
            self.client.table("user_infos")
            .select("*")
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if response.data:
            return _to_user_info(response.data[0])
        return None

    def create(self, user_id: UUID) -> UserInfoRecord:
        """Create an empty user info row."""
        response = (
            self.client.table("user_infos")
            .insert(
                {
                    "user_id": str(user_id),
                    "survey_answers": {},
                    "survey_progress": 0,
                    "photo_refs": [],
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create user info in Supabase")
        return _to_user_info(response.data[0])

    def update(self, info_id: UUID, fields: dict[str, object]) -> None:
        """Update user info columns."""
        self.client.table("user_infos").update(to_row(fields)).eq(
            "id", str(info_id)
        ).execute()


def _to_user_info(row: dict[str, object]) -> UserInfoRecord:
    return UserInfoRecord(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        survey_answers=parse_survey_answers(row.get("survey_answers")),
        survey_progress=int(row.get("survey_progress") or 0),
        photo_refs=tuple(row.get("photo_refs") or ()),
        feelings=row.get("feelings"),
        block_hypothesis=row.get("block_hypothesis"),
        summary_text=row.get("summary_text"),
        description=row.get("description"),
        luscher_test_completed=bool(row.get("luscher_test_completed")),
        luscher_test_error=bool(row.get("luscher_test_error")),
        analysis_id=parse_uuid(row.get("analysis_id")),
    )
