"""Supabase-backed analysis record repository."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from onboarding_bot.domain.analysis import AnalysisRecord, AnalysisType
from onboarding_bot.services.analysis import AnalysisRepository


@dataclass
class SupabaseAnalysisRepository(AnalysisRepository):
    """Supabase implementation for analysis records."""

    client: Client

    def create(
        self,
        user_id: UUID,
        analysis_type: AnalysisType,
        input_photo_ref: str,
        cost: int,
    ) -> AnalysisRecord:
        """Create a pending analysis row."""
        response = (
            self.client.table("analyses")
            .insert(
                {
                    "user_id": str(user_id),
                    "type": analysis_type.value,
                    "input_photo_ref": input_photo_ref,
                    "cost": cost,
                    "status": "PENDING",
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create analysis in Supabase")
        row = response.data[0]
        return AnalysisRecord(
            id=UUID(str(row["id"])),
            user_id=UUID(str(row["user_id"])),
            status=str(row["status"]),
        )

    def complete(
        self, analysis_id: UUID, result_text: str, summary_text: str
    ) -> None:
        """Store the analysis result and mark the row completed."""
        self.client.table("analyses").update(
            {
                "analysis_result_text": result_text,
                "summary_text": summary_text,
                "status": "COMPLETED",
            }
        ).eq("id", str(analysis_id)).execute()
