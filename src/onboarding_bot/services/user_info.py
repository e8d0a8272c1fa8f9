"""Survey, photo and analysis data attached to a user."""

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from onboarding_bot.domain.models import SurveyAnswer, UserInfoRecord


class UserInfoRepository(Protocol):
    """Persistence interface for user info records."""

    def get_latest(self, user_id: UUID) -> UserInfoRecord | None:
        """Return the most recent user info record, if any."""

    def create(self, user_id: UUID) -> UserInfoRecord:
        """Create an empty user info record."""

    def update(self, info_id: UUID, fields: dict[str, object]) -> None:
        """Update the given fields of a user info record."""


@dataclass
class UserInfoService:
    """Reads and writes the latest user info record."""

    repository: UserInfoRepository

    def get_latest(self, user_id: UUID) -> UserInfoRecord | None:
        return self.repository.get_latest(user_id)

    def get_or_create(self, user_id: UUID) -> UserInfoRecord:
        """Return the latest record, creating one lazily."""
        return self.repository.get_latest(user_id) or self.repository.create(user_id)

    def update(self, info: UserInfoRecord, **fields: object) -> UserInfoRecord:
        """Persist the fields and return the updated record."""
        self.repository.update(info.id, fields)
        return replace(info, **fields)

    def reset_survey(self, info: UserInfoRecord) -> UserInfoRecord:
        return self.update(info, survey_answers={}, survey_progress=0)

    def record_answer(
        self,
        info: UserInfoRecord,
        question: int,
        answer_index: int,
        answer_text: str,
        *,
        is_custom: bool = False,
    ) -> UserInfoRecord:
        """Store an answer and move progress to the answered question."""
        answers = dict(info.survey_answers)
        answers[question] = SurveyAnswer(
            answer_index=answer_index,
            is_custom=is_custom,
            answer_text=answer_text,
            timestamp=datetime.now(tz=UTC),
        )
        return self.update(info, survey_answers=answers, survey_progress=question)

    def rewind_to(self, info: UserInfoRecord, question: int) -> UserInfoRecord:
        """Delete answers from the question onwards."""
        answers = {
            number: answer
            for number, answer in info.survey_answers.items()
            if number < question
        }
        return self.update(
            info, survey_answers=answers, survey_progress=max(0, question - 1)
        )
