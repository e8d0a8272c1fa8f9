"""Conversion between domain values and Supabase row values."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from onboarding_bot.domain.models import SurveyAnswer


def to_row(fields: dict[str, object]) -> dict[str, object]:
    """Convert domain field values into JSON-friendly column values."""
    return {key: _to_column_value(value) for key, value in fields.items()}


def parse_survey_answers(raw: object) -> dict[int, SurveyAnswer]:
    """Parse stored answers keyed by question number."""
    if not isinstance(raw, dict):
        return {}
    answers: dict[int, SurveyAnswer] = {}
    for key, payload in raw.items():
        number = str(key).removeprefix("question")
        if number.isdigit() and isinstance(payload, dict):
            answers[int(number)] = SurveyAnswer.from_dict(payload)
    return answers


def parse_uuid(raw: object) -> UUID | None:
    if raw is None:
        return None
    return UUID(str(raw))


def parse_datetime(raw: object) -> datetime | None:
    if raw is None:
        return None
    return datetime.fromisoformat(str(raw))


def _to_column_value(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, tuple):
        return list(value)
    if isinstance(value, dict):
        return {
            f"question{key}" if isinstance(key, int) else key: (
                item.to_dict() if isinstance(item, SurveyAnswer) else item
            )
            for key, item in value.items()
        }
    return value
