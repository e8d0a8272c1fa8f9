"""Models for photo scoring and full analysis."""

from dataclasses import dataclass, field
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, Field

FAILED_RATING = -2


class AnalysisType(StrEnum):
    """Kinds of durable analysis records."""

    DEFAULT = "DEFAULT"


@dataclass(frozen=True)
class AnalysisRecord:
    """Durable record of a background analysis."""

    id: UUID
    user_id: UUID
    status: str


class PhotoRating(BaseModel):
    """Structured output for photo quality scoring."""

    rating: int = Field(ge=-2, le=5)
    reason: str | None = None


class FullAnalysisPayload(BaseModel):
    """Structured output for the full analysis call."""

    refused: bool
    full_answer: str
    block_hypothesis: str
    short_summary: str


class FullAnalysisResult(BaseModel):
    """Outcome of the full analysis, success or application failure."""

    success: bool
    full_answer: str = ""
    block_hypothesis: str = ""
    short_summary: str = ""
    error: str | None = None


@dataclass(frozen=True)
class FullAnalysisRequest:
    """Inputs for the full analysis."""

    user_id: UUID
    photos: list[bytes]
    survey_answers: dict[str, dict[str, object]] = field(default_factory=dict)
    feelings: str | None = None


class AnalysisError(Exception):
    """Raised when the full analysis cannot produce a result."""
