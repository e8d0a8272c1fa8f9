"""Photo scoring and full analysis using LLMs."""

import base64
import json
import logging
from dataclasses import dataclass
from typing import Protocol

from onboarding_bot.domain.analysis import (
    FAILED_RATING,
    FullAnalysisPayload,
    FullAnalysisRequest,
    FullAnalysisResult,
    PhotoRating,
)

logger = logging.getLogger(__name__)

AI_REFUSAL_ERROR = "AI_REFUSAL"
MAX_REFUSAL_RETRIES = 2

RATING_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "rating": {"type": "integer", "minimum": -2, "maximum": 5},
        "reason": {"anyOf": [{"type": "string"}, {"type": "null"}]},
    },
    "required": ["rating", "reason"],
    "additionalProperties": False,
}

FULL_ANALYSIS_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "refused": {"type": "boolean"},
        "full_answer": {"type": "string"},
        "block_hypothesis": {"type": "string"},
        "short_summary": {"type": "string"},
    },
    "required": ["refused", "full_answer", "block_hypothesis", "short_summary"],
    "additionalProperties": False,
}

_FACE_PROMPT = (
    "Check whether this photo shows one clearly visible human face, frontal, "
    "well lit and not covered. Rate it from -2 (unusable) to 5 (perfect) and "
    "give a short reason."
)
_PHOTO_SET_PROMPT = (
    "These photos should be one face photo followed by palm photos. Rate from "
    "-2 (unusable) to 5 (perfect) how well the set meets that requirement and "
    "give a short reason."
)
_FULL_ANALYSIS_PROMPT = (
    "You are a psychologist. The first photo shows the person's face, the "
    "others their palms. Using the photos and the questionnaire below, write a "
    "full answer, a one-paragraph block hypothesis and a short summary. Set "
    "refused to true if you cannot analyse the photos.\n\n"
    "Questionnaire answers:\n{survey}\n\nFeelings:\n{feelings}"
)


class VisionClient(Protocol):
    """Interface for LLM vision extraction."""

    async def extract(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        image_urls: list[str],
        schema: dict[str, object],
        prompt: str,
    ) -> dict[str, object]:
        """Return structured vision extraction data."""


@dataclass
class VisionService:
    """Service that prepares vision prompts and validates results."""

    client: VisionClient
    model: str
    reasoning_effort: str | None
    store: bool

    async def score_face_photo(self, image_bytes: bytes) -> int:
        """Rate a single face photo; failures rate as unusable."""
        return await self._score([image_bytes], _FACE_PROMPT)

    async def score_photo_set(self, images: list[bytes]) -> int:
        """Rate a whole burst of photos at once."""
        return await self._score(images, _PHOTO_SET_PROMPT)

    async def run_full_analysis(
        self, request: FullAnalysisRequest
    ) -> FullAnalysisResult:
        """Run the full analysis, retrying when the model refuses."""
        prompt = _FULL_ANALYSIS_PROMPT.format(
            survey=json.dumps(request.survey_answers, ensure_ascii=False, indent=2),
            feelings=request.feelings or "",
        )
        image_urls = [_to_data_url(image) for image in request.photos]
        for attempt in range(MAX_REFUSAL_RETRIES + 1):
            raw = await self.client.extract(
                model=self.model,
                reasoning_effort=self.reasoning_effort,
                store=self.store,
                image_urls=image_urls,
                schema=FULL_ANALYSIS_SCHEMA,
                prompt=prompt,
            )
            payload = FullAnalysisPayload.model_validate(raw)
            if not payload.refused:
                return FullAnalysisResult(
                    success=True,
                    full_answer=payload.full_answer,
                    block_hypothesis=payload.block_hypothesis,
                    short_summary=payload.short_summary,
                )
            logger.warning(
                "Model refused the full analysis",
                extra={"user_id": str(request.user_id), "attempt": attempt + 1},
            )
        return FullAnalysisResult(success=False, error=AI_REFUSAL_ERROR)

    async def _score(self, images: list[bytes], prompt: str) -> int:
        try:
            raw = await self.client.extract(
                model=self.model,
                reasoning_effort=self.reasoning_effort,
                store=self.store,
                image_urls=[_to_data_url(image) for image in images],
                schema=RATING_SCHEMA,
                prompt=prompt,
            )
            return PhotoRating.model_validate(raw).rating
        except Exception:
            logger.exception("Photo scoring failed", extra={"photo_count": len(images)})
            return FAILED_RATING


def _to_data_url(image_bytes: bytes) -> str:
    """Convert bytes to a base64 data URL for image input."""
    mime_type = _detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def _detect_mime_type(image_bytes: bytes) -> str:
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"
