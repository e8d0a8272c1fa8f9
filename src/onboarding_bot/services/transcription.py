"""Voice message transcription."""

import logging
from dataclasses import dataclass
from typing import Protocol

from onboarding_bot.domain.models import Language

logger = logging.getLogger(__name__)


class TranscriptionClient(Protocol):
    """Interface for speech-to-text."""

    async def transcribe(self, audio: bytes, language: str) -> str:
        """Return the text spoken in the audio."""


@dataclass
class TranscriptionService:
    """Turns voice notes into feelings text."""

    client: TranscriptionClient

    async def transcribe(self, audio: bytes, language: Language) -> str:
        text = await self.client.transcribe(audio, language=language.value)
        logger.info(
            "Voice message transcribed",
            extra={"language": language.value, "length": len(text)},
        )
        return text.strip()
