"""OpenAI audio transcription client."""

from dataclasses import dataclass

from openai import AsyncOpenAI

from onboarding_bot.services.transcription import TranscriptionClient


@dataclass
class OpenAITranscriptionClient(TranscriptionClient):
    """Speech-to-text backed by OpenAI audio transcriptions."""

    client: AsyncOpenAI
    model: str = "whisper-1"

    @classmethod
    def create(cls, api_key: str, model: str) -> "OpenAITranscriptionClient":
        """Create an OpenAI transcription client."""
        return cls(client=AsyncOpenAI(api_key=api_key), model=model)

    async def transcribe(self, audio: bytes, language: str) -> str:
        """Transcribe an OGG voice note."""
        response = await self.client.audio.transcriptions.create(
            model=self.model,
            file=("voice.ogg", audio),
            language=language,
        )
        return response.text
