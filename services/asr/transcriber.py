"""Word-level transcription — Groq Whisper over its OpenAI-compatible API.

Returns `verbose_json` with both word and segment timestamps (seconds):
words drive speaker attribution, segments drive the fallback path and the
duration estimate.
"""

import time

from loguru import logger
from openai import AsyncOpenAI, OpenAIError

from config.errors import TranscriptionFailedError
from config.schemas import AsrResponse
from config.settings import Settings


class Transcriber:
    """Thin async wrapper over the transcription endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str = "whisper-large-v3",
        timeout: float = 300,
        client: AsyncOpenAI | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self._client = client or AsyncOpenAI(api_key=api_key or "unset", base_url=base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Transcriber":
        return cls(
            api_key=settings.groq_api_key,
            base_url=settings.groq_base_url,
            model=settings.asr_model,
            timeout=settings.asr_timeout,
        )

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def transcribe(
        self,
        audio: bytes,
        filename: str = "recording.wav",
        call_id: str = "-",
    ) -> AsrResponse:
        """Transcribe raw audio bytes.

        Raises:
            TranscriptionFailedError: provider unreachable, rejected the
                request, or returned a payload that is not verbose_json
        """
        if not self.is_configured():
            raise TranscriptionFailedError("Transcription provider API key not configured")

        logger.info(f"[{call_id}] Transcribing {len(audio) / 1024:.0f} KB with {self.model}")
        t0 = time.time()
        try:
            response = await self._client.audio.transcriptions.create(
                file=(filename, audio),
                model=self.model,
                response_format="verbose_json",
                timestamp_granularities=["word", "segment"],
            )
        except OpenAIError as e:
            logger.error(f"[{call_id}] Transcription request failed: {e}")
            raise TranscriptionFailedError(f"Transcription failed: {e}") from e

        payload = response.model_dump() if hasattr(response, "model_dump") else dict(response)
        # words/segments come back as null when a granularity is unavailable
        payload = {k: v for k, v in payload.items() if v is not None}
        try:
            result = AsrResponse.model_validate(payload)
        except ValueError as e:
            logger.error(f"[{call_id}] Unexpected transcription payload: {str(payload)[:500]}")
            raise TranscriptionFailedError("Transcription response was not verbose_json") from e

        logger.info(
            f"[{call_id}] Transcription done in {time.time() - t0:.1f}s: "
            f"{len(result.words)} words, {len(result.segments)} segments, "
            f"language={result.language}"
        )
        return result
