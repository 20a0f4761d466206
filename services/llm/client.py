"""LLM Client — Gemini over its OpenAI-compatible endpoint, JSON mode.

Raw completions only: the caller parses and validates the text itself so the
offending output can be logged when the model drifts from the schema.
"""

import httpx
from openai import AsyncOpenAI
from loguru import logger

from config.settings import Settings


class LLMClient:
    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str = "gemini-2.0-flash",
        temperature: float = 0.7,
        client: AsyncOpenAI | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.temperature = temperature
        # No client-side retries: a retried request would outlive the analysis deadline
        self._client = client or AsyncOpenAI(api_key=api_key or "unset", base_url=base_url, max_retries=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        return cls(
            api_key=settings.gemini_api_key,
            base_url=settings.gemini_base_url,
            model=settings.analysis_model,
            temperature=settings.analysis_temperature,
        )

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def extract_raw(self, prompt: str, system_prompt: str | None = None) -> str:
        """JSON-mode completion, returned as raw text.

        Returns:
            Raw text response from the model ("" when the model returned no content)
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = await self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=self.temperature,
            response_format={"type": "json_object"},
        )
        if not response.choices:
            return ""
        choice = response.choices[0]
        if choice.finish_reason not in (None, "stop"):
            logger.warning(f"LLM finished with reason '{choice.finish_reason}'")
        return choice.message.content or ""

    async def check_health(self) -> dict:
        """Check the endpoint is reachable with the configured key."""
        if not self.is_configured():
            return {"status": "not_configured"}
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(
                    f"{self.base_url.rstrip('/')}/models",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
            if resp.status_code == 200:
                return {"status": "healthy", "model": self.model}
            return {"status": "error", "detail": f"HTTP {resp.status_code}"}
        except httpx.HTTPError as e:
            return {"status": "unreachable", "detail": str(e)}
