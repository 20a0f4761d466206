"""Service settings — read once from the environment (.env supported via python-dotenv)."""

import os
from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    database_url: str = "sqlite:///data/interviews.db"
    audio_storage_dir: str = "data/recordings"

    # Groq Whisper, via its OpenAI-compatible endpoint
    groq_api_key: str = ""
    groq_base_url: str = "https://api.groq.com/openai/v1"
    asr_model: str = "whisper-large-v3"
    asr_timeout: float = 300

    # Gemini, via its OpenAI-compatible endpoint
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    analysis_model: str = "gemini-2.0-flash"
    analysis_timeout_seconds: float = Field(45, gt=0)
    analysis_temperature: float = 0.7
    skip_analysis: bool = False

    @property
    def asr_configured(self) -> bool:
        return bool(self.groq_api_key)

    @property
    def analysis_configured(self) -> bool:
        return bool(self.gemini_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            audio_storage_dir=os.getenv("AUDIO_STORAGE_DIR", defaults.audio_storage_dir),
            groq_api_key=os.getenv("GROQ_API_KEY", ""),
            groq_base_url=os.getenv("GROQ_BASE_URL", defaults.groq_base_url),
            asr_model=os.getenv("ASR_MODEL", defaults.asr_model),
            asr_timeout=float(os.getenv("ASR_TIMEOUT_SECONDS", defaults.asr_timeout)),
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            gemini_base_url=os.getenv("GEMINI_BASE_URL", defaults.gemini_base_url),
            analysis_model=os.getenv("ANALYSIS_MODEL", defaults.analysis_model),
            analysis_timeout_seconds=float(
                os.getenv("ANALYSIS_TIMEOUT_SECONDS", defaults.analysis_timeout_seconds)
            ),
            analysis_temperature=float(
                os.getenv("ANALYSIS_TEMPERATURE", defaults.analysis_temperature)
            ),
            skip_analysis=_env_bool("SKIP_ANALYSIS"),
        )
