"""Service clients — built once at process start and passed explicitly."""

from dataclasses import dataclass

from loguru import logger

from config.settings import Settings
from services.asr.transcriber import Transcriber
from services.db.repository import Repository
from services.llm.client import LLMClient
from services.storage.audio_store import AudioStore


@dataclass
class ServiceClients:
    settings: Settings
    repository: Repository
    audio_store: AudioStore
    transcriber: Transcriber
    llm: LLMClient


def build_clients(settings: Settings) -> ServiceClients:
    clients = ServiceClients(
        settings=settings,
        repository=Repository.from_url(settings.database_url),
        audio_store=AudioStore(settings.audio_storage_dir),
        transcriber=Transcriber.from_settings(settings),
        llm=LLMClient.from_settings(settings),
    )
    if not settings.asr_configured:
        logger.warning("GROQ_API_KEY not set — transcription requests will fail")
    if not settings.analysis_configured:
        logger.warning("GEMINI_API_KEY not set — analysis will be skipped")
    return clients
