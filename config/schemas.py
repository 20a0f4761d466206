"""Pydantic schemas — transcript, speaker turns, ASR payloads and analysis reports."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from enum import Enum


# ── SPEAKERS ──

class Speaker(str, Enum):
    USER = "User"  # interviewer / HR side of the call
    AI = "AI"      # candidate side (the voice agent labels the applicant "AI")


class AttributedSpeaker(str, Enum):
    """Speaker label during attribution — Unknown never survives into segments."""
    USER = "User"
    AI = "AI"
    UNKNOWN = "Unknown"


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADED = "uploaded"
    TRANSCRIPTION_FAILED = "transcription_failed"
    FAILED_UPLOAD = "failed_upload"
    TRANSCRIPT_BACKED_UP = "transcript_backed_up"  # client-side transcript only, no audio


# ── TRANSCRIPT ──

class TranscriptSegment(BaseModel):
    """One contiguous run of speech by one speaker (persisted shape)."""
    speaker: Speaker
    text: str
    timestamp: int = Field(ge=0, description="Start time in ms from recording start")


class SpeakerTurn(BaseModel):
    """Coarse speaker-turn interval from the real-time diarizer."""
    model_config = ConfigDict(populate_by_name=True)

    speaker: Speaker
    start_ms: float = Field(alias="startTimeMs")
    end_ms: float = Field(alias="endTimeMs")


class Word(BaseModel):
    """Word with millisecond timing — intermediate, never persisted."""
    text: str
    start_ms: float
    end_ms: float
    speaker_tag: Optional[int] = Field(
        None, description="Native diarization tag when the ASR provider supplies one"
    )


class AttributedWord(BaseModel):
    word: Word
    speaker: AttributedSpeaker


# ── ASR PROVIDER (verbose_json) ──

class AsrWord(BaseModel):
    word: str
    start: float = Field(description="Seconds")
    end: float = Field(description="Seconds")
    speaker_tag: Optional[int] = None


class AsrSegment(BaseModel):
    start: float = Field(description="Seconds")
    end: Optional[float] = Field(None, description="Seconds")
    text: str = ""


class AsrResponse(BaseModel):
    """Parsed verbose_json transcription — words and segments in seconds."""
    text: str = ""
    language: Optional[str] = None
    words: list[AsrWord] = Field(default_factory=list)
    segments: list[AsrSegment] = Field(default_factory=list)

    def to_words(self) -> list[Word]:
        return [
            Word(
                text=w.word.strip(),
                start_ms=w.start * 1000,
                end_ms=w.end * 1000,
                speaker_tag=w.speaker_tag,
            )
            for w in self.words
        ]


# ── ANALYSIS REPORT (LLM structured output) ──

class RubricScore(BaseModel):
    score: float = Field(ge=1, le=5, description="Score from 1 (poor) to 5 (excellent)")
    rationale: str


class StarEvaluation(BaseModel):
    """STAR method evaluation for one answer."""
    score: float = Field(ge=1, le=5)
    rationale: str
    situation_present: bool
    task_present: bool
    action_present: bool
    result_present: bool


class AnswerEvaluation(BaseModel):
    question: str
    answer: str
    star_evaluation: StarEvaluation


class AnalysisReport(BaseModel):
    """Structured assessment of the candidate pre-interview call."""
    answers: list[AnswerEvaluation]
    clarity: RubricScore
    relevance: RubricScore
    depth: RubricScore
    comm_style: RubricScore
    cultural_fit: RubricScore
    attention_to_detail: RubricScore
    language_proficiency: RubricScore
    star_method: RubricScore


class AnalysisEnvelope(BaseModel):
    analysis_report: AnalysisReport


class StoredReport(AnalysisReport):
    """Report as persisted — LLM output plus its generated id and timestamp."""
    id: str
    timestamp: str


# ── OUTCOMES ──

class OutcomeCode(str, Enum):
    OK = "ok"
    ALREADY_ANALYZED = "already_analyzed"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    INVALID_STATE = "invalid_state"
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid_response"
    PERSISTENCE_FAILED = "persistence_failed"
    NOT_CONFIGURED = "not_configured"
    LLM_FAILED = "llm_failed"
    UPSTREAM_FAILED = "upstream_failed"


class AnalysisOutcome(BaseModel):
    success: bool
    code: OutcomeCode
    report: Optional[StoredReport] = None
    report_id: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None


class TranscriptionOutcome(BaseModel):
    success: bool
    code: OutcomeCode
    call_id: str
    segments: list[TranscriptSegment] = Field(default_factory=list)
    duration_seconds: Optional[int] = None
    analysis: Optional[AnalysisOutcome] = None
    error: Optional[str] = None
    message: Optional[str] = None


class BackupOutcome(BaseModel):
    success: bool
    code: OutcomeCode
    call_id: str
    recording_id: Optional[str] = None
    transcript_segments: int = 0
    duration_seconds: Optional[int] = None
    error: Optional[str] = None
