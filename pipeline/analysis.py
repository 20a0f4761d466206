"""Interview analysis — transcript → rubric + STAR report, persisted once per call.

State machine:
  lookup (NotFound / Forbidden) → idempotency (report already linked) →
  transcript load → prompt → LLM under a hard deadline → strict validation →
  report insert + call link in one transaction.

Failures come back as an AnalysisOutcome with an OutcomeCode; only
programming errors escape as exceptions.
"""

import asyncio
import json
import time
import uuid
from datetime import datetime, timezone

from loguru import logger
from openai import OpenAIError
from pydantic import ValidationError

from config.errors import (
    AnalysisTimeoutError,
    CallForbiddenError,
    CallNotFoundError,
    DuplicateReportError,
    InvalidResponseError,
    InvalidStateError,
    PipelineError,
)
from config.interview_questions import render_questions
from config.schemas import (
    AnalysisEnvelope,
    AnalysisOutcome,
    AnalysisReport,
    OutcomeCode,
    StoredReport,
    TranscriptSegment,
)
from services.clients import ServiceClients
from services.llm.client import LLMClient


ADMIN_USER_TYPE = "admin"

# Raw LLM output kept in logs on parse failure
RAW_LOG_CHARS = 1000


ANALYSIS_PROMPT = """\
You are an expert pre-interview call analyst. You are reviewing this transcript from a pre-interview call between an HR professional and a job candidate.

**IMPORTANT: This transcript was generated using high-quality speech-to-text conversion. The text accuracy should be very good, though some speaker diarization may be imperfect.**

**Important Note on Transcript Source:**
The transcript provided might come from one of two sources:
1. A live call recording: In this case, speaker turns are typically labeled as "User" (the HR representative) and "AI" (the candidate).
2. A manually uploaded recording: In this scenario, precise speaker diarization might be unavailable and speakers were inferred from the content.

Adapt your analysis to the apparent structure of the transcript. If speaker labels look unreliable, infer roles from the content of the conversation. Ignore minor transcription errors and focus on speaker intent.

**Mandatory Questions Reference:**
The HR professional was instructed to ask these mandatory questions during the interview:
{questions}

**STAR Method Evaluation Framework:**
- **Situation**: the context or background of the example
- **Task**: the specific task or challenge that needed to be addressed
- **Action**: the specific actions the candidate took ("I", not "we")
- **Result**: the outcome achieved, with measurable results where possible

**Task: Analyze the Pre-Interview Call**
1. **Question-Answer Analysis**: for the 'answers' field, summarize the candidate's response to each mandatory question. If a question was not asked or not answered, say "Not answered". For each answer give a star_evaluation with score (1-5), rationale, situation_present, task_present, action_present and result_present (booleans).

2. **Overall Scoring**: score each criterion from 1 to 5 with a short rationale:
   - clarity: how clear and articulate were the candidate's responses?
   - relevance: how relevant were the answers to the questions and the job role?
   - depth: how detailed and substantive were the responses?
   - comm_style: how effective was the candidate's communication style?
   - cultural_fit: how well does the candidate seem to fit the company culture?
   - attention_to_detail: did the candidate show attention to detail?
   - language_proficiency: how proficient was the candidate in the language used (Bahasa Indonesia)?
   - star_method: overall STAR method usage across all experience-related questions

**STAR Method Scoring Guidelines:**
- Score 5: all four STAR components clearly present with specific, measurable details
- Score 4: three components clearly present, one partially present
- Score 3: two or three components present, some details provided
- Score 2: one or two components present, limited structure or details
- Score 1: no clear STAR structure, vague or incomplete examples

**Output Format:**
Return ONLY a JSON object of the form
{{"analysis_report": {{"answers": [{{"question": str, "answer": str, "star_evaluation": {{"score": 1-5, "rationale": str, "situation_present": bool, "task_present": bool, "action_present": bool, "result_present": bool}}}}], "clarity": {{"score": 1-5, "rationale": str}}, "relevance": {{...}}, "depth": {{...}}, "comm_style": {{...}}, "cultural_fit": {{...}}, "attention_to_detail": {{...}}, "language_proficiency": {{...}}, "star_method": {{"score": 1-5, "rationale": str}}}}}}
No extra text, explanations, or markdown.

**Input Transcript:**
---
{transcript}
---
"""


# ── Transcript & prompt ──

def load_transcript(raw) -> list[TranscriptSegment]:
    """Parse a stored transcript (JSON string or list) into segments.

    Raises:
        InvalidStateError: missing, empty, or not a list of segments
    """
    if not raw:
        raise InvalidStateError("Transcript not found or empty")
    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
        if not isinstance(data, list) or not data:
            raise ValueError("Parsed transcript invalid.")
        return [TranscriptSegment.model_validate(seg) for seg in data]
    except (ValueError, TypeError) as e:
        raise InvalidStateError(f"Failed to parse stored transcript data: {e}") from e


def format_transcript(transcript: list[TranscriptSegment]) -> str:
    return "\n".join(f"{seg.speaker.value}: {seg.text}" for seg in transcript)


def build_prompt(transcript: list[TranscriptSegment], questions: list[str]) -> str:
    numbered = "\n".join(f'{i}. "{q}"' for i, q in enumerate(questions, 1))
    return ANALYSIS_PROMPT.format(questions=numbered, transcript=format_transcript(transcript))


# ── LLM call & validation ──

async def generate_analysis(llm: LLMClient, prompt: str, timeout: float, call_id: str = "-") -> str:
    """Run the completion under a hard deadline; the request is cancelled on expiry.

    Raises:
        AnalysisTimeoutError: no response within `timeout` seconds
    """
    t0 = time.time()
    try:
        raw = await asyncio.wait_for(llm.extract_raw(prompt), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"[{call_id}] LLM analysis timed out after {timeout:g}s — request cancelled")
        raise AnalysisTimeoutError(timeout)
    logger.info(f"[{call_id}] LLM analysis completed in {(time.time() - t0) * 1000:.0f}ms")
    return raw


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
        if cleaned[:4].lower() == "json":
            cleaned = cleaned[4:]
        cleaned = cleaned.strip()
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3].strip()
    return cleaned


def parse_analysis_response(raw: str, call_id: str = "-") -> AnalysisReport:
    """Validate raw LLM output into an AnalysisReport. Nothing is defaulted.

    Raises:
        InvalidResponseError: not JSON, missing required fields, or fails the schema
    """
    cleaned = _strip_fences(raw)

    try:
        if not cleaned.startswith("{") or not cleaned.endswith("}"):
            raise InvalidResponseError("Response is not a JSON object", raw)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise InvalidResponseError(f"Response is not valid JSON: {e.msg}", raw) from e

        report = data.get("analysis_report") if isinstance(data, dict) else None
        clarity = report.get("clarity") if isinstance(report, dict) else None
        star = report.get("star_method") if isinstance(report, dict) else None
        if not (
            isinstance(clarity, dict)
            and _is_number(clarity.get("score"))
            and isinstance(clarity.get("rationale"), str)
            and isinstance(star, dict)
            and _is_number(star.get("score"))
        ):
            raise InvalidResponseError("Response missing required fields or incorrect format", raw)

        try:
            return AnalysisEnvelope.model_validate(data).analysis_report
        except ValidationError as e:
            raise InvalidResponseError(
                f"Response failed schema validation ({e.error_count()} errors)", raw
            ) from e
    except InvalidResponseError as e:
        logger.error(f"[{call_id}] {e.message}. Raw text was: {raw[:RAW_LOG_CHARS]}")
        raise


# ── Orchestration ──

def _failure(error: PipelineError) -> AnalysisOutcome:
    return AnalysisOutcome(success=False, code=error.code, error=error.message)


async def analyze_call(
    call_id: str,
    user_id: str,
    user_type: str,
    clients: ServiceClients,
) -> AnalysisOutcome:
    """Analyze a transcribed call and persist its report (at most one per call)."""
    settings = clients.settings
    repo = clients.repository

    if not clients.llm.is_configured():
        logger.error(f"[{call_id}] GEMINI_API_KEY not configured — cannot analyze")
        return AnalysisOutcome(
            success=False, code=OutcomeCode.NOT_CONFIGURED, error="Analysis API key not configured"
        )

    logger.info(f"[{call_id}] Starting analysis for user {user_id} ({user_type})")

    try:
        # 1. Lookup + ownership
        call = await asyncio.to_thread(repo.get_call, call_id)
        if call is None:
            raise CallNotFoundError(f"Call not found: {call_id}")
        if user_type != ADMIN_USER_TYPE and call.user_id != user_id:
            raise CallForbiddenError("Forbidden: You do not own this call record.")

        # 2. Idempotency
        if call.report_id:
            logger.info(f"[{call_id}] Report already exists ({call.report_id}) — skipping")
            return AnalysisOutcome(
                success=True,
                code=OutcomeCode.ALREADY_ANALYZED,
                report_id=call.report_id,
                message="Analysis already completed.",
            )

        # 3. Transcript
        if not call.recording_id:
            raise InvalidStateError(f"Recording ID not found for call: {call_id}")
        recording = await asyncio.to_thread(repo.get_recording, call.recording_id)
        if recording is None:
            raise InvalidStateError(f"Transcript not found or empty for call: {call_id}")
        transcript = load_transcript(recording.transcript)
        logger.info(f"[{call_id}] Loaded transcript with {len(transcript)} segments")

        # 4. Prompt
        prompt = build_prompt(transcript, render_questions(call.job_title))
        logger.info(f"[{call_id}] Prompt built: {len(prompt)} chars, model={clients.llm.model}")

        # 5. Bounded LLM call
        try:
            raw = await generate_analysis(
                clients.llm, prompt, settings.analysis_timeout_seconds, call_id=call_id
            )
        except OpenAIError as e:
            logger.error(f"[{call_id}] LLM request failed: {e}")
            return AnalysisOutcome(
                success=False, code=OutcomeCode.LLM_FAILED, error=f"Analysis request failed: {e}"
            )

        # 6. Validation
        analysis = parse_analysis_response(raw, call_id=call_id)

        # 7. Atomic persistence
        report = StoredReport(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            **analysis.model_dump(),
        )
        try:
            await asyncio.to_thread(repo.insert_report_and_link, call_id, report)
        except DuplicateReportError as e:
            logger.warning(
                f"[{call_id}] Concurrent analysis already saved report {e.existing_report_id} — discarding ours"
            )
            return AnalysisOutcome(
                success=True,
                code=OutcomeCode.ALREADY_ANALYZED,
                report_id=e.existing_report_id,
                message="Analysis already completed.",
            )

        logger.info(f"[{call_id}] Saved analysis report {report.id}")
        return AnalysisOutcome(success=True, code=OutcomeCode.OK, report=report, report_id=report.id)

    except PipelineError as e:
        if e.code in (OutcomeCode.NOT_FOUND, OutcomeCode.FORBIDDEN, OutcomeCode.INVALID_STATE):
            logger.warning(f"[{call_id}] Analysis rejected: {e.message}")
        else:
            logger.error(f"[{call_id}] Analysis failed ({e.code.value}): {e.message}")
        return _failure(e)
