"""Pipeline Orchestrator — recording → transcript → (best-effort) analysis.

Stages for a finished call:
  1. Lookup: call + recording owned by the caller
  2. Audio check: recording present in the store (else `failed_upload`)
  3. Transcription: word-level ASR (failure → `transcription_failed`)
  4. Transcript: speaker attribution, segment smoothing, duration
  5. Persist transcript + duration
  6. Analysis: optional, never fails the transcription

Each entry point returns an outcome model; PipelineErrors raised by the
stages are converted here and never reach the HTTP layer.
"""

import asyncio
import json
import time

from loguru import logger

from config.errors import (
    AudioMissingError,
    CallNotFoundError,
    EmptyTranscriptionError,
    InvalidInputError,
    PersistenceError,
    PipelineError,
    TranscriptionFailedError,
)
from config.schemas import (
    AnalysisOutcome,
    BackupOutcome,
    OutcomeCode,
    SpeakerTurn,
    StoredReport,
    TranscriptSegment,
    TranscriptionOutcome,
    UploadStatus,
)
from pipeline.analysis import ADMIN_USER_TYPE, analyze_call, load_transcript
from pipeline.segments import build_transcript, duration_from_transcript, estimate_duration
from services.clients import ServiceClients
from services.db.models import Call


# ── Helpers ──

def parse_speaker_metadata(raw) -> list[SpeakerTurn] | None:
    """Speaker turns from request or stored metadata.

    Anything that is not a list (after decoding a JSON string) counts as
    absent. A list with malformed entries is an input error.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored speaker metadata is not valid JSON — ignoring it")
            return None
    if not isinstance(raw, list):
        return None
    try:
        return [SpeakerTurn.model_validate(turn) for turn in raw]
    except ValueError as e:
        raise InvalidInputError(f"Malformed speaker_metadata: {e}") from e


async def _load_owned_call(clients: ServiceClients, call_id: str, user_id: str, user_type: str) -> Call:
    call = await asyncio.to_thread(clients.repository.get_call, call_id)
    if call is None or (user_type != ADMIN_USER_TYPE and call.user_id != user_id):
        raise CallNotFoundError("Call not found or not authorized")
    return call


async def _run_analysis(
    clients: ServiceClients, call_id: str, user_id: str, user_type: str
) -> AnalysisOutcome | None:
    settings = clients.settings
    if not settings.analysis_configured:
        logger.warning(f"[{call_id}] GEMINI_API_KEY not set — skipping analysis")
        return None
    if settings.skip_analysis:
        logger.info(f"[{call_id}] SKIP_ANALYSIS is enabled — skipping analysis")
        return None

    try:
        outcome = await analyze_call(call_id, user_id, user_type, clients)
    except Exception as e:
        logger.error(f"[{call_id}] Analysis crashed: {e}")
        return AnalysisOutcome(success=False, code=OutcomeCode.UPSTREAM_FAILED, error=str(e))

    if outcome.success:
        logger.info(f"[{call_id}] Analysis finished ({outcome.code.value}), report {outcome.report_id}")
    else:
        logger.warning(f"[{call_id}] Analysis failed ({outcome.code.value}): {outcome.error}")
    return outcome


async def _transcribe_and_save(
    clients: ServiceClients,
    call_id: str,
    recording_id: str,
    audio: bytes,
    filename: str,
    turns: list[SpeakerTurn] | None,
) -> tuple[list[TranscriptSegment], int | None]:
    repo = clients.repository
    try:
        asr = await clients.transcriber.transcribe(audio, filename=filename, call_id=call_id)
        segments = build_transcript(asr, turns, call_id=call_id)
    except (TranscriptionFailedError, EmptyTranscriptionError):
        await asyncio.to_thread(repo.set_upload_status, recording_id, UploadStatus.TRANSCRIPTION_FAILED)
        raise

    duration = estimate_duration(asr.segments, call_id=call_id)
    await asyncio.to_thread(
        repo.save_transcript,
        recording_id,
        [s.model_dump(mode="json") for s in segments],
        duration,
    )
    logger.info(
        f"[{call_id}] Saved transcript: {len(segments)} segments, "
        f"duration={duration if duration is not None else 'unknown'}s"
    )
    return segments, duration


# ── Entry points ──

async def transcribe_call(
    call_id: str,
    user_id: str,
    user_type: str,
    clients: ServiceClients,
    speaker_metadata=None,
) -> TranscriptionOutcome:
    """Transcribe a finished call from its stored recording, then try to analyze it."""
    repo = clients.repository
    t0 = time.time()
    logger.info(f"[{call_id}] Transcription requested by {user_id} ({user_type})")

    try:
        if not call_id:
            raise InvalidInputError("Call ID missing in request body")
        request_turns = parse_speaker_metadata(speaker_metadata)

        # 1. Lookup
        call = await _load_owned_call(clients, call_id, user_id, user_type)
        recording = (
            await asyncio.to_thread(repo.get_recording, call.recording_id)
            if call.recording_id else None
        )
        if recording is None or not recording.uri:
            raise CallNotFoundError("Recording details incomplete for this call")

        turns = request_turns
        if turns is None:
            turns = parse_speaker_metadata(recording.speaker_metadata)
            if turns:
                logger.info(f"[{call_id}] Using {len(turns)} speaker turns stored with the recording")
        else:
            logger.info(f"[{call_id}] Received {len(turns)} speaker turns with the request")

        # 2. Audio check
        if not await asyncio.to_thread(clients.audio_store.exists, recording.uri):
            await asyncio.to_thread(repo.set_upload_status, recording.id, UploadStatus.FAILED_UPLOAD)
            raise AudioMissingError("Recording file not found. Upload may have failed or is still pending.")
        await asyncio.to_thread(repo.set_upload_status, recording.id, UploadStatus.UPLOADED)

        if request_turns:
            await asyncio.to_thread(
                repo.save_speaker_metadata,
                recording.id,
                [t.model_dump(mode="json", by_alias=True) for t in request_turns],
            )

        try:
            audio = await asyncio.to_thread(clients.audio_store.read, recording.uri)
        except OSError as e:
            raise AudioMissingError(f"Failed to read recording {recording.uri}: {e}") from e

        # 3-5. Transcribe, build, persist
        segments, duration = await _transcribe_and_save(
            clients, call_id, recording.id, audio, recording.uri, turns
        )

    except PipelineError as e:
        logger.error(f"[{call_id}] Transcription failed ({e.code.value}): {e.message}")
        return TranscriptionOutcome(success=False, code=e.code, call_id=call_id, error=e.message)

    # 6. Analysis (best-effort)
    analysis = await _run_analysis(clients, call_id, user_id, user_type)

    logger.info(f"[{call_id}] Transcription pipeline complete in {time.time() - t0:.1f}s")
    return TranscriptionOutcome(
        success=True,
        code=OutcomeCode.OK,
        call_id=call_id,
        segments=segments,
        duration_seconds=duration,
        analysis=analysis,
        message="Transcription completed and saved.",
    )


async def transcribe_upload(
    call_id: str,
    user_id: str,
    user_type: str,
    audio: bytes,
    filename: str,
    clients: ServiceClients,
) -> TranscriptionOutcome:
    """Manual upload: store the audio, transcribe without speaker turns, save.

    Speakers come from native ASR tags when present, else from the
    question-cue heuristic. Analysis is not triggered.
    """
    logger.info(f"[{call_id}] Manual upload: {filename} ({len(audio) / 1024:.0f} KB)")
    try:
        if not call_id:
            raise InvalidInputError("Call ID missing in form data")
        if not audio:
            raise InvalidInputError("Audio file missing or empty in form data")

        await _load_owned_call(clients, call_id, user_id, user_type)
        try:
            uri = await asyncio.to_thread(clients.audio_store.save, call_id, audio, filename)
        except OSError as e:
            raise PersistenceError(f"Failed to prepare audio for transcription: {e}") from e
        recording_id = await asyncio.to_thread(clients.repository.attach_recording, call_id, uri)

        segments, duration = await _transcribe_and_save(
            clients, call_id, recording_id, audio, filename, None
        )
    except PipelineError as e:
        logger.error(f"[{call_id}] Upload transcription failed ({e.code.value}): {e.message}")
        return TranscriptionOutcome(success=False, code=e.code, call_id=call_id, error=e.message)

    return TranscriptionOutcome(
        success=True,
        code=OutcomeCode.OK,
        call_id=call_id,
        segments=segments,
        duration_seconds=duration,
    )


def _normalize_backup_entry(entry) -> dict:
    if not isinstance(entry, dict):
        raise InvalidInputError("Transcript entries must be objects")
    timestamp = next(
        (entry[k] for k in ("timestamp", "time", "start_time") if entry.get(k) is not None), 0
    )
    try:
        segment = TranscriptSegment(
            speaker=entry.get("speaker"),
            text=entry.get("text"),
            timestamp=int(timestamp),
        )
    except (ValueError, TypeError) as e:
        raise InvalidInputError(f"Malformed transcript entry: {e}") from e
    return segment.model_dump(mode="json")


async def save_backup_transcript(
    call_id: str,
    user_id: str,
    user_type: str,
    transcript,
    clients: ServiceClients,
) -> BackupOutcome:
    """Persist a transcript captured client-side during the live call."""
    try:
        if not call_id:
            raise InvalidInputError("Call ID missing in request body")
        if not isinstance(transcript, list):
            raise InvalidInputError("Valid transcript array required")

        entries = [_normalize_backup_entry(e) for e in transcript]
        duration = duration_from_transcript(entries)

        await _load_owned_call(clients, call_id, user_id, user_type)
        recording_id = await asyncio.to_thread(
            clients.repository.save_backup_transcript, call_id, entries, duration
        )
    except PipelineError as e:
        logger.error(f"[{call_id}] Transcript backup failed ({e.code.value}): {e.message}")
        return BackupOutcome(success=False, code=e.code, call_id=call_id, error=e.message)

    logger.info(
        f"[{call_id}] Backed up {len(entries)} transcript segments to recording {recording_id}"
        + (f" (duration: {duration}s)" if duration else "")
    )
    return BackupOutcome(
        success=True,
        code=OutcomeCode.OK,
        call_id=call_id,
        recording_id=recording_id,
        transcript_segments=len(entries),
        duration_seconds=duration,
    )


# ── Reads ──

async def get_call_transcript(
    call_id: str, user_id: str, user_type: str, clients: ServiceClients
) -> list[TranscriptSegment]:
    """Raises CallNotFoundError / InvalidStateError."""
    call = await _load_owned_call(clients, call_id, user_id, user_type)
    recording = (
        await asyncio.to_thread(clients.repository.get_recording, call.recording_id)
        if call.recording_id else None
    )
    return load_transcript(recording.transcript if recording else None)


async def get_call_report(
    call_id: str, user_id: str, user_type: str, clients: ServiceClients
) -> StoredReport:
    call = await _load_owned_call(clients, call_id, user_id, user_type)
    report = (
        await asyncio.to_thread(clients.repository.get_report, call.report_id)
        if call.report_id else None
    )
    if report is None:
        raise CallNotFoundError(f"No analysis report for call: {call_id}")
    return report
