"""Segment building — speaker-tagged words (or ASR segments) → smoothed transcript.

Primary path: contiguous words from one speaker become one segment.
Fallback path (no diarizer turns): ASR-native segments, speaker guessed from
question cues. Both paths then run two smoothing passes:

  1. absorb one-word interjections ("ya", "oke") from cross-talk into the
     preceding segment when the dominant speaker resumes right after;
  2. merge adjacent segments that share a speaker.

After pass 2 no two adjacent segments share a speaker.
"""

import math
import re

from loguru import logger

from config.errors import EmptyTranscriptionError
from config.schemas import (
    AsrResponse,
    AsrSegment,
    AttributedSpeaker,
    AttributedWord,
    Speaker,
    SpeakerTurn,
    TranscriptSegment,
)
from pipeline.attribution import attribute_by_speaker_tags, attribute_speakers


MIN_WORDS_FOR_STANDALONE_SEGMENT = 2

# Short-question threshold for the lexical fallback
SHORT_SEGMENT_WORDS = 10

# Indonesian + English question cues. Placeholder heuristic, tune with real calls.
QUESTION_WORDS_PATTERN = re.compile(
    r"\b(apa|siapa|kapan|dimana|bagaimana|mengapa|"
    r"what|who|when|where|how|why|can you|could you|tell me|explain)\b"
)


def _word_count(text: str) -> int:
    return len(text.split())


def segments_from_words(attributed: list[AttributedWord]) -> list[TranscriptSegment]:
    """Group consecutive same-speaker words into segments."""
    segments: list[TranscriptSegment] = []
    current: TranscriptSegment | None = None

    for item in attributed:
        if item.speaker == AttributedSpeaker.UNKNOWN:
            logger.warning(f"Skipping word '{item.word.text}' with unresolved speaker")
            continue
        speaker = Speaker(item.speaker.value)
        start_ms = round(item.word.start_ms)
        if current is not None and current.speaker == speaker:
            current.text += f" {item.word.text}"
            current.timestamp = min(current.timestamp, start_ms)
        else:
            if current is not None:
                segments.append(current)
            current = TranscriptSegment(speaker=speaker, text=item.word.text, timestamp=start_ms)

    if current is not None:
        segments.append(current)
    return segments


def infer_speaker(text: str) -> Speaker:
    """Guess the speaker of an ASR segment from question cues.

    The interviewer asks, the candidate answers: a question mark, or a
    question word in a short utterance, points to User.
    """
    normalized = text.lower().strip()
    has_question_mark = "?" in normalized
    has_question_words = QUESTION_WORDS_PATTERN.search(normalized) is not None
    is_short = _word_count(normalized) < SHORT_SEGMENT_WORDS
    if has_question_mark or (has_question_words and is_short):
        return Speaker.USER
    return Speaker.AI


def segments_from_asr(asr_segments: list[AsrSegment]) -> list[TranscriptSegment]:
    """Fallback: use ASR segment boundaries with lexical speaker inference."""
    return [
        TranscriptSegment(
            speaker=infer_speaker(seg.text),
            text=seg.text.strip(),
            timestamp=round(seg.start * 1000),
        )
        for seg in asr_segments
    ]


def smooth_interjections(
    segments: list[TranscriptSegment],
    min_words: int = MIN_WORDS_FOR_STANDALONE_SEGMENT,
) -> list[TranscriptSegment]:
    """Pass 1: fold short cross-talk segments into the previous speaker's turn."""
    if not segments:
        return []

    smoothed = [segments[0].model_copy()]
    for i in range(1, len(segments)):
        current = segments[i]
        prev = smoothed[-1]
        if _word_count(current.text) < min_words and current.speaker != prev.speaker:
            next_original = segments[i + 1] if i < len(segments) - 1 else None
            if next_original is None or next_original.speaker == prev.speaker:
                prev.text += " " + current.text
                continue
        smoothed.append(current.model_copy())
    return smoothed


def merge_adjacent(segments: list[TranscriptSegment]) -> list[TranscriptSegment]:
    """Pass 2: merge runs of adjacent segments with the same speaker."""
    merged: list[TranscriptSegment] = []
    for seg in segments:
        if merged and merged[-1].speaker == seg.speaker:
            merged[-1].text += " " + seg.text
        else:
            merged.append(seg.model_copy())
    return merged


def build_transcript(
    asr: AsrResponse,
    turns: list[SpeakerTurn] | None = None,
    call_id: str = "-",
) -> list[TranscriptSegment]:
    """Turn an ASR response (+ optional speaker turns) into the final transcript.

    Raises:
        EmptyTranscriptionError: the ASR produced neither words nor segments
    """
    words = asr.to_words()
    logger.info(
        f"[{call_id}] Building transcript from {len(asr.segments)} ASR segments and {len(words)} words"
    )

    attributed = attribute_speakers(words, turns, call_id=call_id)
    if attributed is None:
        attributed = attribute_by_speaker_tags(words, call_id=call_id)

    if attributed is not None:
        segments = segments_from_words(attributed)
        logger.info(f"[{call_id}] Word-level speaker attribution produced {len(segments)} segments")
    elif asr.segments:
        logger.warning(
            f"[{call_id}] No speaker turns available ({len(turns or [])}) — "
            f"inferring speakers from ASR segment content"
        )
        segments = segments_from_asr(asr.segments)
    else:
        raise EmptyTranscriptionError(
            "Transcription response lacked word-level timestamps or segments."
        )

    final = merge_adjacent(smooth_interjections(segments))
    logger.info(f"[{call_id}] Smoothing: {len(segments)} → {len(final)} segments")
    if final:
        sample = " | ".join(f"[{s.speaker.value}]: {s.text[:100]}" for s in final[:3])
        logger.debug(f"[{call_id}] Sample transcript: {sample}")
    return final


def estimate_duration(asr_segments: list[AsrSegment], call_id: str = "-") -> int | None:
    """Recording duration in whole seconds from the last ASR segment end.

    Supplementary metadata only — returns None (and warns) rather than failing.
    """
    if not asr_segments:
        logger.warning(f"[{call_id}] No segments in transcription response — duration unknown")
        return None
    last_end = asr_segments[-1].end
    if last_end is None or not math.isfinite(last_end):
        logger.warning(f"[{call_id}] Last segment has no valid end time — duration unknown")
        return None
    # half-up, not banker's rounding
    return int(math.floor(last_end + 0.5))


def duration_from_transcript(transcript: list[dict]) -> int | None:
    """Duration in seconds from the last entry of a client-supplied transcript.

    Accepts `timestamp`, `time` or `start_time` (ms) on the last entry; a
    missing or non-positive value yields None.
    """
    if not transcript:
        return None
    last = transcript[-1]
    if not isinstance(last, dict):
        return None
    for key in ("timestamp", "time", "start_time"):
        value = last.get(key)
        if value is not None:
            break
    else:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    if value <= 0:
        return None
    return int(math.floor(value / 1000 + 0.5))
