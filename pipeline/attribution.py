"""Speaker attribution — assign ASR words to speakers from diarizer turns.

The voice agent reports coarse speaker turns (start/end ms) on its own clock,
while the ASR returns word-level timings. The two streams drift by up to a
few hundred ms and turns are asynchronous to words, so a nearest-turn lookup
fails at turn boundaries. Instead:

  1. Every turn overlapping the word (± MATCHING_TOLERANCE_MS) is a candidate.
  2. With several candidates, the turn with the longest real overlap wins
     (first seen wins ties); no positive overlap → last assigned speaker.
  3. Words with no candidate are filled from the nearest known neighbour,
     preceding first, then following, then the last assigned speaker.
"""

from loguru import logger

from config.schemas import AttributedSpeaker, AttributedWord, Speaker, SpeakerTurn, Word


MATCHING_TOLERANCE_MS = 150


def _overlap_ms(word: Word, turn: SpeakerTurn) -> float:
    return min(word.end_ms, turn.end_ms) - max(word.start_ms, turn.start_ms)


def _overlapping_turns(word: Word, turns: list[SpeakerTurn], tolerance_ms: float) -> list[SpeakerTurn]:
    return [
        t for t in turns
        if (t.start_ms - tolerance_ms) < word.end_ms and (t.end_ms + tolerance_ms) > word.start_ms
    ]


def _resolve_speaker(
    word: Word,
    candidates: list[SpeakerTurn],
    last_assigned: AttributedSpeaker,
) -> AttributedSpeaker:
    if not candidates:
        return AttributedSpeaker.UNKNOWN
    if len(candidates) == 1:
        return AttributedSpeaker(candidates[0].speaker.value)

    best_speaker = None
    max_overlap = 0.0
    for turn in candidates:
        overlap = max(0.0, _overlap_ms(word, turn))
        # strict > keeps the first-seen turn on ties
        if overlap > max_overlap:
            max_overlap = overlap
            best_speaker = turn.speaker
    if best_speaker is None:
        return last_assigned
    return AttributedSpeaker(best_speaker.value)


def _fill_unknown(attributed: list[AttributedWord], last_assigned: AttributedSpeaker) -> None:
    """Replace Unknown with the nearest known neighbour (in place)."""
    known = [a.speaker for a in attributed]
    for i, speaker in enumerate(known):
        if speaker != AttributedSpeaker.UNKNOWN:
            continue
        prev_known = next(
            (known[j] for j in range(i - 1, -1, -1) if known[j] != AttributedSpeaker.UNKNOWN),
            None,
        )
        next_known = next(
            (known[j] for j in range(i + 1, len(known)) if known[j] != AttributedSpeaker.UNKNOWN),
            None,
        )
        attributed[i].speaker = prev_known or next_known or last_assigned


def attribute_speakers(
    words: list[Word],
    turns: list[SpeakerTurn] | None,
    tolerance_ms: float = MATCHING_TOLERANCE_MS,
    call_id: str = "-",
) -> list[AttributedWord] | None:
    """Attribute each word to User/AI using overlapping speaker turns.

    Returns None when there is nothing to attribute against (no turns or no
    words) — the caller falls back to segment-level inference. Otherwise the
    returned list is parallel to the input minus any word still unresolved
    after gap filling, and no element carries Unknown.
    """
    if not turns or not words:
        return None

    logger.info(
        f"[{call_id}] Word-level attribution: {len(words)} words against {len(turns)} speaker turns"
    )

    attributed: list[AttributedWord] = []
    last_assigned = AttributedSpeaker.USER
    unknown_count = 0

    for word in words:
        candidates = _overlapping_turns(word, turns, tolerance_ms)
        speaker = _resolve_speaker(word, candidates, last_assigned)
        attributed.append(AttributedWord(word=word, speaker=speaker))
        if speaker != AttributedSpeaker.UNKNOWN:
            last_assigned = speaker
        else:
            unknown_count += 1

    if unknown_count:
        logger.debug(f"[{call_id}] {unknown_count} words outside every turn — filling from context")
        _fill_unknown(attributed, last_assigned)

    resolved = []
    for a in attributed:
        if a.speaker == AttributedSpeaker.UNKNOWN:
            logger.warning(f"[{call_id}] Dropping word '{a.word.text}' still Unknown after gap filling")
            continue
        resolved.append(a)
    return resolved


def attribute_by_speaker_tags(words: list[Word], call_id: str = "-") -> list[AttributedWord] | None:
    """Attribute words using native diarization tags from the ASR provider.

    First tag encountered → User, every other tag → AI. Returns None when
    no word carries a tag.
    """
    tagged = [w for w in words if w.speaker_tag is not None]
    if not tagged:
        return None

    unique_tags = {w.speaker_tag for w in tagged}
    if len(unique_tags) <= 1:
        logger.warning(
            f"[{call_id}] Only {len(unique_tags)} speaker tag(s) in ASR output — "
            f"diarization may have failed"
        )

    tag_map: dict[int, Speaker] = {}
    attributed = []
    for word in words:
        if word.speaker_tag is None or not word.text:
            logger.warning(f"[{call_id}] Skipping word with missing info: {word.text!r}")
            continue
        if word.speaker_tag not in tag_map:
            tag_map[word.speaker_tag] = Speaker.AI if tag_map else Speaker.USER
        speaker = tag_map[word.speaker_tag]
        attributed.append(AttributedWord(word=word, speaker=AttributedSpeaker(speaker.value)))

    mapping = {tag: speaker.value for tag, speaker in tag_map.items()}
    logger.info(f"[{call_id}] Speaker tag mapping: {mapping}")
    return attributed
