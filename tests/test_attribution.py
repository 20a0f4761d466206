"""Tests for word-level speaker attribution (overlap matching, gap filling, native tags)."""

import pytest
from config.schemas import AttributedSpeaker, Speaker, SpeakerTurn, Word
from pipeline.attribution import (
    MATCHING_TOLERANCE_MS,
    attribute_by_speaker_tags,
    attribute_speakers,
)


def _make_word(text: str, start_ms: float, end_ms: float, tag: int | None = None) -> Word:
    return Word(text=text, start_ms=start_ms, end_ms=end_ms, speaker_tag=tag)


def _make_turn(speaker: str, start_ms: float, end_ms: float) -> SpeakerTurn:
    return SpeakerTurn(speaker=Speaker(speaker), start_ms=start_ms, end_ms=end_ms)


def _speakers(attributed) -> list[str]:
    return [a.speaker.value for a in attributed]


class TestSkipConditions:
    def test_no_turns_returns_none(self):
        assert attribute_speakers([_make_word("hi", 0, 500)], []) is None

    def test_none_turns_returns_none(self):
        assert attribute_speakers([_make_word("hi", 0, 500)], None) is None

    def test_no_words_returns_none(self):
        assert attribute_speakers([], [_make_turn("User", 0, 1000)]) is None


class TestOverlapMatching:
    def test_single_turn_covers_all_words(self):
        words = [_make_word("hi", 0, 500), _make_word("there", 500, 900)]
        result = attribute_speakers(words, [_make_turn("User", 0, 1000)])
        assert _speakers(result) == ["User", "User"]

    def test_longest_overlap_wins(self):
        # 300ms with User, 500ms with AI
        word = _make_word("panjang", 0, 1000)
        turns = [_make_turn("User", 0, 300), _make_turn("AI", 500, 1000)]
        result = attribute_speakers([word], turns)
        assert _speakers(result) == ["AI"]

    def test_longest_overlap_wins_regardless_of_turn_order(self):
        word = _make_word("panjang", 0, 1000)
        turns = [_make_turn("AI", 500, 1000), _make_turn("User", 0, 300)]
        result = attribute_speakers([word], turns)
        assert _speakers(result) == ["AI"]

    def test_equal_overlap_first_seen_wins(self):
        word = _make_word("tengah", 0, 1000)
        turns = [_make_turn("User", 0, 500), _make_turn("AI", 500, 1000)]
        assert _speakers(attribute_speakers([word], turns)) == ["User"]

        turns.reverse()
        assert _speakers(attribute_speakers([word], turns)) == ["AI"]

    def test_word_within_tolerance_after_turn_end(self):
        word = _make_word("ya", 1100, 1200)
        result = attribute_speakers([word], [_make_turn("AI", 0, 1000)])
        assert _speakers(result) == ["AI"]

    def test_word_beyond_tolerance_is_gap_filled_not_matched(self):
        words = [
            _make_word("halo", 0, 400),
            _make_word("jauh", 1000 + MATCHING_TOLERANCE_MS + 50, 1400),
        ]
        turns = [_make_turn("AI", 0, 1000), _make_turn("User", 3000, 4000)]
        result = attribute_speakers(words, turns)
        # second word has no candidate turn, so it inherits the preceding speaker
        assert _speakers(result) == ["AI", "AI"]

    def test_candidates_without_real_overlap_use_last_assigned(self):
        turns = [_make_turn("User", 800, 950), _make_turn("AI", 1150, 2000)]
        words = [
            _make_word("dulu", 1200, 1500),   # only the AI turn is a candidate
            _make_word("celah", 1000, 1100),  # both within tolerance, neither overlaps
        ]
        result = attribute_speakers(words, turns)
        assert _speakers(result) == ["AI", "AI"]

    def test_last_assigned_starts_as_user(self):
        turns = [_make_turn("User", 800, 950), _make_turn("AI", 1150, 2000)]
        result = attribute_speakers([_make_word("celah", 1000, 1100)], turns)
        assert _speakers(result) == ["User"]


class TestGapFilling:
    def test_prefers_preceding_speaker(self):
        words = [
            _make_word("saya", 100, 200),
            _make_word("eh", 2000, 2100),
            _make_word("anda", 5100, 5200),
        ]
        turns = [_make_turn("User", 0, 1000), _make_turn("AI", 5000, 6000)]
        result = attribute_speakers(words, turns)
        assert _speakers(result) == ["User", "User", "AI"]

    def test_leading_words_use_following_speaker(self):
        words = [
            _make_word("eh", 100, 200),
            _make_word("um", 300, 400),
            _make_word("baik", 5100, 5200),
        ]
        result = attribute_speakers(words, [_make_turn("AI", 5000, 6000)])
        assert _speakers(result) == ["AI", "AI", "AI"]

    def test_no_word_matches_any_turn_falls_back_to_user(self):
        words = [_make_word("a", 0, 100), _make_word("b", 200, 300)]
        result = attribute_speakers(words, [_make_turn("AI", 10_000, 11_000)])
        assert _speakers(result) == ["User", "User"]

    def test_no_unknown_survives(self):
        words = [_make_word(f"w{i}", i * 700, i * 700 + 300) for i in range(20)]
        turns = [
            _make_turn("User", 0, 2000),
            _make_turn("AI", 4000, 6000),
            _make_turn("User", 9000, 9500),
        ]
        result = attribute_speakers(words, turns)
        assert len(result) == len(words)
        assert all(a.speaker != AttributedSpeaker.UNKNOWN for a in result)

    def test_output_preserves_word_order(self):
        words = [_make_word("satu", 0, 100), _make_word("dua", 100, 200), _make_word("tiga", 200, 300)]
        result = attribute_speakers(words, [_make_turn("User", 0, 300)])
        assert [a.word.text for a in result] == ["satu", "dua", "tiga"]


class TestSpeakerTags:
    def test_no_tags_returns_none(self):
        assert attribute_by_speaker_tags([_make_word("hi", 0, 100)]) is None

    def test_first_tag_is_user_others_ai(self):
        words = [
            _make_word("halo", 0, 100, tag=2),
            _make_word("pak", 100, 200, tag=2),
            _make_word("iya", 300, 400, tag=1),
            _make_word("ketiga", 500, 600, tag=3),
        ]
        result = attribute_by_speaker_tags(words)
        assert _speakers(result) == ["User", "User", "AI", "AI"]

    def test_untagged_words_are_skipped(self):
        words = [
            _make_word("halo", 0, 100, tag=1),
            _make_word("hilang", 100, 200),
            _make_word("iya", 300, 400, tag=2),
        ]
        result = attribute_by_speaker_tags(words)
        assert [a.word.text for a in result] == ["halo", "iya"]

    def test_single_tag_still_attributes(self):
        words = [_make_word("a", 0, 100, tag=1), _make_word("b", 100, 200, tag=1)]
        result = attribute_by_speaker_tags(words)
        assert _speakers(result) == ["User", "User"]


class TestSpeakerTurnSchema:
    def test_accepts_camel_case_wire_format(self):
        turn = SpeakerTurn.model_validate({"speaker": "AI", "startTimeMs": 10, "endTimeMs": 20})
        assert turn.start_ms == 10
        assert turn.end_ms == 20

    def test_rejects_unknown_speaker(self):
        with pytest.raises(ValueError):
            SpeakerTurn.model_validate({"speaker": "Bot", "startTimeMs": 0, "endTimeMs": 1})
