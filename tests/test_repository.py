"""Tests for the SQLAlchemy repository (in-memory SQLite)."""

import pytest
from sqlalchemy import func, select

from config.errors import DuplicateReportError, PersistenceError
from config.schemas import StoredReport, UploadStatus
from services.db.models import Report
from services.db.repository import Repository


def _score(score=4):
    return {"score": score, "rationale": "ok"}


def _make_report(report_id: str) -> StoredReport:
    return StoredReport(
        id=report_id,
        timestamp="2026-01-01T00:00:00.000Z",
        answers=[],
        clarity=_score(),
        relevance=_score(),
        depth=_score(),
        comm_style=_score(),
        cultural_fit=_score(),
        attention_to_detail=_score(),
        language_proficiency=_score(),
        star_method=_score(2),
    )


@pytest.fixture
def repo() -> Repository:
    repository = Repository.from_url("sqlite://")
    repository.add_call("call-1", "user-1", recording_uri="call-1.wav")
    return repository


def _report_rows(repo) -> int:
    with repo._sessions() as session:
        return session.scalar(select(func.count()).select_from(Report))


class TestRecordings:
    def test_new_recording_is_pending(self, repo):
        assert repo.get_recording("rec-call-1").upload_status == UploadStatus.PENDING

    def test_status_transitions(self, repo):
        repo.set_upload_status("rec-call-1", UploadStatus.UPLOADED)
        assert repo.get_recording("rec-call-1").upload_status == UploadStatus.UPLOADED
        repo.set_upload_status("rec-call-1", UploadStatus.TRANSCRIPTION_FAILED)
        assert repo.get_recording("rec-call-1").upload_status == UploadStatus.TRANSCRIPTION_FAILED

    def test_transcript_and_duration_saved(self, repo):
        transcript = [{"speaker": "User", "text": "halo", "timestamp": 0}]
        repo.save_transcript("rec-call-1", transcript, 12)
        recording = repo.get_recording("rec-call-1")
        assert recording.transcript == transcript
        assert recording.duration == 12

    def test_null_duration_allowed(self, repo):
        repo.save_transcript("rec-call-1", [{"speaker": "AI", "text": "x", "timestamp": 0}], None)
        assert repo.get_recording("rec-call-1").duration is None

    def test_unknown_recording_raises(self, repo):
        with pytest.raises(PersistenceError):
            repo.set_upload_status("nope", UploadStatus.UPLOADED)

    def test_attach_recording_creates_one_when_missing(self, repo):
        repo.add_call("call-2", "user-1")
        recording_id = repo.attach_recording("call-2", "call-2.mp3")
        assert repo.get_call("call-2").recording_id == recording_id
        recording = repo.get_recording(recording_id)
        assert recording.uri == "call-2.mp3"
        assert recording.upload_status == UploadStatus.UPLOADED


class TestBackupTranscript:
    def test_creates_recording_for_call_without_one(self, repo):
        repo.add_call("call-2", "user-1")
        recording_id = repo.save_backup_transcript("call-2", [{"speaker": "AI", "text": "a", "timestamp": 0}], 30)
        recording = repo.get_recording(recording_id)
        assert repo.get_call("call-2").recording_id == recording_id
        assert recording.uri is None
        assert recording.duration == 30
        assert recording.upload_status == UploadStatus.TRANSCRIPT_BACKED_UP

    def test_keeps_existing_duration(self, repo):
        repo.save_transcript("rec-call-1", [], 99)
        repo.save_backup_transcript("call-1", [{"speaker": "AI", "text": "a", "timestamp": 0}], 30)
        recording = repo.get_recording("rec-call-1")
        assert recording.duration == 99
        assert recording.transcript[0]["text"] == "a"


class TestReports:
    def test_insert_links_call(self, repo):
        repo.insert_report_and_link("call-1", _make_report("r-1"))
        assert repo.get_call("call-1").report_id == "r-1"
        assert repo.get_report("r-1").star_method.score == 2

    def test_second_report_for_same_call_is_rejected(self, repo):
        repo.insert_report_and_link("call-1", _make_report("r-1"))
        with pytest.raises(DuplicateReportError) as exc:
            repo.insert_report_and_link("call-1", _make_report("r-2"))

        assert exc.value.existing_report_id == "r-1"
        assert _report_rows(repo) == 1
        assert repo.get_call("call-1").report_id == "r-1"

    def test_missing_call_rolls_back_report(self, repo):
        with pytest.raises(PersistenceError):
            repo.insert_report_and_link("ghost", _make_report("r-9"))
        assert _report_rows(repo) == 0

    def test_get_missing_report(self, repo):
        assert repo.get_report("nope") is None

    def test_pending_analysis_lists_transcribed_calls_without_report(self, repo):
        repo.add_call("call-2", "user-2", recording_uri="call-2.wav")
        repo.add_call("call-3", "user-3", recording_uri="call-3.wav")
        repo.save_transcript("rec-call-1", [{"speaker": "AI", "text": "a", "timestamp": 0}], 1)
        repo.save_transcript("rec-call-2", [{"speaker": "AI", "text": "b", "timestamp": 0}], 1)
        repo.insert_report_and_link("call-2", _make_report("r-2"))

        assert repo.calls_pending_analysis() == ["call-1"]
