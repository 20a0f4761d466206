"""Tests for the HTTP surface (FastAPI TestClient, pipeline entry points mocked)."""

import pytest
from unittest.mock import patch, AsyncMock, MagicMock
from fastapi.testclient import TestClient

import app as app_module
from config.errors import CallForbiddenError
from config.schemas import AnalysisOutcome, OutcomeCode, TranscriptionOutcome
from config.settings import Settings
from services.asr.transcriber import Transcriber
from services.clients import ServiceClients
from services.db.repository import Repository
from services.llm.client import LLMClient
from services.storage.audio_store import AudioStore


HEADERS = {"X-User-Id": "user-1", "X-User-Type": "applicant"}


@pytest.fixture
def client(tmp_path):
    settings = Settings(database_url="sqlite://")
    app_module.app.state.clients = ServiceClients(
        settings=settings,
        repository=Repository.from_url("sqlite://"),
        audio_store=AudioStore(tmp_path),
        transcriber=Transcriber(api_key="", base_url="http://x", client=MagicMock()),
        llm=LLMClient(api_key="", base_url="http://x", client=MagicMock()),
    )
    yield TestClient(app_module.app)
    app_module.app.state.clients = None


def _analysis(code: OutcomeCode, success: bool = False, **kwargs) -> AnalysisOutcome:
    return AnalysisOutcome(success=success, code=code, **kwargs)


class TestHealth:
    def test_reports_configuration(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["asr_configured"] is False
        assert body["llm"]["status"] == "not_configured"


class TestAnalyzeRoute:
    def test_requires_identity(self, client):
        resp = client.post("/api/analyze", json={"callId": "c1"})
        assert resp.status_code == 401

    def test_requires_call_id(self, client):
        resp = client.post("/api/analyze", json={}, headers=HEADERS)
        assert resp.status_code == 400

    def test_success(self, client):
        outcome = _analysis(OutcomeCode.OK, success=True, report_id="r-1")
        with patch("app.analyze_call", AsyncMock(return_value=outcome)) as analyze:
            resp = client.post("/api/analyze", json={"callId": "c1"}, headers=HEADERS)

        assert resp.status_code == 200
        assert resp.json()["report_id"] == "r-1"
        assert analyze.await_args.args[:3] == ("c1", "user-1", "applicant")

    def test_already_analyzed_is_success(self, client):
        outcome = _analysis(OutcomeCode.ALREADY_ANALYZED, success=True, report_id="r-1",
                            message="Analysis already completed.")
        with patch("app.analyze_call", AsyncMock(return_value=outcome)):
            resp = client.post("/api/analyze", json={"callId": "c1"}, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Analysis already completed."

    @pytest.mark.parametrize("code,status", [
        (OutcomeCode.FORBIDDEN, 403),
        (OutcomeCode.NOT_FOUND, 404),
        (OutcomeCode.INVALID_STATE, 409),
        (OutcomeCode.TIMEOUT, 504),
        (OutcomeCode.INVALID_RESPONSE, 502),
        (OutcomeCode.PERSISTENCE_FAILED, 500),
        (OutcomeCode.NOT_CONFIGURED, 503),
    ])
    def test_failure_status_mapping(self, client, code, status):
        with patch("app.analyze_call", AsyncMock(return_value=_analysis(code, error="nope"))):
            resp = client.post("/api/analyze", json={"callId": "c1"}, headers=HEADERS)
        assert resp.status_code == status
        assert resp.json()["detail"]["code"] == code.value

    def test_admin_identity_forwarded(self, client):
        outcome = _analysis(OutcomeCode.OK, success=True, report_id="r-1")
        with patch("app.analyze_call", AsyncMock(return_value=outcome)) as analyze:
            client.post("/api/analyze", json={"callId": "c1"},
                        headers={"X-User-Id": "boss", "X-User-Type": "admin"})
        assert analyze.await_args.args[:3] == ("c1", "boss", "admin")


class TestTranscribeRoute:
    def test_passes_speaker_metadata(self, client):
        outcome = TranscriptionOutcome(success=True, code=OutcomeCode.OK, call_id="c1")
        turns = [{"speaker": "User", "startTimeMs": 0, "endTimeMs": 10}]
        with patch("app.transcribe_call", AsyncMock(return_value=outcome)) as transcribe:
            resp = client.post("/api/transcribe", json={"callId": "c1", "speaker_metadata": turns}, headers=HEADERS)

        assert resp.status_code == 200
        assert transcribe.await_args.kwargs["speaker_metadata"] == turns

    def test_upstream_failure_is_502(self, client):
        outcome = TranscriptionOutcome(
            success=False, code=OutcomeCode.UPSTREAM_FAILED, call_id="c1", error="Transcription failed"
        )
        with patch("app.transcribe_call", AsyncMock(return_value=outcome)):
            resp = client.post("/api/transcribe", json={"callId": "c1"}, headers=HEADERS)
        assert resp.status_code == 502

    def test_missing_audio_is_404(self, client):
        clients = app_module.app.state.clients
        clients.repository.add_call("c1", "user-1", recording_uri="c1.wav")
        resp = client.post("/api/transcribe", json={"callId": "c1"}, headers=HEADERS)
        assert resp.status_code == 404

    def test_analysis_failure_still_200(self, client):
        outcome = TranscriptionOutcome(
            success=True, code=OutcomeCode.OK, call_id="c1",
            analysis=_analysis(OutcomeCode.TIMEOUT, error="Analysis timed out after 45 seconds."),
        )
        with patch("app.transcribe_call", AsyncMock(return_value=outcome)):
            resp = client.post("/api/transcribe", json={"callId": "c1"}, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["analysis"]["code"] == "timeout"


class TestUploadRoute:
    def test_empty_file_rejected(self, client):
        resp = client.post(
            "/api/transcribe/upload",
            data={"callId": "c1"},
            files={"audio": ("a.wav", b"", "audio/wav")},
            headers=HEADERS,
        )
        assert resp.status_code == 400

    def test_forwards_bytes_and_filename(self, client):
        outcome = TranscriptionOutcome(success=True, code=OutcomeCode.OK, call_id="c1")
        with patch("app.transcribe_upload", AsyncMock(return_value=outcome)) as upload:
            resp = client.post(
                "/api/transcribe/upload",
                data={"callId": "c1"},
                files={"audio": ("take.mp3", b"xyz", "audio/mpeg")},
                headers=HEADERS,
            )
        assert resp.status_code == 200
        assert upload.await_args.args[:5] == ("c1", "user-1", "applicant", b"xyz", "take.mp3")


class TestBackupAndReads:
    def test_backup_then_fetch_transcript(self, client):
        clients = app_module.app.state.clients
        clients.repository.add_call("c1", "user-1")
        transcript = [{"speaker": "AI", "text": "Halo", "timestamp": 3000}]

        resp = client.post("/api/recordings/backup-transcript",
                           json={"callId": "c1", "transcript": transcript}, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["duration_seconds"] == 3

        resp = client.get("/api/calls/c1/transcript", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["transcript"] == transcript

    def test_backup_requires_array(self, client):
        client.app.state.clients.repository.add_call("c1", "user-1")
        resp = client.post("/api/recordings/backup-transcript",
                           json={"callId": "c1", "transcript": "nope"}, headers=HEADERS)
        assert resp.status_code == 400

    def test_transcript_of_untranscribed_call_is_409(self, client):
        client.app.state.clients.repository.add_call("c1", "user-1", recording_uri="c1.wav")
        resp = client.get("/api/calls/c1/transcript", headers=HEADERS)
        assert resp.status_code == 409

    def test_missing_report_is_404(self, client):
        client.app.state.clients.repository.add_call("c1", "user-1")
        resp = client.get("/api/calls/c1/report", headers=HEADERS)
        assert resp.status_code == 404

    def test_read_errors_map_through_outcome_codes(self, client):
        with patch("app.get_call_report", AsyncMock(side_effect=CallForbiddenError("no"))):
            resp = client.get("/api/calls/c1/report", headers=HEADERS)
        assert resp.status_code == 403
