"""Interview call pipeline API — transcription, speaker attribution and analysis."""

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, UploadFile, File, Form, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from config.errors import PipelineError
from config.schemas import OutcomeCode
from config.settings import Settings
from pipeline.analysis import analyze_call
from pipeline.orchestrator import (
    get_call_report,
    get_call_transcript,
    save_backup_transcript,
    transcribe_call,
    transcribe_upload,
)
from services.clients import ServiceClients, build_clients

app = FastAPI(
    title="Interview Call Pipeline",
    description="Pre-interview call recordings to speaker-attributed transcripts and STAR-method reports",
    version="0.1.0",
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

STATUS_BY_CODE = {
    OutcomeCode.OK: 200,
    OutcomeCode.ALREADY_ANALYZED: 200,
    OutcomeCode.INVALID_INPUT: 400,
    OutcomeCode.FORBIDDEN: 403,
    OutcomeCode.NOT_FOUND: 404,
    OutcomeCode.INVALID_STATE: 409,
    OutcomeCode.PERSISTENCE_FAILED: 500,
    OutcomeCode.INVALID_RESPONSE: 502,
    OutcomeCode.LLM_FAILED: 502,
    OutcomeCode.UPSTREAM_FAILED: 502,
    OutcomeCode.NOT_CONFIGURED: 503,
    OutcomeCode.TIMEOUT: 504,
}


# ── Startup: build service clients once ──
@app.on_event("startup")
async def startup_clients():
    if getattr(app.state, "clients", None) is None:
        app.state.clients = build_clients(Settings.from_env())
        logger.info("Service clients initialized")


def _clients(request: Request) -> ServiceClients:
    return request.app.state.clients


def _identity(user_id: str | None, user_type: str | None) -> tuple[str, str]:
    """Caller identity as forwarded by the gateway."""
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized: caller identity missing")
    return user_id, (user_type or "applicant")


def _raise_for_outcome(code: OutcomeCode, error: str | None):
    raise HTTPException(
        status_code=STATUS_BY_CODE.get(code, 500),
        detail={"code": code.value, "error": error},
    )


@app.get("/api/health")
async def health(request: Request):
    """Health check — provider configuration and LLM reachability."""
    clients = _clients(request)
    return {
        "status": "healthy",
        "asr_configured": clients.transcriber.is_configured(),
        "llm": await clients.llm.check_health(),
        "skip_analysis": clients.settings.skip_analysis,
    }


@app.post("/api/transcribe")
async def transcribe(
    request: Request,
    body: dict,
    x_user_id: str | None = Header(None),
    x_user_type: str | None = Header(None),
):
    """Transcribe a finished call from its stored recording, then analyze it.

    Body: {"callId": "...", "speaker_metadata": [{"speaker", "startTimeMs", "endTimeMs"}]}
    """
    user_id, user_type = _identity(x_user_id, x_user_type)
    call_id = body.get("callId") or ""
    if not call_id:
        raise HTTPException(status_code=400, detail="Call ID missing in request body")

    outcome = await transcribe_call(
        call_id, user_id, user_type, _clients(request),
        speaker_metadata=body.get("speaker_metadata"),
    )
    if not outcome.success:
        _raise_for_outcome(outcome.code, outcome.error)
    return outcome.model_dump(mode="json")


@app.post("/api/transcribe/upload")
async def transcribe_uploaded_audio(
    request: Request,
    callId: str = Form(...),
    audio: UploadFile = File(...),
    x_user_id: str | None = Header(None),
    x_user_type: str | None = Header(None),
):
    """Transcribe a manually uploaded recording (no speaker turns available)."""
    user_id, user_type = _identity(x_user_id, x_user_type)
    content = await audio.read()
    if not content:
        raise HTTPException(status_code=400, detail="Audio file missing or empty in form data")

    outcome = await transcribe_upload(
        callId, user_id, user_type, content, audio.filename or "recording.wav", _clients(request)
    )
    if not outcome.success:
        _raise_for_outcome(outcome.code, outcome.error)
    return outcome.model_dump(mode="json")


@app.post("/api/analyze")
async def analyze(
    request: Request,
    body: dict,
    x_user_id: str | None = Header(None),
    x_user_type: str | None = Header(None),
):
    """Run (or return the existing) analysis for a transcribed call.

    Body: {"callId": "..."}
    """
    user_id, user_type = _identity(x_user_id, x_user_type)
    call_id = body.get("callId") or ""
    if not call_id:
        raise HTTPException(status_code=400, detail="Call ID missing in request body")

    outcome = await analyze_call(call_id, user_id, user_type, _clients(request))
    if not outcome.success:
        _raise_for_outcome(outcome.code, outcome.error)
    return outcome.model_dump(mode="json")


@app.post("/api/recordings/backup-transcript")
async def backup_transcript(
    request: Request,
    body: dict,
    x_user_id: str | None = Header(None),
    x_user_type: str | None = Header(None),
):
    """Store the transcript captured client-side during the live call.

    Body: {"callId": "...", "transcript": [{"speaker", "text", "timestamp"}]}
    """
    user_id, user_type = _identity(x_user_id, x_user_type)
    outcome = await save_backup_transcript(
        body.get("callId") or "", user_id, user_type, body.get("transcript"), _clients(request)
    )
    if not outcome.success:
        _raise_for_outcome(outcome.code, outcome.error)
    return outcome.model_dump(mode="json")


@app.get("/api/calls/{call_id}/transcript")
async def call_transcript(
    call_id: str,
    request: Request,
    x_user_id: str | None = Header(None),
    x_user_type: str | None = Header(None),
):
    user_id, user_type = _identity(x_user_id, x_user_type)
    try:
        segments = await get_call_transcript(call_id, user_id, user_type, _clients(request))
    except PipelineError as e:
        _raise_for_outcome(e.code, e.message)
    return {"call_id": call_id, "transcript": [s.model_dump(mode="json") for s in segments]}


@app.get("/api/calls/{call_id}/report")
async def call_report(
    call_id: str,
    request: Request,
    x_user_id: str | None = Header(None),
    x_user_type: str | None = Header(None),
):
    user_id, user_type = _identity(x_user_id, x_user_type)
    try:
        report = await get_call_report(call_id, user_id, user_type, _clients(request))
    except PipelineError as e:
        _raise_for_outcome(e.code, e.message)
    return {"call_id": call_id, "report": report.model_dump(mode="json")}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
