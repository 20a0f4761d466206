"""Repository — every read/write the pipeline makes against the database.

Sync SQLAlchemy sessions; async callers wrap these in asyncio.to_thread.
"""

import uuid
from pathlib import Path

from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from loguru import logger

from config.errors import DuplicateReportError, PersistenceError
from config.schemas import StoredReport, UploadStatus
from services.db.models import Base, Call, Recording, Report


def make_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create the engine (and any missing tables) for a database URL."""
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise each session sees an empty db
            kwargs["poolclass"] = StaticPool
        elif "///" in database_url:
            Path(database_url.split("///", 1)[1]).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(database_url, **kwargs)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


class Repository:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._sessions = session_factory

    @classmethod
    def from_url(cls, database_url: str) -> "Repository":
        return cls(make_session_factory(database_url))

    # ── Reads ──

    def get_call(self, call_id: str) -> Call | None:
        with self._sessions() as session:
            return session.get(Call, call_id)

    def get_recording(self, recording_id: str) -> Recording | None:
        with self._sessions() as session:
            return session.get(Recording, recording_id)

    def get_report(self, report_id: str) -> StoredReport | None:
        with self._sessions() as session:
            row = session.get(Report, report_id)
            if row is None:
                return None
            return StoredReport(
                id=row.id,
                timestamp=row.timestamp,
                answers=row.answers,
                clarity=row.clarity,
                relevance=row.relevance,
                depth=row.depth,
                comm_style=row.comm_style,
                cultural_fit=row.cultural_fit,
                attention_to_detail=row.attention_to_detail,
                language_proficiency=row.language_proficiency,
                star_method=row.star_method,
            )

    def calls_pending_analysis(self) -> list[str]:
        """Ids of calls with a transcript but no linked report."""
        with self._sessions() as session:
            stmt = (
                select(Call.id)
                .join(Recording, Call.recording_id == Recording.id)
                .where(Call.report_id.is_(None), Recording.transcript.is_not(None))
                .order_by(Call.id)
            )
            return list(session.scalars(stmt))

    # ── Writes ──

    def add_call(
        self,
        call_id: str,
        user_id: str,
        recording_uri: str | None = None,
        job_title: str | None = None,
    ) -> Call:
        """Register a call (and its pending recording when the URI is known)."""
        with self._sessions() as session, session.begin():
            call = Call(id=call_id, user_id=user_id, job_title=job_title)
            if recording_uri is not None:
                recording = Recording(id=f"rec-{call_id}", uri=recording_uri)
                session.add(recording)
                call.recording_id = recording.id
            session.add(call)
        return call

    def attach_recording(self, call_id: str, uri: str) -> str:
        """Point a call at a (new or replaced) recording; returns the recording id."""
        with self._sessions() as session, session.begin():
            call = session.get(Call, call_id)
            if call is None:
                raise PersistenceError(f"Call not found: {call_id}")
            recording = session.get(Recording, call.recording_id) if call.recording_id else None
            if recording is None:
                recording = Recording(id=f"rec-{call_id}", uri=uri)
                session.add(recording)
                call.recording_id = recording.id
            else:
                recording.uri = uri
            recording.upload_status = UploadStatus.UPLOADED
            return recording.id

    def set_upload_status(self, recording_id: str, status: UploadStatus) -> None:
        self._update_recording(recording_id, upload_status=status)

    def save_speaker_metadata(self, recording_id: str, speaker_metadata: list[dict]) -> None:
        self._update_recording(recording_id, speaker_metadata=speaker_metadata)

    def save_transcript(self, recording_id: str, transcript: list[dict], duration: int | None) -> None:
        self._update_recording(recording_id, transcript=transcript, duration=duration)

    def save_backup_transcript(self, call_id: str, transcript: list[dict], duration: int | None) -> str:
        """Store a client-side transcript, creating the recording row if the call has none.

        An existing duration is kept. Returns the recording id.
        """
        try:
            with self._sessions() as session, session.begin():
                call = session.get(Call, call_id)
                if call is None:
                    raise PersistenceError(f"Call not found: {call_id}")
                recording = session.get(Recording, call.recording_id) if call.recording_id else None
                if recording is None:
                    recording = Recording(
                        id=str(uuid.uuid4()),
                        uri=None,
                        upload_status=UploadStatus.TRANSCRIPT_BACKED_UP,
                    )
                    session.add(recording)
                    call.recording_id = recording.id
                recording.transcript = transcript
                if duration and not recording.duration:
                    recording.duration = duration
                return recording.id
        except SQLAlchemyError as e:
            logger.error(f"[{call_id}] Failed to back up transcript: {e}")
            raise PersistenceError(f"Failed to back up transcript: {e}") from e

    def _update_recording(self, recording_id: str, **values) -> None:
        try:
            with self._sessions() as session, session.begin():
                recording = session.get(Recording, recording_id)
                if recording is None:
                    raise PersistenceError(f"Recording not found: {recording_id}")
                for key, value in values.items():
                    setattr(recording, key, value)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update recording {recording_id}: {e}")
            raise PersistenceError(f"Failed to update recording: {e}") from e

    def insert_report_and_link(self, call_id: str, report: StoredReport) -> None:
        """Insert the report and set call.report_id in a single transaction.

        Raises:
            DuplicateReportError: a report for this call was committed first
            PersistenceError: any other database failure (nothing is written)
        """
        data = report.model_dump(mode="json")
        row = Report(call_id=call_id, **data)
        try:
            with self._sessions() as session, session.begin():
                session.add(row)
                session.flush()
                call = session.get(Call, call_id)
                if call is None:
                    raise PersistenceError(f"Call not found: {call_id}")
                call.report_id = report.id
        except IntegrityError as e:
            existing = self._existing_report_id(call_id)
            if existing is not None:
                raise DuplicateReportError(call_id, existing) from e
            raise PersistenceError(f"Failed to save analysis report: {e.orig}") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save analysis report: {e}") from e

    def _existing_report_id(self, call_id: str) -> str | None:
        with self._sessions() as session:
            return session.scalar(select(Report.id).where(Report.call_id == call_id))
