"""ORM models — calls, their recordings, and analysis reports."""

from __future__ import annotations

from sqlalchemy import JSON, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from config.schemas import UploadStatus


class Base(DeclarativeBase):
    pass


# ── RECORDING ──

class Recording(Base):
    __tablename__ = "recordings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    uri: Mapped[str | None] = mapped_column(Text, nullable=True)

    # [{speaker, text, timestamp}], older rows may hold the JSON as a string
    transcript: Mapped[list | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    speaker_metadata: Mapped[list | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    upload_status: Mapped[UploadStatus] = mapped_column(
        Enum(UploadStatus, values_callable=lambda e: [m.value for m in e]),
        default=UploadStatus.PENDING,
        nullable=False,
    )


# ── CALL ──

class Call(Base):
    __tablename__ = "calls"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    job_title: Mapped[str | None] = mapped_column(Text, nullable=True)

    recording_id: Mapped[str | None] = mapped_column(ForeignKey("recordings.id"), nullable=True)
    # set in the same transaction that inserts the report
    report_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    recording: Mapped[Recording | None] = relationship()


# ── REPORT ──

class Report(Base):
    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # at most one report per call; a concurrent second insert fails here
    call_id: Mapped[str] = mapped_column(ForeignKey("calls.id"), unique=True, nullable=False)
    timestamp: Mapped[str] = mapped_column(String(40), nullable=False)

    answers: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    clarity: Mapped[dict] = mapped_column(JSON, nullable=False)
    relevance: Mapped[dict] = mapped_column(JSON, nullable=False)
    depth: Mapped[dict] = mapped_column(JSON, nullable=False)
    comm_style: Mapped[dict] = mapped_column(JSON, nullable=False)
    cultural_fit: Mapped[dict] = mapped_column(JSON, nullable=False)
    attention_to_detail: Mapped[dict] = mapped_column(JSON, nullable=False)
    language_proficiency: Mapped[dict] = mapped_column(JSON, nullable=False)
    star_method: Mapped[dict] = mapped_column(JSON, nullable=False)
