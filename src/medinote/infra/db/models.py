from __future__ import annotations

from datetime import datetime
from typing import Any, List

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.medinote.domain.models.patient import Patient, TranscriptEntry
from src.medinote.domain.models.recording_session import ChunkReference, RecordingSession, SessionStatus


class Base(DeclarativeBase):
    pass


class RecordingSessionORM(Base):
    __tablename__ = "recording_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    # Chunks are stored as a JSON list of {ordinal, blob_path, uploaded_at}
    # objects in upload order. A separate table is not needed because chunks
    # are only ever read together with their session.
    chunks: Mapped[List[Any]] = mapped_column(JSON, nullable=False, default=list)
    authorized_ordinals: Mapped[List[int]] = mapped_column(JSON, nullable=False, default=list)
    transcript: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    @classmethod
    def from_domain(cls, session: RecordingSession) -> "RecordingSessionORM":
        orm = cls(id=session.id)
        orm.update_from_domain(session)
        return orm

    def update_from_domain(self, session: RecordingSession) -> None:
        self.owner_id = session.owner_id
        self.patient_id = session.patient_id
        self.status = session.status.value
        self.chunks = [chunk.model_dump(mode="json") for chunk in session.chunks]
        self.authorized_ordinals = list(session.authorized_ordinals)
        self.transcript = session.transcript
        self.created_at = session.created_at
        self.completed_at = session.completed_at
        self.error = session.error

    def to_domain(self) -> RecordingSession:
        return RecordingSession(
            id=self.id,
            owner_id=self.owner_id,
            patient_id=self.patient_id,
            status=SessionStatus(self.status),
            chunks=[ChunkReference.model_validate(c) for c in self.chunks or []],
            authorized_ordinals=list(self.authorized_ordinals or []),
            transcript=self.transcript or "",
            created_at=self.created_at,
            completed_at=self.completed_at,
            error=self.error,
        )


class PatientORM(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    transcripts: Mapped[List[Any]] = mapped_column(JSON, nullable=False, default=list)

    @classmethod
    def from_domain(cls, patient: Patient) -> "PatientORM":
        orm = cls(id=patient.id)
        orm.update_from_domain(patient)
        return orm

    def update_from_domain(self, patient: Patient) -> None:
        self.owner_id = patient.owner_id
        self.name = patient.name
        self.created_at = patient.created_at
        self.transcripts = [entry.model_dump(mode="json") for entry in patient.transcripts]

    def to_domain(self) -> Patient:
        return Patient(
            id=self.id,
            owner_id=self.owner_id,
            name=self.name,
            created_at=self.created_at,
            transcripts=[TranscriptEntry.model_validate(t) for t in self.transcripts or []],
        )
