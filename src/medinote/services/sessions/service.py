from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel

from src.medinote.domain.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from src.medinote.domain.models.recording_session import RecordingSession, SessionStatus
from src.medinote.infra.db.repositories import PatientRepository, SessionRepository
from src.medinote.infra.storage.objects import ObjectStoreGateway
from src.medinote.services.sessions.blob_paths import chunk_blob_path

logger = logging.getLogger(__name__)


class UploadAuthorization(BaseModel):
    upload_url: str
    blob_path: str
    expires_at: datetime


class SessionService:
    """Starts recording sessions and issues per-chunk upload authorizations.

    Issuing an upload URL only records the ordinal as authorized; the chunk
    joins the session when the client confirms the upload (see
    TranscriptionOrchestrator.chunk_uploaded).
    """

    def __init__(
        self,
        *,
        sessions: SessionRepository,
        patients: PatientRepository,
        object_store: ObjectStoreGateway,
        upload_url_ttl_seconds: int = 15 * 60,
    ) -> None:
        self._sessions = sessions
        self._patients = patients
        self._object_store = object_store
        self._upload_url_ttl_seconds = upload_url_ttl_seconds

    def begin_session(self, patient_id: str, owner_id: str) -> RecordingSession:
        if not patient_id or not isinstance(patient_id, str):
            raise ValidationError("Invalid or missing patientId")
        if not owner_id:
            raise ValidationError("Invalid or missing userId")
        if self._patients.get(patient_id, owner_id) is None:
            raise NotFoundError("Patient not found")

        session = RecordingSession(
            id=str(uuid4()),
            owner_id=owner_id,
            patient_id=patient_id,
            status=SessionStatus.RECORDING,
            created_at=datetime.now(timezone.utc),
        )
        self._sessions.create(session)
        logger.info("Session %s started for patient %s", session.id, patient_id)
        return session

    def get_session(self, session_id: str, owner_id: str) -> RecordingSession:
        session = self._sessions.get(session_id, owner_id)
        if session is None:
            raise NotFoundError("Session not found")
        return session

    def list_sessions(self, owner_id: str, patient_id: Optional[str] = None) -> List[RecordingSession]:
        if patient_id is not None:
            return list(self._sessions.list_by_patient(patient_id, owner_id))
        return list(self._sessions.list_by_owner(owner_id))

    def authorize_chunk_upload(
        self,
        session_id: str,
        owner_id: str,
        chunk_ordinal: int,
        content_type: str,
    ) -> UploadAuthorization:
        """Issue a time-limited write URL for chunk ``chunk_ordinal`` of a session.

        Ordinals must be issued in increasing order; re-requesting the URL of
        an ordinal that has not been confirmed yet is allowed (client retry).
        """

        if isinstance(chunk_ordinal, bool) or not isinstance(chunk_ordinal, int) or chunk_ordinal < 0:
            raise ValidationError("chunkNumber must be a non-negative integer")
        if not content_type or not content_type.startswith("audio/"):
            raise ValidationError("mimeType must be an audio/* content type")

        session = self.get_session(session_id, owner_id)
        self._check_can_authorize(session, chunk_ordinal)

        blob_path = chunk_blob_path(session_id, chunk_ordinal)
        upload_url = self._object_store.issue_upload_url(
            blob_path,
            content_type=content_type,
            expires_in=self._upload_url_ttl_seconds,
        )

        def record(current: RecordingSession) -> RecordingSession:
            self._check_can_authorize(current, chunk_ordinal)
            if chunk_ordinal not in current.authorized_ordinals:
                current.authorized_ordinals.append(chunk_ordinal)
            return current

        self._sessions.mutate(session_id, record)
        return UploadAuthorization(
            upload_url=upload_url,
            blob_path=blob_path,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=self._upload_url_ttl_seconds),
        )

    @staticmethod
    def _check_can_authorize(session: RecordingSession, chunk_ordinal: int) -> None:
        if session.status != SessionStatus.RECORDING:
            raise InvalidStateError(f"Session is {session.status.value}; uploads are closed")
        if session.has_chunk(chunk_ordinal):
            raise ConflictError(f"Chunk {chunk_ordinal} has already been uploaded")
        if chunk_ordinal in session.authorized_ordinals:
            return
        if session.authorized_ordinals and chunk_ordinal < max(session.authorized_ordinals):
            raise ConflictError(f"Chunk {chunk_ordinal} is out of order")
