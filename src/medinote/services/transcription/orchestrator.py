from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Dict, Optional

from src.medinote.domain.errors import ConflictError, InvalidStateError, NotFoundError, UpstreamError
from src.medinote.domain.models.recording_session import ChunkReference, RecordingSession, SessionStatus
from src.medinote.infra.db.repositories import PatientRepository, SessionRepository
from src.medinote.infra.storage.objects import ObjectStoreGateway
from src.medinote.services.patients.ledger import TranscriptLedger
from src.medinote.services.sessions.blob_paths import parse_chunk_ordinal, transcript_blob_path
from src.medinote.services.transcription.backends import AudioSource
from src.medinote.services.transcription.service import TranscriptionService

logger = logging.getLogger(__name__)


class ChunkOutcomeKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    # The session is completed but the final transcript could not be stored.
    FINAL_FAILED = "final_failed"


@dataclass
class ChunkOutcome:
    kind: ChunkOutcomeKind
    session: RecordingSession
    transcript: str
    failed_chunks: int = 0
    error: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.kind != ChunkOutcomeKind.PARTIAL


class TranscriptionOrchestrator:
    """Drives a recording session from chunk notifications to a final transcript.

    State changes for one session are serialized by a per-session
    ``asyncio.Lock`` held only while the session is read and mutated; the
    transcription calls run after it is released. The final chunk flips the
    session to FINALIZING inside that critical section, which closes the
    chunk list: later notifications fail with InvalidStateError, so the final
    transcription always sees the complete list and runs at most once. A lock
    entry lives only while some notification holds or waits for it.
    """

    def __init__(
        self,
        *,
        sessions: SessionRepository,
        patients: PatientRepository,
        object_store: ObjectStoreGateway,
        transcription: TranscriptionService,
        ledger: Optional[TranscriptLedger] = None,
        auto_save_final_transcript: bool = False,
    ) -> None:
        self._sessions = sessions
        self._patients = patients
        self._object_store = object_store
        self._transcription = transcription
        self._ledger = ledger
        self._auto_save = auto_save_final_transcript
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Hold the lock of one session; the entry is dropped once no caller uses it."""

        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self._locks[session_id]

    def _audio_source(self, blob_path: str) -> AudioSource:
        return AudioSource(
            blob_path=blob_path,
            uri=self._object_store.uri_for(blob_path),
            load=lambda: self._object_store.read_blob(blob_path),
        )

    async def chunk_uploaded(
        self,
        session_id: str,
        owner_id: str,
        blob_path: str,
        is_last: bool,
    ) -> ChunkOutcome:
        ordinal = parse_chunk_ordinal(session_id, blob_path)

        async with self._session_lock(session_id):
            session = await asyncio.to_thread(self._sessions.get, session_id, owner_id)
            if session is None:
                raise NotFoundError("Session not found")
            if is_last:
                patient = await asyncio.to_thread(self._patients.get, session.patient_id, owner_id)
                if patient is None:
                    raise NotFoundError("Patient not found")
            session = await asyncio.to_thread(
                self._sessions.mutate,
                session_id,
                _confirm_chunk(owner_id, ordinal, blob_path, is_last),
            )

        logger.info("Session %s: chunk %d confirmed (last=%s)", session_id, ordinal, is_last)

        if not is_last:
            text = await self._transcription.transcribe_partial(self._audio_source(blob_path))
            return ChunkOutcome(kind=ChunkOutcomeKind.PARTIAL, session=session, transcript=text)

        return await self._finalize(session)

    async def _finalize(self, session: RecordingSession) -> ChunkOutcome:
        transcript = ""
        failed_chunks = 0
        error: Optional[str] = None
        try:
            batch = await self._transcription.transcribe_many(
                [self._audio_source(chunk.blob_path) for chunk in session.ordered_chunks()]
            )
            transcript = batch.transcript
            failed_chunks = batch.failed_chunks
            await asyncio.to_thread(
                self._object_store.write_blob,
                transcript_blob_path(session.id),
                transcript.encode("utf-8"),
                content_type="text/plain",
            )
        except UpstreamError as exc:
            logger.error("Session %s: failed to store final transcript: %s", session.id, exc.detail)
            error = "Failed to generate final transcript"
        finally:
            # Runs on every path so the session can never stay in FINALIZING.
            completed = await asyncio.to_thread(
                self._sessions.mutate,
                session.id,
                _complete(transcript, error),
            )

        if failed_chunks:
            logger.warning("Session %s: %d chunk(s) failed to transcribe", session.id, failed_chunks)
        logger.info("Session %s completed (%d chunks)", session.id, len(completed.chunks))

        if error is not None:
            return ChunkOutcome(
                kind=ChunkOutcomeKind.FINAL_FAILED,
                session=completed,
                transcript=transcript,
                failed_chunks=failed_chunks,
                error=error,
            )

        if self._auto_save and self._ledger is not None:
            await self._save_to_ledger(completed)

        return ChunkOutcome(
            kind=ChunkOutcomeKind.FINAL,
            session=completed,
            transcript=transcript,
            failed_chunks=failed_chunks,
        )

    async def _save_to_ledger(self, session: RecordingSession) -> None:
        try:
            await asyncio.to_thread(
                self._ledger.save_transcript,
                session.patient_id,
                session.owner_id,
                session.id,
                session.transcript,
            )
        except ConflictError:
            logger.info("Session %s: transcript already in ledger", session.id)
        except NotFoundError:
            logger.warning("Session %s: patient %s no longer exists", session.id, session.patient_id)


def _confirm_chunk(owner_id: str, ordinal: int, blob_path: str, is_last: bool):
    def apply(session: RecordingSession) -> RecordingSession:
        if session.owner_id != owner_id:
            raise NotFoundError("Session not found")
        if session.status != SessionStatus.RECORDING:
            raise InvalidStateError(f"Session is already {session.status.value}")
        if session.has_chunk(ordinal):
            raise ConflictError(f"Chunk {ordinal} has already been confirmed")
        if ordinal not in session.authorized_ordinals:
            raise ConflictError(f"Chunk {ordinal} has no upload authorization")
        session.chunks.append(
            ChunkReference(ordinal=ordinal, blob_path=blob_path, uploaded_at=datetime.now(timezone.utc))
        )
        if is_last:
            session.status = SessionStatus.FINALIZING
        return session

    return apply


def _complete(transcript: str, error: Optional[str]):
    def apply(session: RecordingSession) -> RecordingSession:
        if session.status == SessionStatus.COMPLETED:
            raise InvalidStateError("Session is already completed")
        session.status = SessionStatus.COMPLETED
        session.transcript = transcript
        session.completed_at = datetime.now(timezone.utc)
        session.error = error
        return session

    return apply
