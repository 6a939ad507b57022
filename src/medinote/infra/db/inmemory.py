from __future__ import annotations

from threading import RLock
from typing import Dict, Iterable, Optional

from src.medinote.domain.errors import NotFoundError
from src.medinote.domain.models.patient import Patient
from src.medinote.domain.models.recording_session import RecordingSession
from src.medinote.infra.db.repositories import (
    PatientMutation,
    PatientRepository,
    SessionMutation,
    SessionRepository,
)


class InMemorySessionRepository(SessionRepository):
    """Process-lifetime session store backed by a dict.

    Records are copied on the way in and out so callers can never mutate the
    stored instance except through :meth:`mutate`.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._sessions: Dict[str, RecordingSession] = {}

    def create(self, session: RecordingSession) -> RecordingSession:
        with self._lock:
            self._sessions[session.id] = session.model_copy(deep=True)
        return session

    def get(self, session_id: str, owner_id: str) -> Optional[RecordingSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.owner_id != owner_id:
                return None
            return session.model_copy(deep=True)

    def list_by_patient(self, patient_id: str, owner_id: str) -> Iterable[RecordingSession]:
        with self._lock:
            return [
                s.model_copy(deep=True)
                for s in self._sessions.values()
                if s.patient_id == patient_id and s.owner_id == owner_id
            ]

    def list_by_owner(self, owner_id: str) -> Iterable[RecordingSession]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._sessions.values() if s.owner_id == owner_id]

    def mutate(self, session_id: str, fn: SessionMutation) -> RecordingSession:
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                raise NotFoundError("Session not found")
            updated = fn(current.model_copy(deep=True))
            self._sessions[session_id] = updated.model_copy(deep=True)
            return updated


class InMemoryPatientRepository(PatientRepository):
    def __init__(self) -> None:
        self._lock = RLock()
        self._patients: Dict[str, Patient] = {}

    def create(self, patient: Patient) -> Patient:
        with self._lock:
            self._patients[patient.id] = patient.model_copy(deep=True)
        return patient

    def get(self, patient_id: str, owner_id: str) -> Optional[Patient]:
        with self._lock:
            patient = self._patients.get(patient_id)
            if patient is None or patient.owner_id != owner_id:
                return None
            return patient.model_copy(deep=True)

    def list_by_owner(self, owner_id: str) -> Iterable[Patient]:
        with self._lock:
            return [p.model_copy(deep=True) for p in self._patients.values() if p.owner_id == owner_id]

    def mutate(self, patient_id: str, fn: PatientMutation) -> Patient:
        with self._lock:
            current = self._patients.get(patient_id)
            if current is None:
                raise NotFoundError("Patient not found")
            updated = fn(current.model_copy(deep=True))
            self._patients[patient_id] = updated.model_copy(deep=True)
            return updated
