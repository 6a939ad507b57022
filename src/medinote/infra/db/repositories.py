from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Iterable, Optional

from src.medinote.domain.models.patient import Patient
from src.medinote.domain.models.recording_session import RecordingSession

SessionMutation = Callable[[RecordingSession], RecordingSession]
PatientMutation = Callable[[Patient], Patient]


class SessionRepository(ABC):
    """Keyed store of recording sessions.

    Reads are scoped to the owning user. ``mutate`` is the only way to change
    a stored session: the mutation receives a private copy of the current
    record and its return value replaces the record atomically. If the
    mutation raises, nothing is written.
    """

    @abstractmethod
    def create(self, session: RecordingSession) -> RecordingSession:
        raise NotImplementedError

    @abstractmethod
    def get(self, session_id: str, owner_id: str) -> Optional[RecordingSession]:
        raise NotImplementedError

    @abstractmethod
    def list_by_patient(self, patient_id: str, owner_id: str) -> Iterable[RecordingSession]:
        raise NotImplementedError

    @abstractmethod
    def list_by_owner(self, owner_id: str) -> Iterable[RecordingSession]:
        raise NotImplementedError

    @abstractmethod
    def mutate(self, session_id: str, fn: SessionMutation) -> RecordingSession:
        """Apply ``fn`` to the stored session and persist the result.

        Raises NotFoundError if no session has ``session_id``.
        """

        raise NotImplementedError


class PatientRepository(ABC):
    @abstractmethod
    def create(self, patient: Patient) -> Patient:
        raise NotImplementedError

    @abstractmethod
    def get(self, patient_id: str, owner_id: str) -> Optional[Patient]:
        raise NotImplementedError

    @abstractmethod
    def list_by_owner(self, owner_id: str) -> Iterable[Patient]:
        raise NotImplementedError

    @abstractmethod
    def mutate(self, patient_id: str, fn: PatientMutation) -> Patient:
        raise NotImplementedError
