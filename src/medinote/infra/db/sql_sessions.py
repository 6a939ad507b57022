from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import select

from src.medinote.domain.errors import NotFoundError
from src.medinote.domain.models.recording_session import RecordingSession
from src.medinote.infra.db.models import RecordingSessionORM
from src.medinote.infra.db.repositories import SessionMutation, SessionRepository
from src.medinote.infra.db.session import SessionFactory


class SqlSessionRepository(SessionRepository):
    """SQL-backed SessionRepository.

    ``mutate`` runs inside a single transaction and locks the row with
    ``SELECT ... FOR UPDATE`` (a no-op on SQLite, which serializes writers
    itself), so concurrent mutations of one session are applied one at a
    time.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def create(self, session: RecordingSession) -> RecordingSession:
        with self._session_factory() as db, db.begin():
            db.add(RecordingSessionORM.from_domain(session))
        return session

    def get(self, session_id: str, owner_id: str) -> Optional[RecordingSession]:
        with self._session_factory() as db:
            orm = db.get(RecordingSessionORM, session_id)
            if orm is None or orm.owner_id != owner_id:
                return None
            return orm.to_domain()

    def list_by_patient(self, patient_id: str, owner_id: str) -> Iterable[RecordingSession]:
        with self._session_factory() as db:
            query = (
                select(RecordingSessionORM)
                .where(RecordingSessionORM.owner_id == owner_id)
                .where(RecordingSessionORM.patient_id == patient_id)
                .order_by(RecordingSessionORM.created_at)
            )
            return [orm.to_domain() for orm in db.scalars(query)]

    def list_by_owner(self, owner_id: str) -> Iterable[RecordingSession]:
        with self._session_factory() as db:
            query = (
                select(RecordingSessionORM)
                .where(RecordingSessionORM.owner_id == owner_id)
                .order_by(RecordingSessionORM.created_at)
            )
            return [orm.to_domain() for orm in db.scalars(query)]

    def mutate(self, session_id: str, fn: SessionMutation) -> RecordingSession:
        with self._session_factory() as db, db.begin():
            query = select(RecordingSessionORM).where(RecordingSessionORM.id == session_id).with_for_update()
            orm = db.scalars(query).one_or_none()
            if orm is None:
                raise NotFoundError("Session not found")
            updated = fn(orm.to_domain())
            orm.update_from_domain(updated)
        return updated
