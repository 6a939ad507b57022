from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import select

from src.medinote.domain.errors import NotFoundError
from src.medinote.domain.models.patient import Patient
from src.medinote.infra.db.models import PatientORM
from src.medinote.infra.db.repositories import PatientMutation, PatientRepository
from src.medinote.infra.db.session import SessionFactory


class SqlPatientRepository(PatientRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def create(self, patient: Patient) -> Patient:
        with self._session_factory() as db, db.begin():
            db.add(PatientORM.from_domain(patient))
        return patient

    def get(self, patient_id: str, owner_id: str) -> Optional[Patient]:
        with self._session_factory() as db:
            orm = db.get(PatientORM, patient_id)
            if orm is None or orm.owner_id != owner_id:
                return None
            return orm.to_domain()

    def list_by_owner(self, owner_id: str) -> Iterable[Patient]:
        with self._session_factory() as db:
            query = select(PatientORM).where(PatientORM.owner_id == owner_id).order_by(PatientORM.created_at)
            return [orm.to_domain() for orm in db.scalars(query)]

    def mutate(self, patient_id: str, fn: PatientMutation) -> Patient:
        """Apply ``fn`` to the patient row under a row lock and commit."""

        with self._session_factory() as db, db.begin():
            query = select(PatientORM).where(PatientORM.id == patient_id).with_for_update()
            orm = db.scalars(query).one_or_none()
            if orm is None:
                raise NotFoundError("Patient not found")
            updated = fn(orm.to_domain())
            orm.update_from_domain(updated)
        return updated
