from __future__ import annotations

from datetime import datetime, timezone
from typing import List
from uuid import uuid4

from src.medinote.domain.errors import NotFoundError, ValidationError
from src.medinote.domain.models.patient import Patient
from src.medinote.infra.db.repositories import PatientRepository


class PatientService:
    """Owner-scoped patient records."""

    def __init__(self, patients: PatientRepository) -> None:
        self._patients = patients

    def create_patient(self, owner_id: str, name: str) -> Patient:
        if not name or not isinstance(name, str) or not name.strip():
            raise ValidationError("Invalid or missing patient name")
        if not owner_id:
            raise ValidationError("Invalid or missing userId")
        patient = Patient(
            id=str(uuid4()),
            owner_id=owner_id,
            name=name.strip(),
            created_at=datetime.now(timezone.utc),
        )
        return self._patients.create(patient)

    def list_patients(self, owner_id: str) -> List[Patient]:
        return list(self._patients.list_by_owner(owner_id))

    def get_patient(self, patient_id: str, owner_id: str) -> Patient:
        patient = self._patients.get(patient_id, owner_id)
        if patient is None:
            raise NotFoundError("Patient not found")
        return patient
