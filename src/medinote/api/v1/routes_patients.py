from __future__ import annotations

import asyncio
from typing import List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.medinote.container import ServiceContainer, get_container
from src.medinote.domain.models.patient import Patient
from src.medinote.security import get_current_owner

router = APIRouter(
    prefix="/patients",
    tags=["patients"],
    dependencies=[Depends(get_current_owner)],
)


class CreatePatientRequest(BaseModel):
    name: str


class PatientResponse(BaseModel):
    patient: Patient
    message: str | None = None


class PatientListResponse(BaseModel):
    patients: List[Patient]


class SaveTranscriptRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    content: str


@router.get("", response_model=PatientListResponse)
async def list_patients(
    owner_id: str = Depends(get_current_owner),
    container: ServiceContainer = Depends(get_container),
) -> PatientListResponse:
    patients = await asyncio.to_thread(container.patients.list_patients, owner_id)
    return PatientListResponse(patients=patients)


@router.post("", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(
    payload: CreatePatientRequest,
    owner_id: str = Depends(get_current_owner),
    container: ServiceContainer = Depends(get_container),
) -> PatientResponse:
    patient = await asyncio.to_thread(container.patients.create_patient, owner_id, payload.name)

    container.audit.log_event(action="create_patient", resource_type="patient", resource_id=patient.id)

    return PatientResponse(patient=patient, message="Patient created successfully")


@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient(
    patient_id: str,
    owner_id: str = Depends(get_current_owner),
    container: ServiceContainer = Depends(get_container),
) -> PatientResponse:
    patient = await asyncio.to_thread(container.patients.get_patient, patient_id, owner_id)
    return PatientResponse(patient=patient)


@router.post("/{patient_id}/transcripts", response_model=PatientResponse)
async def save_transcript(
    patient_id: str,
    payload: SaveTranscriptRequest,
    owner_id: str = Depends(get_current_owner),
    container: ServiceContainer = Depends(get_container),
) -> PatientResponse:
    """Attach a finished session transcript to the patient's record.

    A second save for the same session returns 409 and leaves the first
    entry unchanged, so client retries are safe.
    """

    patient = await asyncio.to_thread(
        container.ledger.save_transcript,
        patient_id,
        owner_id,
        payload.session_id,
        payload.content,
    )

    container.audit.log_event(
        action="save_transcript",
        resource_type="patient",
        resource_id=patient_id,
        extra={"session_id": payload.session_id, "transcript_count": len(patient.transcripts)},
    )

    return PatientResponse(patient=patient, message="Transcript saved successfully.")
