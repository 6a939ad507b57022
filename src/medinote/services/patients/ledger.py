from __future__ import annotations

import logging
from datetime import datetime, timezone

from src.medinote.domain.errors import ConflictError, NotFoundError, ValidationError
from src.medinote.domain.models.patient import Patient, TranscriptEntry
from src.medinote.infra.db.repositories import PatientRepository

logger = logging.getLogger(__name__)


class TranscriptLedger:
    """Attaches finished transcripts to a patient's permanent record.

    Each session can be saved at most once per patient. A retry for a session
    that is already recorded fails with ConflictError and leaves the stored
    entry untouched.
    """

    def __init__(self, patients: PatientRepository) -> None:
        self._patients = patients

    def save_transcript(self, patient_id: str, owner_id: str, session_id: str, content: str) -> Patient:
        if not patient_id or not session_id or content is None:
            raise ValidationError("Missing patientId, sessionId, or transcript")
        if self._patients.get(patient_id, owner_id) is None:
            raise NotFoundError("Patient not found or you do not have permission to access it.")

        def append(patient: Patient) -> Patient:
            # Re-checked inside the mutation so the ownership and duplicate
            # checks and the append are one atomic step.
            if patient.owner_id != owner_id:
                raise NotFoundError("Patient not found or you do not have permission to access it.")
            if patient.has_transcript_for(session_id):
                raise ConflictError(f"Transcript for session {session_id} has already been saved.")
            patient.transcripts.append(
                TranscriptEntry(
                    session_id=session_id,
                    content=content,
                    saved_at=datetime.now(timezone.utc),
                )
            )
            return patient

        updated = self._patients.mutate(patient_id, append)
        logger.info(
            "Transcript for session %s saved to patient %s (%d entries)",
            session_id,
            patient_id,
            len(updated.transcripts),
        )
        return updated
