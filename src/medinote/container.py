from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from src.medinote.config import Settings
from src.medinote.infra.db.bootstrap import init_sql_repositories
from src.medinote.infra.db.inmemory import InMemoryPatientRepository, InMemorySessionRepository
from src.medinote.infra.db.repositories import PatientRepository, SessionRepository
from src.medinote.infra.storage.objects import ObjectStoreGateway, get_object_store_from_settings
from src.medinote.security import TokenService
from src.medinote.services.audit.service import AuditService, audit_service
from src.medinote.services.patients.ledger import TranscriptLedger
from src.medinote.services.patients.service import PatientService
from src.medinote.services.sessions.service import SessionService
from src.medinote.services.transcription.backends import ASRBackend, get_asr_backend_from_env
from src.medinote.services.transcription.orchestrator import TranscriptionOrchestrator
from src.medinote.services.transcription.service import TranscriptionService


@dataclass
class ServiceContainer:
    """Everything a request handler needs, wired once per application.

    The two repositories are the only mutable shared state; every service
    receives them explicitly instead of reaching for module globals.
    """

    settings: Settings
    session_repository: SessionRepository
    patient_repository: PatientRepository
    object_store: ObjectStoreGateway
    tokens: TokenService
    patients: PatientService
    ledger: TranscriptLedger
    sessions: SessionService
    transcription: TranscriptionService
    orchestrator: TranscriptionOrchestrator
    audit: AuditService


def build_container(
    settings: Settings,
    *,
    session_repository: Optional[SessionRepository] = None,
    patient_repository: Optional[PatientRepository] = None,
    object_store: Optional[ObjectStoreGateway] = None,
    asr_backend: Optional[ASRBackend] = None,
) -> ServiceContainer:
    if session_repository is None or patient_repository is None:
        sql_repos = init_sql_repositories(settings)
        if sql_repos is not None:
            session_repository = session_repository or sql_repos[0]
            patient_repository = patient_repository or sql_repos[1]
    session_repository = session_repository or InMemorySessionRepository()
    patient_repository = patient_repository or InMemoryPatientRepository()
    object_store = object_store or get_object_store_from_settings(settings)

    transcription = TranscriptionService(
        asr_backend or get_asr_backend_from_env(settings),
        timeout_seconds=settings.transcription_timeout_seconds,
        language_code=settings.asr_language_code,
        sample_rate_hz=settings.asr_sample_rate_hz,
    )
    ledger = TranscriptLedger(patient_repository)

    return ServiceContainer(
        settings=settings,
        session_repository=session_repository,
        patient_repository=patient_repository,
        object_store=object_store,
        tokens=TokenService(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expires_seconds=settings.jwt_expires_seconds,
        ),
        patients=PatientService(patient_repository),
        ledger=ledger,
        sessions=SessionService(
            sessions=session_repository,
            patients=patient_repository,
            object_store=object_store,
            upload_url_ttl_seconds=settings.upload_url_ttl_seconds,
        ),
        transcription=transcription,
        orchestrator=TranscriptionOrchestrator(
            sessions=session_repository,
            patients=patient_repository,
            object_store=object_store,
            transcription=transcription,
            ledger=ledger,
            auto_save_final_transcript=settings.auto_save_final_transcript,
        ),
        audit=audit_service,
    )


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the application's service container."""

    return request.app.state.container
