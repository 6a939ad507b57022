from __future__ import annotations

import asyncio
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.medinote.container import ServiceContainer, get_container
from src.medinote.domain.errors import ErrorKind
from src.medinote.domain.models.recording_session import RecordingSession
from src.medinote.security import get_current_owner
from src.medinote.services.transcription.orchestrator import ChunkOutcomeKind

router = APIRouter(
    prefix="/sessions",
    tags=["sessions"],
    dependencies=[Depends(get_current_owner)],
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateSessionRequest(_CamelModel):
    patient_id: str


class CreateSessionResponse(_CamelModel):
    id: str


class SessionListResponse(_CamelModel):
    sessions: List[RecordingSession]


class UploadUrlRequest(_CamelModel):
    chunk_number: int = Field(ge=0)
    mime_type: str


class UploadUrlResponse(BaseModel):
    upload_url: str = Field(alias="uploadURL")
    blob_path: str = Field(alias="blobPath")
    expires_at: datetime = Field(alias="expiresAt")


class ChunkUploadedRequest(_CamelModel):
    blob_path: str
    is_last: bool = False


class ChunkUploadedResponse(_CamelModel):
    message: str
    transcript: str
    is_final: bool
    failed_chunks: int = 0


@router.post("", response_model=CreateSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: CreateSessionRequest,
    owner_id: str = Depends(get_current_owner),
    container: ServiceContainer = Depends(get_container),
) -> CreateSessionResponse:
    session = await asyncio.to_thread(container.sessions.begin_session, payload.patient_id, owner_id)

    container.audit.log_event(
        action="create_session",
        resource_type="recording_session",
        resource_id=session.id,
        extra={"patient_id": session.patient_id},
    )

    return CreateSessionResponse(id=session.id)


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    patient_id: Optional[str] = Query(None, alias="patientId"),
    owner_id: str = Depends(get_current_owner),
    container: ServiceContainer = Depends(get_container),
) -> SessionListResponse:
    """List the caller's sessions, optionally only those of one patient."""

    sessions = await asyncio.to_thread(container.sessions.list_sessions, owner_id, patient_id)
    return SessionListResponse(sessions=sessions)


@router.get("/{session_id}", response_model=RecordingSession)
async def get_session(
    session_id: str,
    owner_id: str = Depends(get_current_owner),
    container: ServiceContainer = Depends(get_container),
) -> RecordingSession:
    return await asyncio.to_thread(container.sessions.get_session, session_id, owner_id)


@router.post("/{session_id}/upload-url", response_model=UploadUrlResponse)
async def get_upload_url(
    session_id: str,
    payload: UploadUrlRequest,
    owner_id: str = Depends(get_current_owner),
    container: ServiceContainer = Depends(get_container),
) -> UploadUrlResponse:
    """Issue a time-limited URL the client uses to upload one chunk directly to object storage."""

    authorization = await asyncio.to_thread(
        container.sessions.authorize_chunk_upload,
        session_id,
        owner_id,
        payload.chunk_number,
        payload.mime_type,
    )

    container.audit.log_event(
        action="authorize_chunk_upload",
        resource_type="recording_session",
        resource_id=session_id,
        extra={"chunk_number": payload.chunk_number},
    )

    return UploadUrlResponse(
        uploadURL=authorization.upload_url,
        blobPath=authorization.blob_path,
        expiresAt=authorization.expires_at,
    )


@router.post("/{session_id}/chunk-uploaded", response_model=ChunkUploadedResponse)
async def chunk_uploaded(
    session_id: str,
    payload: ChunkUploadedRequest,
    owner_id: str = Depends(get_current_owner),
    container: ServiceContainer = Depends(get_container),
):
    """Confirm an uploaded chunk and return a partial or final transcript.

    Intermediate chunks get a best-effort transcript of that chunk alone.
    The last chunk closes the session: all chunks are transcribed in order,
    the result is stored as ``{session_id}/transcript.txt`` and the session
    is completed even if storing fails (reported as a 500).
    """

    outcome = await container.orchestrator.chunk_uploaded(
        session_id,
        owner_id,
        payload.blob_path,
        payload.is_last,
    )

    container.audit.log_event(
        action="finalize_session" if outcome.is_final else "chunk_uploaded",
        resource_type="recording_session",
        resource_id=session_id,
        extra={
            "chunk_count": len(outcome.session.chunks),
            "failed_chunks": outcome.failed_chunks,
            "outcome": outcome.kind.value,
        },
    )

    if outcome.kind == ChunkOutcomeKind.FINAL_FAILED:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": ErrorKind.UPSTREAM.value,
                "detail": outcome.error,
                "transcript": outcome.transcript,
                "isFinal": True,
            },
        )

    if outcome.is_final:
        return ChunkUploadedResponse(
            message="Session finalized.",
            transcript=outcome.transcript,
            is_final=True,
            failed_chunks=outcome.failed_chunks,
        )
    return ChunkUploadedResponse(message="Chunk processed.", transcript=outcome.transcript, is_final=False)
