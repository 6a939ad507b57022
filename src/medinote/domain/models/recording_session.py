from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SessionStatus(str, Enum):
    RECORDING = "recording"
    # Transient: the final chunk has been confirmed and the chunk list is
    # closed, but the final transcript has not been stored yet.
    FINALIZING = "finalizing"
    COMPLETED = "completed"


class ChunkReference(BaseModel):
    """A confirmed audio chunk: its blob path and position within the session."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ordinal: int
    blob_path: str
    uploaded_at: datetime


class RecordingSession(BaseModel):
    """One continuous recording episode for a patient.

    Chunks are append-only and the transcript stays empty until the session
    is finalized.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    owner_id: str = Field(alias="userId")
    patient_id: str
    status: SessionStatus = SessionStatus.RECORDING
    chunks: List[ChunkReference] = Field(default_factory=list)
    # Ordinals for which an upload URL has been issued (confirmed or not).
    authorized_ordinals: List[int] = Field(default_factory=list)
    transcript: str = ""
    created_at: datetime
    completed_at: Optional[datetime] = None
    # Last finalization error, if any (never transcript content).
    error: Optional[str] = None

    def has_chunk(self, ordinal: int) -> bool:
        return any(chunk.ordinal == ordinal for chunk in self.chunks)

    def ordered_chunks(self) -> List[ChunkReference]:
        return sorted(self.chunks, key=lambda chunk: chunk.ordinal)
