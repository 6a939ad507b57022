from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TranscriptEntry(BaseModel):
    """A finished transcript attached to a patient's permanent record."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    content: str
    saved_at: datetime


class Patient(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    owner_id: str = Field(alias="userId")
    name: str
    created_at: datetime
    # At most one entry per session id; see TranscriptLedger.
    transcripts: List[TranscriptEntry] = Field(default_factory=list)

    def has_transcript_for(self, session_id: str) -> bool:
        return any(entry.session_id == session_id for entry in self.transcripts)
