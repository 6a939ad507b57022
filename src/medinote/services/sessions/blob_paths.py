from __future__ import annotations

import re

from src.medinote.domain.errors import ValidationError

TRANSCRIPT_FILENAME = "transcript.txt"


def chunk_blob_path(session_id: str, ordinal: int) -> str:
    return f"{session_id}/{ordinal}.wav"


def transcript_blob_path(session_id: str) -> str:
    return f"{session_id}/{TRANSCRIPT_FILENAME}"


def parse_chunk_ordinal(session_id: str, blob_path: str) -> int:
    """Return the chunk ordinal encoded in ``blob_path``.

    Only the exact path issued by :func:`chunk_blob_path` is accepted; keys of
    other sessions and aliases such as ``007.wav`` are rejected.
    """

    match = re.fullmatch(rf"{re.escape(session_id)}/(\d+)\.wav", blob_path or "")
    if match is None:
        raise ValidationError("blobPath does not reference a chunk of this session")
    ordinal = int(match.group(1))
    if blob_path != chunk_blob_path(session_id, ordinal):
        raise ValidationError("blobPath does not reference a chunk of this session")
    return ordinal
