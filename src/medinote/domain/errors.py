from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UPSTREAM = "upstream"


class MediNoteError(Exception):
    """Base class for errors raised by the service layer.

    Each subclass carries an :class:`ErrorKind`; the API layer maps kinds to
    HTTP status codes in one place (see ``main.py``).
    """

    kind: ErrorKind = ErrorKind.UPSTREAM

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(MediNoteError):
    kind = ErrorKind.VALIDATION


class AuthError(MediNoteError):
    kind = ErrorKind.AUTH


class NotFoundError(MediNoteError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(MediNoteError):
    kind = ErrorKind.CONFLICT


class InvalidStateError(ConflictError):
    """The record exists but is not in a state that allows the operation."""


class UpstreamError(MediNoteError):
    """Object storage or transcription provider failure."""

    kind = ErrorKind.UPSTREAM
