from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.medinote.container import ServiceContainer, get_container
from src.medinote.domain.errors import ValidationError

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: str


class LoginResponse(BaseModel):
    token: str
    user_id: str = Field(alias="userId")


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest, container: ServiceContainer = Depends(get_container)) -> LoginResponse:
    """Issue a bearer token for ``email``.

    There is no password check: the email itself becomes the owner id. This
    mirrors the development login of the mobile client and should sit behind
    a real identity provider in production.
    """

    email = payload.email.strip()
    if not email:
        raise ValidationError("Invalid or missing email")

    token = container.tokens.issue(email, email=email)
    container.audit.log_event(action="login", resource_type="user", subject=email)
    return LoginResponse(token=token, userId=email)
