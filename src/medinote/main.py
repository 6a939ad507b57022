import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.medinote.api.v1.routes_auth import router as auth_router_v1
from src.medinote.api.v1.routes_patients import router as patients_router_v1
from src.medinote.api.v1.routes_sessions import router as sessions_router_v1
from src.medinote.api.v1.routes_system import router as system_router_v1
from src.medinote.api.v1.routes_uploads import router as uploads_router_v1
from src.medinote.config import Settings, settings as default_settings
from src.medinote.container import ServiceContainer, build_container
from src.medinote.domain.errors import ErrorKind, MediNoteError

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTH: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.UPSTREAM: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def medinote_error_handler(request: Request, exc: MediNoteError) -> JSONResponse:
    status_code = _STATUS_BY_KIND[exc.kind]
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    headers = {"WWW-Authenticate": "Bearer"} if exc.kind == ErrorKind.AUTH else None
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.kind.value, "detail": exc.detail},
        headers=headers,
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Missing or malformed body fields are client errors (400), not 422.
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": ErrorKind.VALIDATION.value, "detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]


def create_app(
    settings: Optional[Settings] = None,
    *,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """Build the API application.

    Tests pass their own ``container`` (isolated stores, fake backends);
    otherwise one is built from ``settings``. SQL-backed repositories are
    used when USE_SQL_REPOS is enabled and DATABASE_URL is configured.
    """

    settings = settings or default_settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not settings.jwt_secret_configured:
        logger.warning("JWT_SECRET is not set. Using fallback secret is insecure for production.")

    app = FastAPI(title="MediNote Transcription API")
    app.state.container = container or build_container(settings)

    app.add_exception_handler(MediNoteError, medinote_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)

    # CORS configuration – permissive by default for development. Tighten via
    # CORS_ALLOW_ORIGINS in production deployments.
    allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["system"])
    async def health_check() -> dict:
        """Basic liveness probe for the API root."""
        return {"status": "ok"}

    # Versioned API routers
    app.include_router(system_router_v1, prefix="/api/v1")
    app.include_router(auth_router_v1, prefix="/api/v1")
    app.include_router(patients_router_v1, prefix="/api/v1")
    app.include_router(sessions_router_v1, prefix="/api/v1")
    app.include_router(uploads_router_v1, prefix="/api/v1")

    return app


app = create_app()
