from fastapi import APIRouter, Depends

from src.medinote.container import ServiceContainer, get_container

router = APIRouter(prefix="", tags=["system"])


@router.get("/health")
async def health_check_v1(container: ServiceContainer = Depends(get_container)) -> dict:
    """API v1 health endpoint, including the configured backends (no PHI)."""
    return {
        "status": "ok",
        "version": "v1",
        "storage_backend": container.settings.storage_backend,
        "asr_backend": container.settings.asr_backend,
    }
