from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from src.medinote.container import ServiceContainer, get_container
from src.medinote.domain.errors import ValidationError
from src.medinote.infra.storage.objects import LocalObjectStore

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.put("/{blob_path:path}", status_code=status.HTTP_204_NO_CONTENT)
async def upload_blob(
    blob_path: str,
    request: Request,
    token: str = Query(...),
    container: ServiceContainer = Depends(get_container),
) -> Response:
    """Receive a chunk uploaded through a URL issued by the local object store.

    Only available when STORAGE_BACKEND=local; with S3 the client uploads to
    the bucket directly. The token is scoped to ``blob_path`` and expires
    with the upload authorization.
    """

    store = container.object_store
    if not isinstance(store, LocalObjectStore):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    content_type = store.verify_upload_token(token, blob_path)
    request_type = request.headers.get("content-type")
    if request_type and request_type.split(";")[0].strip() != content_type:
        raise ValidationError(f"Content-Type must be {content_type}")

    content = await request.body()
    if len(content) > container.settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Uploaded file too large.",
        )

    await asyncio.to_thread(store.write_blob, blob_path, content, content_type=content_type)

    container.audit.log_event(
        action="upload_chunk",
        resource_type="blob",
        resource_id=blob_path,
        extra={"size_bytes": len(content)},
    )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
