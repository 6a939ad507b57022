from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Optional
from urllib.parse import quote

import boto3
import jwt
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from src.medinote.config import Settings
from src.medinote.domain.errors import AuthError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)

_UPLOAD_TOKEN_SCOPE = "blob-upload"


def validate_blob_path(blob_path: str) -> str:
    """Return ``blob_path`` if it is a safe, relative object key.

    Rejects absolute paths, backslashes, empty segments and ``.``/``..``
    segments so a key can never escape its session prefix.
    """

    if not blob_path or blob_path.startswith("/") or "\\" in blob_path:
        raise ValidationError(f"Invalid blob path: {blob_path!r}")
    parts = blob_path.split("/")
    if any(part in ("", ".", "..") for part in parts):
        raise ValidationError(f"Invalid blob path: {blob_path!r}")
    return blob_path


class ObjectStoreGateway(ABC):
    @abstractmethod
    def issue_upload_url(self, blob_path: str, *, content_type: str, expires_in: int) -> str:
        """Return a write-capable URL for exactly ``blob_path`` that expires after ``expires_in`` seconds."""

    @abstractmethod
    def write_blob(self, blob_path: str, content: bytes, *, content_type: str) -> None:
        """Persist ``content`` under ``blob_path``, replacing any previous blob."""

    @abstractmethod
    def read_blob(self, blob_path: str) -> bytes:
        """Return the bytes stored under ``blob_path``."""

    @abstractmethod
    def uri_for(self, blob_path: str) -> str:
        """Return the provider-native URI of ``blob_path`` (e.g. ``s3://bucket/key``)."""


class LocalObjectStore(ObjectStoreGateway):
    """Filesystem object store for development and tests.

    Upload URLs point back at this API (``PUT /api/v1/uploads/{blob_path}``)
    and carry a signed token scoped to one blob path and content type.
    Directories are created on first write.
    """

    def __init__(
        self,
        base_dir: Path,
        *,
        public_base_url: str,
        secret: str,
        algorithm: str = "HS256",
    ) -> None:
        self._base = base_dir
        self._public_base_url = public_base_url.rstrip("/")
        self._secret = secret
        self._algorithm = algorithm

    def _path_for(self, blob_path: str) -> Path:
        return self._base.joinpath(*PurePosixPath(validate_blob_path(blob_path)).parts)

    def issue_upload_url(self, blob_path: str, *, content_type: str, expires_in: int) -> str:
        validate_blob_path(blob_path)
        claims = {
            "scope": _UPLOAD_TOKEN_SCOPE,
            "path": blob_path,
            "ct": content_type,
            "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        token = jwt.encode(claims, self._secret, algorithm=self._algorithm)
        return f"{self._public_base_url}/api/v1/uploads/{quote(blob_path)}?token={token}"

    def verify_upload_token(self, token: str, blob_path: str) -> str:
        """Check an upload token against ``blob_path`` and return its content type."""

        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("Upload URL expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthError("Invalid upload token") from exc
        if claims.get("scope") != _UPLOAD_TOKEN_SCOPE or claims.get("path") != blob_path:
            raise AuthError("Upload token does not match this blob")
        return claims.get("ct", "application/octet-stream")

    def write_blob(self, blob_path: str, content: bytes, *, content_type: str) -> None:
        dest = self._path_for(blob_path)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(content)
        except OSError as exc:
            raise UpstreamError(f"Failed to write blob {blob_path}") from exc

    def read_blob(self, blob_path: str) -> bytes:
        path = self._path_for(blob_path)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise UpstreamError(f"Failed to read blob {blob_path}") from exc

    def uri_for(self, blob_path: str) -> str:
        return self._path_for(blob_path).resolve().as_uri()


class S3ObjectStore(ObjectStoreGateway):
    """Object store backed by an S3 (or S3-compatible) bucket via boto3."""

    def __init__(
        self,
        bucket: str,
        *,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Any = None,
    ) -> None:
        self._bucket = bucket
        if client is None:
            client = boto3.client(
                "s3",
                region_name=region,
                endpoint_url=endpoint_url,
                config=Config(signature_version="s3v4"),
            )
        self._client = client

    def issue_upload_url(self, blob_path: str, *, content_type: str, expires_in: int) -> str:
        validate_blob_path(blob_path)
        try:
            return self._client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self._bucket, "Key": blob_path, "ContentType": content_type},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Presigned URL generation failed for %s", blob_path, exc_info=True)
            raise UpstreamError("Failed to generate upload URL") from exc

    def write_blob(self, blob_path: str, content: bytes, *, content_type: str) -> None:
        validate_blob_path(blob_path)
        try:
            self._client.put_object(Bucket=self._bucket, Key=blob_path, Body=content, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamError(f"Failed to write blob {blob_path}") from exc

    def read_blob(self, blob_path: str) -> bytes:
        validate_blob_path(blob_path)
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=blob_path)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamError(f"Failed to read blob {blob_path}") from exc

    def uri_for(self, blob_path: str) -> str:
        return f"s3://{self._bucket}/{blob_path}"


def get_object_store_from_settings(settings: Settings) -> ObjectStoreGateway:
    """Select an object store based on STORAGE_BACKEND.

    - STORAGE_BACKEND=s3 → S3ObjectStore (requires S3_BUCKET)
    - Anything else (or unset) → LocalObjectStore under STORAGE_DIR
    """

    backend_name = settings.storage_backend.lower()
    if backend_name == "s3":
        if not settings.s3_bucket:
            raise RuntimeError("STORAGE_BACKEND=s3 requires S3_BUCKET to be set")
        return S3ObjectStore(
            settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
        )
    return LocalObjectStore(
        settings.storage_dir,
        public_base_url=settings.public_base_url,
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
