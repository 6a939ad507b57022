from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly.
    """

    # Bearer token signing. The fallback secret is only acceptable for local
    # development; main.py logs a warning when JWT_SECRET is unset.
    jwt_secret: str = os.getenv("JWT_SECRET", "secret")
    jwt_secret_configured: bool = bool(os.getenv("JWT_SECRET"))
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_expires_seconds: int = int(os.getenv("JWT_EXPIRES_SECONDS", str(24 * 60 * 60)))

    # Object storage backend selection: "local" (default) or "s3".
    storage_backend: str = os.getenv("STORAGE_BACKEND", "local")
    # Root directory of the local object store.
    storage_dir: Path = Path(os.getenv("STORAGE_DIR", "uploads"))
    # Externally reachable base URL, used to build local upload URLs.
    public_base_url: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")
    s3_bucket: Optional[str] = os.getenv("S3_BUCKET")
    s3_region: Optional[str] = os.getenv("S3_REGION")
    s3_endpoint_url: Optional[str] = os.getenv("S3_ENDPOINT_URL")
    # Lifetime of a chunk upload authorization (15 minutes by default).
    upload_url_ttl_seconds: int = int(os.getenv("UPLOAD_URL_TTL_SECONDS", str(15 * 60)))

    # ASR backend selection: "demo" (default) or "whisper".
    asr_backend: str = os.getenv("ASR_BACKEND", "demo")
    whisper_model_name: str = os.getenv("WHISPER_MODEL_NAME", "base")
    asr_language_code: str = os.getenv("ASR_LANGUAGE_CODE", "en-US")
    asr_sample_rate_hz: int = int(os.getenv("ASR_SAMPLE_RATE_HZ", "16000"))
    # Upper bound for a single transcription call; slower calls count as failures.
    transcription_timeout_seconds: float = float(os.getenv("TRANSCRIPTION_TIMEOUT_SECONDS", "60"))

    # When true, final session transcripts are also appended to the patient's
    # transcript ledger as soon as the session completes.
    auto_save_final_transcript: bool = os.getenv("AUTO_SAVE_FINAL_TRANSCRIPT", "false").lower() == "true"

    # Optional database configuration for SQL-backed repositories.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # Request size limit for direct uploads to the local object store (in bytes).
    max_upload_bytes: int = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))

    # CORS configuration: comma-separated origins (e.g. "https://app.example.com,https://admin.example.com").
    # Default is "*" (allow all) which is acceptable for local development but
    # should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
