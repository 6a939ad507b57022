import threading
import time
from typing import Dict, List, Tuple

import pytest
from httpx import ASGITransport, AsyncClient

from src.medinote.config import Settings
from src.medinote.container import build_container
from src.medinote.domain.errors import UpstreamError
from src.medinote.infra.storage.objects import LocalObjectStore
from src.medinote.main import create_app
from src.medinote.services.transcription.backends import AudioSource, RecognitionConfig


class FakeASRBackend:
    """Deterministic ASR backend that records every call it receives."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, RecognitionConfig]] = []
        self.fail_paths: set = set()
        self.delays: Dict[str, float] = {}
        self._lock = threading.Lock()

    def transcribe(self, audio: AudioSource, config: RecognitionConfig) -> str:
        with self._lock:
            self.calls.append((audio.blob_path, config))
        delay = self.delays.get(audio.blob_path, 0.0)
        if delay:
            time.sleep(delay)
        if audio.blob_path in self.fail_paths:
            raise RuntimeError("speech provider unavailable")
        return f"text of {audio.blob_path}"


class FailingTranscriptStore(LocalObjectStore):
    """Local store whose transcript writes always fail."""

    def write_blob(self, blob_path: str, content: bytes, *, content_type: str) -> None:
        if blob_path.endswith("/transcript.txt"):
            raise UpstreamError(f"Failed to write blob {blob_path}")
        super().write_blob(blob_path, content, content_type=content_type)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        jwt_secret="test-secret",
        jwt_secret_configured=True,
        storage_backend="local",
        storage_dir=tmp_path / "blobs",
        public_base_url="http://test",
        transcription_timeout_seconds=2.0,
        use_sql_repos=False,
        auto_save_final_transcript=False,
    )


@pytest.fixture
def asr_backend() -> FakeASRBackend:
    return FakeASRBackend()


@pytest.fixture
def container(settings, asr_backend):
    return build_container(settings, asr_backend=asr_backend)


@pytest.fixture
def app(settings, container):
    return create_app(settings, container=container)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def alice(container) -> Dict[str, str]:
    return {"Authorization": f"Bearer {container.tokens.issue('alice@example.com')}"}


@pytest.fixture
def bob(container) -> Dict[str, str]:
    return {"Authorization": f"Bearer {container.tokens.issue('bob@example.com')}"}


@pytest.fixture
def patient_id(container) -> str:
    return container.patients.create_patient("alice@example.com", "Jane Roe").id
