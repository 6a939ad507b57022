from __future__ import annotations

import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

from src.medinote.config import Settings


@dataclass(frozen=True)
class RecognitionConfig:
    """Fixed recognition parameters sent with every transcription call."""

    encoding: str = "LINEAR16"
    sample_rate_hz: int = 16000
    language_code: str = "en-US"
    enable_automatic_punctuation: bool = False


@dataclass(frozen=True)
class AudioSource:
    """Reference to one uploaded audio blob.

    Backends that can read from object storage directly use ``uri``; others
    call ``load`` to fetch the bytes through the object store gateway.
    """

    blob_path: str
    uri: str
    load: Callable[[], bytes]


class ASRBackend(Protocol):
    """Protocol for automatic speech recognition backends.

    Implementations take an audio reference and return the recognized text.
    They may block; callers run them in a worker thread with a timeout.
    """

    def transcribe(self, audio: AudioSource, config: RecognitionConfig) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class DemoASRBackend:
    """Very simple demo ASR backend.

    In a real deployment this would call Whisper or a cloud speech API. For
    now it just returns a deterministic placeholder string so tests remain
    fast and offline.
    """

    def transcribe(self, audio: AudioSource, config: RecognitionConfig) -> str:
        text = f"Demo transcript for {audio.blob_path} in {config.language_code}"
        if config.enable_automatic_punctuation:
            text += "."
        return text


class WhisperASRBackend:
    """ASR backend that uses the open-source Whisper model via the `whisper` library.

    The chunk is fetched through the object store and written to a temporary
    file because Whisper reads audio from the filesystem. To use it, install
    the whisper package (e.g. `pip install openai-whisper`) and set
    `ASR_BACKEND=whisper` in the environment.
    """

    def __init__(self, model_name: str) -> None:
        self._model_name = model_name
        self._model = None

    def _load_model(self):
        if self._model is None:
            try:
                import whisper  # type: ignore
            except ImportError as exc:  # pragma: no cover - depends on external lib
                raise RuntimeError(
                    "WhisperASRBackend requires the 'whisper' library. "
                    "Install it with 'pip install openai-whisper'"
                ) from exc
            self._model = whisper.load_model(self._model_name)
        return self._model

    def transcribe(self, audio: AudioSource, config: RecognitionConfig) -> str:  # pragma: no cover - needs model weights
        model = self._load_model()
        # Whisper wants a bare language code ("en"), not a locale ("en-US").
        language = config.language_code.split("-")[0] or None
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / Path(audio.blob_path).name
            path.write_bytes(audio.load())
            result = model.transcribe(str(path), language=language)
        return str(result.get("text", "")).strip()


demo_asr_backend = DemoASRBackend()


def get_asr_backend_from_env(settings: Settings, name: Optional[str] = None) -> ASRBackend:
    """Select an ASR backend based on the ASR_BACKEND environment variable.

    - ASR_BACKEND=whisper → WhisperASRBackend
    - Anything else (or unset) → DemoASRBackend
    """

    backend_name = (name or settings.asr_backend).lower()
    if backend_name == "whisper":
        return WhisperASRBackend(settings.whisper_model_name)
    return demo_asr_backend
