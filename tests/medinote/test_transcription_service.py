from src.medinote.config import Settings
from src.medinote.services.transcription.backends import (
    AudioSource,
    DemoASRBackend,
    RecognitionConfig,
    WhisperASRBackend,
    get_asr_backend_from_env,
)
from src.medinote.services.transcription.service import (
    CHUNK_FAILURE_TEXT,
    PARTIAL_FAILURE_TEXT,
    TranscriptionService,
)


def _audio(path: str) -> AudioSource:
    return AudioSource(blob_path=path, uri=f"s3://bucket/{path}", load=lambda: b"")


async def test_transcribe_many_keeps_order_and_counts_failures(asr_backend):
    asr_backend.fail_paths.add("s/1.wav")
    asr_backend.delays["s/0.wav"] = 0.02
    service = TranscriptionService(asr_backend, timeout_seconds=1.0)

    batch = await service.transcribe_many([_audio("s/0.wav"), _audio("s/1.wav"), _audio("s/2.wav")])

    assert batch.texts == ["text of s/0.wav", CHUNK_FAILURE_TEXT, "text of s/2.wav"]
    assert batch.failed_chunks == 1
    assert batch.transcript == f"text of s/0.wav {CHUNK_FAILURE_TEXT} text of s/2.wav"


async def test_partial_uses_punctuation_and_falls_back_on_timeout(asr_backend):
    service = TranscriptionService(asr_backend, timeout_seconds=0.05, language_code="en-GB", sample_rate_hz=8000)

    assert await service.transcribe_partial(_audio("s/0.wav")) == "text of s/0.wav"
    _, config = asr_backend.calls[-1]
    assert config == RecognitionConfig(
        encoding="LINEAR16",
        sample_rate_hz=8000,
        language_code="en-GB",
        enable_automatic_punctuation=True,
    )

    asr_backend.delays["s/1.wav"] = 0.5
    assert await service.transcribe_partial(_audio("s/1.wav")) == PARTIAL_FAILURE_TEXT


def test_demo_backend_is_deterministic():
    backend = DemoASRBackend()
    text = backend.transcribe(_audio("s/0.wav"), RecognitionConfig())
    assert text == "Demo transcript for s/0.wav in en-US"
    assert backend.transcribe(_audio("s/0.wav"), RecognitionConfig(enable_automatic_punctuation=True)).endswith(".")


def test_backend_selection_from_settings():
    assert isinstance(get_asr_backend_from_env(Settings(asr_backend="demo")), DemoASRBackend)
    assert isinstance(get_asr_backend_from_env(Settings(asr_backend="whisper")), WhisperASRBackend)
