from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from src.medinote.services.transcription.backends import ASRBackend, AudioSource, RecognitionConfig

logger = logging.getLogger(__name__)

# Shown in place of live feedback when a single-chunk transcription fails.
PARTIAL_FAILURE_TEXT = "[Chunk transcription failed]"
# Substituted for a chunk whose transcription failed during finalization.
CHUNK_FAILURE_TEXT = "[Transcription failed]"


@dataclass
class BatchTranscription:
    texts: List[str] = field(default_factory=list)
    failed_chunks: int = 0

    @property
    def transcript(self) -> str:
        return " ".join(self.texts).strip()


class TranscriptionService:
    """Runs ASR backend calls off the event loop with a bounded timeout.

    A timeout or backend exception is treated as a transcription failure and
    never propagates: partial calls return :data:`PARTIAL_FAILURE_TEXT`,
    batch calls substitute :data:`CHUNK_FAILURE_TEXT` and count the failure.
    """

    def __init__(
        self,
        backend: ASRBackend,
        *,
        timeout_seconds: float,
        language_code: str = "en-US",
        sample_rate_hz: int = 16000,
    ) -> None:
        self._backend = backend
        self._timeout_seconds = timeout_seconds
        self._language_code = language_code
        self._sample_rate_hz = sample_rate_hz

    def config(self, *, automatic_punctuation: bool = False) -> RecognitionConfig:
        return RecognitionConfig(
            encoding="LINEAR16",
            sample_rate_hz=self._sample_rate_hz,
            language_code=self._language_code,
            enable_automatic_punctuation=automatic_punctuation,
        )

    async def _transcribe(self, audio: AudioSource, config: RecognitionConfig) -> str:
        return await asyncio.wait_for(
            asyncio.to_thread(self._backend.transcribe, audio, config),
            timeout=self._timeout_seconds,
        )

    async def _transcribe_or_none(self, audio: AudioSource, config: RecognitionConfig) -> str | None:
        try:
            return (await self._transcribe(audio, config)).strip()
        except asyncio.TimeoutError:
            logger.warning(
                "Transcription of %s timed out after %.1fs", audio.blob_path, self._timeout_seconds
            )
        except Exception:
            logger.exception("Transcription of %s failed", audio.blob_path)
        return None

    async def transcribe_partial(self, audio: AudioSource) -> str:
        """Transcribe one chunk for live feedback, with automatic punctuation."""

        text = await self._transcribe_or_none(audio, self.config(automatic_punctuation=True))
        return PARTIAL_FAILURE_TEXT if text is None else text

    async def transcribe_many(self, sources: Sequence[AudioSource]) -> BatchTranscription:
        """Transcribe ``sources`` one at a time, preserving their order."""

        batch = BatchTranscription()
        config = self.config()
        for audio in sources:
            text = await self._transcribe_or_none(audio, config)
            if text is None:
                batch.failed_chunks += 1
                batch.texts.append(CHUNK_FAILURE_TEXT)
            else:
                batch.texts.append(text)
        return batch
