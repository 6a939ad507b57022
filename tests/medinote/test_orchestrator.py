import asyncio
import random

import pytest
from fastapi import status
from httpx import ASGITransport, AsyncClient

from conftest import FailingTranscriptStore
from src.medinote.container import build_container
from src.medinote.domain.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from src.medinote.domain.models.recording_session import SessionStatus
from src.medinote.main import create_app
from src.medinote.services.transcription.orchestrator import ChunkOutcomeKind

OWNER = "alice@example.com"


def _start(container, patient_id, chunks: int = 0) -> str:
    session_id = container.sessions.begin_session(patient_id, OWNER).id
    for ordinal in range(chunks):
        container.sessions.authorize_chunk_upload(session_id, OWNER, ordinal, "audio/wav")
    return session_id


async def test_final_transcript_follows_ordinal_order_not_arrival_order(container, patient_id, asr_backend):
    session_id = _start(container, patient_id, chunks=7)
    ordinals = list(range(6))
    random.Random(7).shuffle(ordinals)
    # Later ordinals answer faster, so completion order differs from both
    # arrival and ordinal order.
    for ordinal in ordinals:
        asr_backend.delays[f"{session_id}/{ordinal}.wav"] = 0.01 * (6 - ordinal)

    outcomes = await asyncio.gather(
        *(
            container.orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/{ordinal}.wav", False)
            for ordinal in ordinals
        )
    )
    assert all(outcome.kind == ChunkOutcomeKind.PARTIAL for outcome in outcomes)

    final = await container.orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/6.wav", True)

    assert final.kind == ChunkOutcomeKind.FINAL
    assert final.transcript == " ".join(f"text of {session_id}/{n}.wav" for n in range(7))
    assert [c.ordinal for c in final.session.ordered_chunks()] == list(range(7))
    assert final.session.status == SessionStatus.COMPLETED


async def test_concurrent_final_notifications_finalize_once(container, patient_id, asr_backend):
    session_id = _start(container, patient_id, chunks=3)
    await container.orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/0.wav", False)
    asr_backend.delays[f"{session_id}/0.wav"] = 0.05
    asr_backend.calls.clear()

    results = await asyncio.gather(
        container.orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/1.wav", True),
        container.orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/2.wav", True),
        return_exceptions=True,
    )

    finals = [r for r in results if not isinstance(r, Exception)]
    errors = [r for r in results if isinstance(r, Exception)]
    assert len(finals) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], InvalidStateError)
    # Exactly one final pass over two chunks.
    assert len(asr_backend.calls) == 2

    stored = container.session_repository.get(session_id, OWNER)
    assert stored.status == SessionStatus.COMPLETED
    assert stored.transcript == finals[0].transcript


async def test_chunks_after_final_are_rejected_while_finalizing(container, patient_id, asr_backend):
    session_id = _start(container, patient_id, chunks=2)
    asr_backend.delays[f"{session_id}/0.wav"] = 0.2

    final_task = asyncio.create_task(
        container.orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/0.wav", True)
    )
    await asyncio.sleep(0.05)
    assert container.session_repository.get(session_id, OWNER).status == SessionStatus.FINALIZING

    with pytest.raises(InvalidStateError):
        await container.orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/1.wav", False)

    final = await final_task
    assert [c.ordinal for c in final.session.chunks] == [0]
    assert final.transcript == f"text of {session_id}/0.wav"


async def test_sessions_are_processed_in_parallel(container, patient_id, asr_backend):
    first = _start(container, patient_id, chunks=1)
    second = _start(container, patient_id, chunks=1)
    asr_backend.delays[f"{first}/0.wav"] = 0.3
    asr_backend.delays[f"{second}/0.wav"] = 0.3

    loop = asyncio.get_running_loop()
    started = loop.time()
    await asyncio.gather(
        container.orchestrator.chunk_uploaded(first, OWNER, f"{first}/0.wav", True),
        container.orchestrator.chunk_uploaded(second, OWNER, f"{second}/0.wav", True),
    )
    assert loop.time() - started < 0.55


async def test_foreign_owner_cannot_notify(container, patient_id):
    session_id = _start(container, patient_id)
    with pytest.raises(NotFoundError):
        await container.orchestrator.chunk_uploaded(session_id, "mallory@example.com", f"{session_id}/0.wav", False)


async def test_transcription_timeout_counts_as_failure(settings, asr_backend, patient_id, container):
    settings.transcription_timeout_seconds = 0.05
    slow = build_container(
        settings,
        session_repository=container.session_repository,
        patient_repository=container.patient_repository,
        asr_backend=asr_backend,
    )
    session_id = _start(slow, patient_id, chunks=2)
    asr_backend.delays[f"{session_id}/0.wav"] = 0.5

    partial = await slow.orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/0.wav", False)
    assert partial.transcript == "[Chunk transcription failed]"

    final = await slow.orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/1.wav", True)
    assert final.kind == ChunkOutcomeKind.FINAL
    assert final.failed_chunks == 1
    assert final.session.status == SessionStatus.COMPLETED


async def test_storage_failure_on_final_returns_500_and_completes_session(settings, asr_backend):
    store = FailingTranscriptStore(
        settings.storage_dir,
        public_base_url=settings.public_base_url,
        secret=settings.jwt_secret,
    )
    container = build_container(settings, object_store=store, asr_backend=asr_backend)
    app = create_app(settings, container=container)
    patient_id = container.patients.create_patient(OWNER, "Jane Roe").id
    session_id = _start(container, patient_id, chunks=1)
    headers = {"Authorization": f"Bearer {container.tokens.issue(OWNER)}"}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.post(
            f"/api/v1/sessions/{session_id}/chunk-uploaded",
            json={"blobPath": f"{session_id}/0.wav", "isLast": True},
            headers=headers,
        )
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        body = response.json()
        assert body["error"] == "upstream"
        assert body["isFinal"] is True

        session = (await ac.get(f"/api/v1/sessions/{session_id}", headers=headers)).json()

    assert session["status"] == "completed"
    assert session["transcript"] == f"text of {session_id}/0.wav"
    assert session["error"] == "Failed to generate final transcript"


async def test_auto_save_appends_final_transcript_to_ledger(settings, asr_backend):
    settings.auto_save_final_transcript = True
    container = build_container(settings, asr_backend=asr_backend)
    patient_id = container.patients.create_patient(OWNER, "Jane Roe").id
    session_id = _start(container, patient_id, chunks=1)

    final = await container.orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/0.wav", True)

    patient = container.patients.get_patient(patient_id, OWNER)
    assert [(t.session_id, t.content) for t in patient.transcripts] == [(session_id, final.transcript)]


async def test_chunk_without_upload_authorization_is_rejected(container, patient_id, asr_backend):
    session_id = _start(container, patient_id, chunks=1)

    with pytest.raises(ConflictError):
        await container.orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/1.wav", True)
    with pytest.raises(ValidationError):
        await container.orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/00.wav", True)

    stored = container.session_repository.get(session_id, OWNER)
    assert stored.status == SessionStatus.RECORDING
    assert stored.chunks == []
    assert asr_backend.calls == []


async def test_session_locks_are_released_after_every_notification(container, patient_id):
    orchestrator = container.orchestrator
    for n in range(5):
        with pytest.raises(NotFoundError):
            await orchestrator.chunk_uploaded(f"ghost-{n}", OWNER, f"ghost-{n}/0.wav", False)
    assert orchestrator._locks == {}

    session_id = _start(container, patient_id, chunks=3)
    await asyncio.gather(
        orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/0.wav", False),
        orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/1.wav", False),
    )
    assert orchestrator._locks == {}

    await orchestrator.chunk_uploaded(session_id, OWNER, f"{session_id}/2.wav", True)
    assert orchestrator._locks == {}
    assert orchestrator._lock_users == {}
