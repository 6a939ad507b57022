from fastapi import status


async def test_create_list_and_get_patient(client, alice):
    create = await client.post("/api/v1/patients", json={"name": "John Doe"}, headers=alice)
    assert create.status_code == status.HTTP_201_CREATED
    patient = create.json()["patient"]
    assert patient["name"] == "John Doe"
    assert patient["userId"] == "alice@example.com"
    assert patient["transcripts"] == []

    listing = await client.get("/api/v1/patients", headers=alice)
    assert [p["id"] for p in listing.json()["patients"]] == [patient["id"]]

    details = await client.get(f"/api/v1/patients/{patient['id']}", headers=alice)
    assert details.status_code == status.HTTP_200_OK
    assert details.json()["patient"]["id"] == patient["id"]


async def test_patients_are_scoped_to_their_owner(client, alice, bob, patient_id):
    listing = await client.get("/api/v1/patients", headers=bob)
    assert listing.json() == {"patients": []}

    details = await client.get(f"/api/v1/patients/{patient_id}", headers=bob)
    assert details.status_code == status.HTTP_404_NOT_FOUND


async def test_create_patient_requires_name(client, alice):
    response = await client.post("/api/v1/patients", json={"name": ""}, headers=alice)
    assert response.status_code == status.HTTP_400_BAD_REQUEST


async def test_save_transcript_then_duplicate_conflicts(client, alice, patient_id):
    url = f"/api/v1/patients/{patient_id}/transcripts"
    first = await client.post(url, json={"sessionId": "sess-1", "content": "text"}, headers=alice)
    assert first.status_code == status.HTTP_200_OK
    body = first.json()
    assert body["message"] == "Transcript saved successfully."
    assert len(body["patient"]["transcripts"]) == 1
    entry = body["patient"]["transcripts"][0]
    assert entry["sessionId"] == "sess-1"
    assert entry["content"] == "text"
    assert entry["savedAt"]

    retry = await client.post(url, json={"sessionId": "sess-1", "content": "other text"}, headers=alice)
    assert retry.status_code == status.HTTP_409_CONFLICT
    assert retry.json()["error"] == "conflict"

    details = await client.get(f"/api/v1/patients/{patient_id}", headers=alice)
    transcripts = details.json()["patient"]["transcripts"]
    assert len(transcripts) == 1
    assert transcripts[0]["content"] == "text"


async def test_save_transcript_error_codes(client, alice, bob, patient_id):
    url = f"/api/v1/patients/{patient_id}/transcripts"

    missing = await client.post(url, json={"sessionId": "sess-1"}, headers=alice)
    assert missing.status_code == status.HTTP_400_BAD_REQUEST

    unauthenticated = await client.post(url, json={"sessionId": "sess-1", "content": "x"})
    assert unauthenticated.status_code == status.HTTP_401_UNAUTHORIZED

    foreign = await client.post(url, json={"sessionId": "sess-1", "content": "x"}, headers=bob)
    assert foreign.status_code == status.HTTP_404_NOT_FOUND

    unknown = await client.post(
        "/api/v1/patients/no-such-patient/transcripts",
        json={"sessionId": "sess-1", "content": "x"},
        headers=alice,
    )
    assert unknown.status_code == status.HTTP_404_NOT_FOUND


async def test_same_session_can_be_saved_for_different_patients(client, alice, container, patient_id):
    other = container.patients.create_patient("alice@example.com", "Second Patient")

    for pid in (patient_id, other.id):
        response = await client.post(
            f"/api/v1/patients/{pid}/transcripts",
            json={"sessionId": "shared", "content": "text"},
            headers=alice,
        )
        assert response.status_code == status.HTTP_200_OK
