from __future__ import annotations

from datetime import datetime

from fastapi.testclient import TestClient

from conftest import FakeDrive, FakeNotifier, FakeTasks

ACME = {"clientName": "Acme", "requestType": "Mockup", "requestTitle": "Holiday mugs"}


def _create(client: TestClient, payload: dict | None = None, *, submit: bool = True):
    return client.post(
        "/submissions",
        json={"requestPayload": payload or ACME, "submit": submit},
    )


def test_submit_runs_pipeline_and_returns_record(client: TestClient) -> None:
    response = _create(client)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "complete"
    assert body["taskResult"] == {"taskId": "t1", "taskUrl": "https://asana/t1"}
    assert body["driveResult"]["folderUrl"] == "https://drive/f1"
    assert body.get("errorDetail") is None
    assert body["requestPayload"]["clientName"] == "Acme"
    # Timestamps come back as ISO-8601 strings.
    datetime.fromisoformat(body["createdAt"])
    datetime.fromisoformat(body["completedAt"])


def test_unknown_payload_keys_are_preserved(client: TestClient) -> None:
    response = _create(client, {**ACME, "slides": [{"id": "s1", "title": "Intro"}]}, submit=False)

    fetched = client.get(f"/submissions/{response.json()['id']}")
    assert fetched.json()["requestPayload"]["slides"] == [{"id": "s1", "title": "Intro"}]


def test_submit_drive_failure_returns_500_and_records_error(
    client: TestClient,
    drive: FakeDrive,
    tasks: FakeTasks,
    notifier: FakeNotifier,
) -> None:
    drive.error = RuntimeError("quota exceeded")

    response = _create(client)

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["error"] == "quota exceeded"
    assert detail["step"] == "drive"

    record = client.get(f"/submissions/{detail['submissionId']}").json()
    assert record["status"] == "error"
    assert record["errorDetail"]["step"] == "drive"
    assert record["errorDetail"]["retryCount"] == 1
    assert record["errorDetail"]["message"] == "quota exceeded"
    datetime.fromisoformat(record["errorDetail"]["timestamp"])
    assert tasks.calls == []
    assert len(notifier.failures) == 1


def test_retry_endpoint_completes_failed_submission(
    client: TestClient,
    drive: FakeDrive,
) -> None:
    drive.error = RuntimeError("quota exceeded")
    submission_id = _create(client).json()["detail"]["submissionId"]

    drive.error = None
    response = client.post(f"/submissions/{submission_id}/retry")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "complete"
    assert body.get("errorDetail") is None
    assert body["completedAt"] is not None


def test_retry_endpoint_failure_returns_message_and_keeps_error(
    client: TestClient,
    tasks: FakeTasks,
) -> None:
    tasks.error = RuntimeError("invalid field")
    submission_id = _create(client).json()["detail"]["submissionId"]

    response = client.post(f"/submissions/{submission_id}/retry")

    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "invalid field"
    record = client.get(f"/submissions/{submission_id}").json()
    assert record["status"] == "error"
    assert record["errorDetail"]["retryCount"] == 2
    assert record["driveResult"]["folderId"] == "f1"


def test_retry_endpoint_rejects_non_error_submission(client: TestClient) -> None:
    submission_id = _create(client).json()["id"]

    response = client.post(f"/submissions/{submission_id}/retry")

    assert response.status_code == 400
    assert "Only failed submissions can be retried" in response.json()["detail"]


def test_missing_submission_returns_404(client: TestClient) -> None:
    assert client.get("/submissions/nope").status_code == 404
    assert client.patch("/submissions/nope", json={}).status_code == 404
    assert client.post("/submissions/nope/retry").status_code == 404
    assert client.post("/submissions/nope/submit").status_code == 404


def test_draft_can_be_edited_then_submitted(client: TestClient, drive: FakeDrive) -> None:
    created = _create(client, submit=False).json()
    assert created["status"] == "draft"
    assert drive.calls == []

    patched = client.patch(
        f"/submissions/{created['id']}",
        json={"requestPayload": {"requestTitle": "Spring mugs"}},
    )
    assert patched.status_code == 200
    body = patched.json()
    assert body["requestPayload"]["requestTitle"] == "Spring mugs"
    assert body["requestPayload"]["clientName"] == "Acme"
    assert datetime.fromisoformat(body["lastModified"]) >= datetime.fromisoformat(
        created["lastModified"]
    )

    submitted = client.post(f"/submissions/{created['id']}/submit")
    assert submitted.status_code == 200
    assert submitted.json()["status"] == "complete"
    assert drive.calls[0].request_title == "Spring mugs"


def test_payload_is_frozen_after_submission(client: TestClient) -> None:
    submission_id = _create(client).json()["id"]

    response = client.patch(
        f"/submissions/{submission_id}",
        json={"requestPayload": {"clientName": "Other"}},
    )

    assert response.status_code == 400


def test_patch_always_stamps_last_modified(client: TestClient) -> None:
    created = _create(client).json()

    patched = client.patch(f"/submissions/{created['id']}", json={})

    assert patched.status_code == 200
    assert datetime.fromisoformat(patched.json()["lastModified"]) >= datetime.fromisoformat(
        created["lastModified"]
    )


def test_submit_rejects_non_draft(client: TestClient) -> None:
    submission_id = _create(client).json()["id"]

    assert client.post(f"/submissions/{submission_id}/submit").status_code == 400


def test_listing_filters_search_and_pagination(client: TestClient, drive: FakeDrive) -> None:
    _create(client, {"clientName": "Acme", "requestType": "Mockup", "requestorEmail": "A@x.com"})
    _create(
        client,
        {"clientName": "Zenith", "requestType": "PPTX", "requestorEmail": "b@x.com"},
        submit=False,
    )
    drive.error = RuntimeError("quota exceeded")
    _create(client, {"clientName": "Brightco", "requestTitle": "Acme spinoff"})

    everything = client.get("/submissions").json()
    assert everything["total"] == 3
    assert [row["clientName"] for row in everything["submissions"]] == [
        "Brightco",
        "Zenith",
        "Acme",
    ]

    errors = client.get("/submissions", params={"status": "error"}).json()
    assert [row["clientName"] for row in errors["submissions"]] == ["Brightco"]
    assert errors["submissions"][0]["errorMessage"] == "quota exceeded"

    drafts = client.get("/submissions", params={"status": "draft"}).json()
    assert [row["clientName"] for row in drafts["submissions"]] == ["Zenith"]

    assert client.get("/submissions", params={"status": "all"}).json()["total"] == 3

    searched = client.get("/submissions", params={"search": "acme"}).json()
    assert {row["clientName"] for row in searched["submissions"]} == {"Acme", "Brightco"}

    by_email = client.get("/submissions", params={"email": "a@X.com"}).json()
    assert [row["clientName"] for row in by_email["submissions"]] == ["Acme"]

    partial_email = client.get("/submissions", params={"email": "x.com"}).json()
    assert partial_email["total"] == 0

    page = client.get("/submissions", params={"limit": 1, "offset": 1}).json()
    assert page["total"] == 3
    assert [row["clientName"] for row in page["submissions"]] == ["Zenith"]


def test_listing_exposes_result_links(client: TestClient) -> None:
    _create(client)

    row = client.get("/submissions").json()["submissions"][0]

    assert row["taskUrl"] == "https://asana/t1"
    assert row["folderUrl"] == "https://drive/f1"
    assert row["requestTitle"] == "Holiday mugs"


def test_draft_autosave_roundtrip(client: TestClient) -> None:
    saved = client.put(
        "/drafts/user-1",
        json={"userEmail": "u@x.com", "formData": {"clientName": "Acme"}, "currentStep": 2},
    )
    assert saved.status_code == 200
    assert saved.json()["currentStep"] == 2

    fetched = client.get("/drafts/user-1")
    assert fetched.status_code == 200
    assert fetched.json()["formData"] == {"clientName": "Acme"}

    assert client.delete("/drafts/user-1").status_code == 204
    assert client.get("/drafts/user-1").status_code == 404
    assert client.delete("/drafts/user-1").status_code == 404


def test_validate_client(client: TestClient) -> None:
    assert client.get("/validate-client").status_code == 400

    response = client.get("/validate-client", params={"clientName": " Acme "})

    assert response.status_code == 200
    assert response.json()["exists"] is True
    assert response.json()["clientId"] == "42"


def test_validate_collaborator(client: TestClient) -> None:
    assert client.get("/validate-collaborator").status_code == 400
    assert client.get("/validate-collaborator", params={"email": "not-an-email"}).status_code == 400

    known = client.get("/validate-collaborator", params={"email": "designer@example.com"})
    assert known.json()["valid"] is True

    unknown = client.get("/validate-collaborator", params={"email": "other@example.com"})
    assert unknown.status_code == 200
    assert unknown.json()["valid"] is False


def test_patch_rejects_invalid_payload_without_writing(client: TestClient) -> None:
    created = _create(client, submit=False).json()

    response = client.patch(
        f"/submissions/{created['id']}",
        json={"requestPayload": {"numberOfSlides": "many"}},
    )

    assert response.status_code == 422
    assert response.json()["detail"][0]["loc"] == ["numberOfSlides"]
    stored = client.get(f"/submissions/{created['id']}").json()
    assert stored["requestPayload"] == created["requestPayload"]
    assert client.get("/submissions").status_code == 200


def test_patch_accepts_snake_case_keys(client: TestClient) -> None:
    created = _create(client, {"client_name": "Acme", "requestType": "Mockup"}, submit=False)
    submission_id = created.json()["id"]

    response = client.patch(
        f"/submissions/{submission_id}",
        json={"requestPayload": {"client_name": "Zeta", "customNote": "rush"}},
    )

    assert response.status_code == 200
    body = response.json()["requestPayload"]
    assert body["clientName"] == "Zeta"
    assert body["requestType"] == "Mockup"
    assert body["customNote"] == "rush"
    assert "client_name" not in body
