from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from art_request_api.app.models import (
    ClientValidation,
    DriveResult,
    FailureNotice,
    RequestPayload,
    TaskResult,
    UploadedFile,
)
from art_request_api.app.pipeline import SubmissionPipeline
from art_request_api.app.settings import Settings
from art_request_api.app.storage.memory import InMemorySubmissionStorage


class FakeDrive:
    """ProvisionStorage double that records calls and can be told to fail."""

    def __init__(self, result: DriveResult | None = None) -> None:
        self.result = result or DriveResult(
            folder_id="f1",
            folder_url="https://drive/f1",
            uploaded_files=[],
        )
        self.error: Exception | None = None
        self.calls: list[RequestPayload] = []

    def provision(self, payload: RequestPayload) -> DriveResult:
        self.calls.append(payload)
        if self.error is not None:
            raise self.error
        return self.result


class FakeTasks:
    def __init__(self, result: TaskResult | None = None) -> None:
        self.result = result or TaskResult(task_id="t1", task_url="https://asana/t1")
        self.error: Exception | None = None
        self.calls: list[dict] = []

    def create_task(
        self,
        payload: RequestPayload,
        *,
        folder_url: str | None,
        uploaded_files: list[UploadedFile],
    ) -> TaskResult:
        self.calls.append(
            {"payload": payload, "folder_url": folder_url, "uploaded_files": uploaded_files}
        )
        if self.error is not None:
            raise self.error
        return self.result


class FakeNotifier:
    def __init__(self) -> None:
        self.failures: list[FailureNotice] = []
        self.successes: list[dict] = []
        self.error: Exception | None = None

    def notify_failure(self, notice: FailureNotice) -> None:
        self.failures.append(notice)
        if self.error is not None:
            raise self.error

    def notify_success(
        self,
        payload: RequestPayload,
        *,
        task_url: str,
        folder_url: str | None,
    ) -> None:
        self.successes.append({"task_url": task_url, "folder_url": folder_url})


class FakeClients:
    def __init__(self, validation: ClientValidation | None = None) -> None:
        self.validation = validation or ClientValidation(
            exists=True, client_id="42", message="Client found in CommonSKU"
        )
        self.names: list[str] = []

    def validate_client(self, client_name: str) -> ClientValidation:
        self.names.append(client_name)
        return self.validation


class FakeCollaborators:
    def __init__(self, known: set[str] | None = None) -> None:
        self.known = known or {"designer@example.com"}

    def user_exists(self, email: str) -> bool:
        return email in self.known


@pytest.fixture
def storage() -> InMemorySubmissionStorage:
    return InMemorySubmissionStorage()


@pytest.fixture
def drive() -> FakeDrive:
    return FakeDrive()


@pytest.fixture
def tasks() -> FakeTasks:
    return FakeTasks()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def pipeline(
    storage: InMemorySubmissionStorage,
    drive: FakeDrive,
    tasks: FakeTasks,
    notifier: FakeNotifier,
) -> SubmissionPipeline:
    return SubmissionPipeline(
        storage=storage,
        drive=drive,
        tasks=tasks,
        notifier=notifier,
        success_notifier=notifier,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        google_drive_access_token="drive-token",
        asana_access_token="asana-token",
        asana_project_id="proj-1",
    )


@pytest.fixture
def client(
    storage: InMemorySubmissionStorage,
    drive: FakeDrive,
    tasks: FakeTasks,
    notifier: FakeNotifier,
    settings: Settings,
) -> Iterator[TestClient]:
    from art_request_api.main import create_app

    app = create_app(
        storage=storage,
        settings_override=settings,
        drive=drive,
        tasks=tasks,
        notifier=notifier,
        success_notifier=notifier,
        clients=FakeClients(),
        collaborators=FakeCollaborators(),
    )
    with TestClient(app) as test_client:
        yield test_client
