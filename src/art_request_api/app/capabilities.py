"""Narrow interfaces the pipeline depends on.

Each vendor integration implements one of these so the orchestrator can be
exercised with fakes and the real clients can be swapped.
"""

from __future__ import annotations

from typing import Protocol

from .models import DriveResult, FailureNotice, RequestPayload, TaskResult, UploadedFile


class ProvisionStorage(Protocol):
    """Create the destination folder and upload attachments.

    All-or-nothing per call: raise on any failure.
    """

    def provision(self, payload: RequestPayload) -> DriveResult: ...


class CreateTrackedTask(Protocol):
    def create_task(
        self,
        payload: RequestPayload,
        *,
        folder_url: str | None,
        uploaded_files: list[UploadedFile],
    ) -> TaskResult: ...


class NotifyFailure(Protocol):
    def notify_failure(self, notice: FailureNotice) -> None: ...


class NotifySuccess(Protocol):
    def notify_success(
        self,
        payload: RequestPayload,
        *,
        task_url: str,
        folder_url: str | None,
    ) -> None: ...
