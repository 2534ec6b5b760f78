"""Storage interface for submissions and drafts."""

from __future__ import annotations

from typing import Any, Protocol

from art_request_api.app.models import (
    Draft,
    RequestPayload,
    Submission,
    SubmissionQuery,
    SubmissionStatus,
)

# Fields a caller may change through `update_submission`.
MUTABLE_FIELDS = frozenset(
    {
        "status",
        "request_payload",
        "drive_result",
        "task_result",
        "error_detail",
        "error_message",
        "completed_at",
    }
)


class SubmissionStorage(Protocol):
    def migrate(self) -> None: ...

    def ping(self) -> None: ...

    def create_submission(
        self,
        request_payload: RequestPayload,
        *,
        status: SubmissionStatus,
    ) -> Submission: ...

    def get_submission(self, submission_id: str) -> Submission | None: ...

    def update_submission(self, submission_id: str, changes: dict[str, Any]) -> Submission:
        """Merge `changes` into the record and stamp `last_modified`.

        A value of None clears the field. Raises NotFoundError for unknown ids.
        """
        ...

    def transition_status(
        self,
        submission_id: str,
        *,
        expected: SubmissionStatus,
        new: SubmissionStatus,
    ) -> bool:
        """Atomically move `expected -> new`; False if the status was something else."""
        ...

    def list_submissions(self, query: SubmissionQuery) -> tuple[list[Submission], int]: ...

    def save_draft(
        self,
        user_id: str,
        *,
        user_email: str,
        form_data: dict[str, Any],
        current_step: int | None,
    ) -> Draft: ...

    def get_draft(self, user_id: str) -> Draft | None: ...

    def delete_draft(self, user_id: str) -> bool: ...
