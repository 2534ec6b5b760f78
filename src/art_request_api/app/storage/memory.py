"""In-memory storage backend for tests and local runs."""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from art_request_api.app.errors import NotFoundError
from art_request_api.app.models import (
    Draft,
    RequestPayload,
    Submission,
    SubmissionQuery,
    SubmissionStatus,
)
from art_request_api.app.storage.base import MUTABLE_FIELDS
from art_request_api.app.storage.filters import matches


class InMemorySubmissionStorage:
    """Dict-backed implementation of SubmissionStorage."""

    def __init__(self) -> None:
        self._submissions: dict[str, Submission] = {}
        self._drafts: dict[str, Draft] = {}
        self._lock = threading.Lock()
        # Counts mutating calls so tests can assert that nothing was written.
        self.write_count = 0

    def migrate(self) -> None:
        return None

    def ping(self) -> None:
        return None

    def create_submission(
        self,
        request_payload: RequestPayload,
        *,
        status: SubmissionStatus,
    ) -> Submission:
        now = datetime.now(UTC)
        record = Submission(
            id=str(uuid4()),
            status=status,
            request_payload=request_payload,
            created_at=now,
            last_modified=now,
        )
        with self._lock:
            self._submissions[record.id] = record
            self.write_count += 1
        return record.model_copy(deep=True)

    def get_submission(self, submission_id: str) -> Submission | None:
        with self._lock:
            record = self._submissions.get(submission_id)
        return record.model_copy(deep=True) if record else None

    def update_submission(self, submission_id: str, changes: dict[str, Any]) -> Submission:
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        with self._lock:
            current = self._submissions.get(submission_id)
            if current is None:
                raise NotFoundError(submission_id)
            # Round-trip through validation so plain dicts become models.
            merged = current.model_dump()
            merged.update(changes)
            merged["last_modified"] = datetime.now(UTC)
            updated = Submission.model_validate(merged)
            self._submissions[submission_id] = updated
            self.write_count += 1
        return updated.model_copy(deep=True)

    def transition_status(
        self,
        submission_id: str,
        *,
        expected: SubmissionStatus,
        new: SubmissionStatus,
    ) -> bool:
        with self._lock:
            current = self._submissions.get(submission_id)
            if current is None:
                raise NotFoundError(submission_id)
            if current.status != expected:
                return False
            self._submissions[submission_id] = current.model_copy(
                update={"status": new, "last_modified": datetime.now(UTC)}
            )
            self.write_count += 1
        return True

    def list_submissions(self, query: SubmissionQuery) -> tuple[list[Submission], int]:
        with self._lock:
            records = list(reversed(self._submissions.values()))
        selected = [record for record in records if matches(record, query)]
        selected.sort(key=lambda record: record.created_at, reverse=True)
        page = selected[query.offset : query.offset + query.limit]
        return [record.model_copy(deep=True) for record in page], len(selected)

    def save_draft(
        self,
        user_id: str,
        *,
        user_email: str,
        form_data: dict[str, Any],
        current_step: int | None,
    ) -> Draft:
        draft = Draft(
            user_id=user_id,
            user_email=user_email,
            form_data=form_data,
            current_step=current_step,
            last_modified=datetime.now(UTC),
        )
        with self._lock:
            self._drafts[user_id] = draft
            self.write_count += 1
        return draft.model_copy(deep=True)

    def get_draft(self, user_id: str) -> Draft | None:
        with self._lock:
            draft = self._drafts.get(user_id)
        return draft.model_copy(deep=True) if draft else None

    def delete_draft(self, user_id: str) -> bool:
        with self._lock:
            removed = self._drafts.pop(user_id, None)
            if removed is not None:
                self.write_count += 1
        return removed is not None
