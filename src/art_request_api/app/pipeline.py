"""Submission pipeline: provision Drive storage, then create the Asana task.

Every status transition is persisted before the next external call, so a
submission can always be resumed from the step that failed:

- `processing` without `drive_result` means the Drive step must run again.
- `error` with `error_detail.step == "task"` and a `drive_result` means only
  the Task step is left.

Retries are guarded by an `error -> processing` compare-and-swap in storage,
so two concurrent retries of one submission cannot both run the steps.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import NoReturn

from .capabilities import CreateTrackedTask, NotifyFailure, NotifySuccess, ProvisionStorage
from .errors import ConflictError, InvalidStateError, NotFoundError, StepFailure
from .models import (
    RETRYABLE_STATUS,
    DriveResult,
    ErrorDetail,
    FailureNotice,
    Submission,
    TaskResult,
)
from .storage.base import SubmissionStorage

logger = logging.getLogger(__name__)

STEP_DRIVE = "drive"
STEP_TASK = "task"

RUNNABLE_STATUSES = frozenset({"draft", "processing"})

# Step names written by the earlier intake app, which split Drive into two steps.
LEGACY_STEP_NAMES = {
    "drive_folder": STEP_DRIVE,
    "drive_upload": STEP_DRIVE,
    "asana_create": STEP_TASK,
}


class ResumePoint(Enum):
    """Where a retry picks up, parsed from the persisted `error_detail.step`."""

    DRIVE = STEP_DRIVE
    TASK = STEP_TASK
    # Anything we cannot map to a step. Treated like DRIVE: re-provisioning is
    # preferred over pointing a task at a folder that may be incomplete.
    UNKNOWN = "unknown"

    @classmethod
    def from_error_step(cls, step: str | None) -> ResumePoint:
        step = LEGACY_STEP_NAMES.get(step or "", step)
        if step == STEP_DRIVE:
            return cls.DRIVE
        if step == STEP_TASK:
            return cls.TASK
        return cls.UNKNOWN

    @property
    def runs_drive(self) -> bool:
        return self is not ResumePoint.TASK


class SubmissionPipeline:
    """Run and retry the Drive -> Task sequence for one submission at a time."""

    def __init__(
        self,
        *,
        storage: SubmissionStorage,
        drive: ProvisionStorage,
        tasks: CreateTrackedTask,
        notifier: NotifyFailure,
        success_notifier: NotifySuccess | None = None,
    ) -> None:
        self.storage = storage
        self.drive = drive
        self.tasks = tasks
        self.notifier = notifier
        self.success_notifier = success_notifier

    def run(self, submission: Submission) -> TaskResult:
        """Run both steps for a draft or freshly submitted record.

        Raises StepFailure after persisting `error` and notifying.
        """
        if submission.status not in RUNNABLE_STATUSES:
            raise InvalidStateError(
                f"Submission {submission.id} cannot be run from status {submission.status!r}",
                status=submission.status,
            )
        logger.info(
            "submission_run event=start submission_id=%s from_status=%s",
            submission.id,
            submission.status,
        )
        current = self.storage.update_submission(submission.id, {"status": "processing"})
        return self._execute(current, ResumePoint.DRIVE)

    def retry(self, submission_id: str) -> Submission:
        """Resume a failed submission from the step recorded as failed."""
        submission = self.storage.get_submission(submission_id)
        if submission is None:
            raise NotFoundError(submission_id)
        if submission.status != RETRYABLE_STATUS:
            raise InvalidStateError(
                "Only failed submissions can be retried", status=submission.status
            )
        if not self.storage.transition_status(
            submission_id, expected=RETRYABLE_STATUS, new="processing"
        ):
            raise ConflictError(f"Submission {submission_id} is already being retried")

        error_step = submission.error_detail.step if submission.error_detail else None
        resume = ResumePoint.from_error_step(error_step)
        if resume is ResumePoint.UNKNOWN:
            logger.warning(
                "submission_retry event=unknown_step submission_id=%s step=%r resume=drive",
                submission_id,
                error_step,
            )
        elif resume is ResumePoint.TASK and submission.drive_result is None:
            logger.warning(
                "submission_retry event=missing_drive_result submission_id=%s resume=drive",
                submission_id,
            )
            resume = ResumePoint.DRIVE

        logger.info(
            "submission_retry event=start submission_id=%s resume=%s retry_count=%d",
            submission_id,
            resume.value,
            submission.error_detail.retry_count if submission.error_detail else 0,
        )
        # The snapshot read before the swap carries the error detail whose
        # retry count a renewed failure increments.
        self._execute(submission, resume)
        refreshed = self.storage.get_submission(submission_id)
        if refreshed is None:
            raise NotFoundError(submission_id)
        return refreshed

    def _execute(self, submission: Submission, resume: ResumePoint) -> TaskResult:
        payload = submission.request_payload
        drive_result: DriveResult | None = submission.drive_result

        if resume.runs_drive:
            try:
                drive_result = self.drive.provision(payload)
            except Exception as exc:  # noqa: BLE001
                self._fail(submission, STEP_DRIVE, exc)
            self.storage.update_submission(submission.id, {"drive_result": drive_result})
            logger.info(
                "submission_run event=step_completed submission_id=%s step=%s folder_id=%s",
                submission.id,
                STEP_DRIVE,
                drive_result.folder_id,
            )

        try:
            task_result = self.tasks.create_task(
                payload,
                folder_url=drive_result.folder_url if drive_result else None,
                uploaded_files=list(drive_result.uploaded_files) if drive_result else [],
            )
        except Exception as exc:  # noqa: BLE001
            self._fail(submission, STEP_TASK, exc)

        self.storage.update_submission(
            submission.id,
            {
                "task_result": task_result,
                "status": "complete",
                "completed_at": datetime.now(UTC),
                "error_detail": None,
                "error_message": None,
            },
        )
        logger.info(
            "submission_run event=completed submission_id=%s task_id=%s",
            submission.id,
            task_result.task_id,
        )
        self._notify_success(submission, task_result, drive_result)
        return task_result

    def _fail(self, submission: Submission, step: str, exc: Exception) -> NoReturn:
        previous = submission.error_detail.retry_count if submission.error_detail else 0
        failure = StepFailure(step, exc, submission_id=submission.id)
        detail = ErrorDetail(
            step=step,
            message=str(failure),
            retry_count=previous + 1,
            timestamp=datetime.now(UTC),
        )
        logger.error(
            "submission_run event=step_failed submission_id=%s step=%s retry_count=%d error=%s",
            submission.id,
            step,
            detail.retry_count,
            detail.message,
        )
        self.storage.update_submission(
            submission.id,
            {"status": "error", "error_detail": detail, "error_message": detail.message},
        )
        self._notify_failure(
            FailureNotice(
                error_message=detail.message,
                request_payload=submission.request_payload,
                step_label=step,
                submission_id=submission.id,
            )
        )
        raise failure from exc

    def _notify_failure(self, notice: FailureNotice) -> None:
        # Never let the notifier replace the pipeline error.
        try:
            self.notifier.notify_failure(notice)
        except Exception:  # noqa: BLE001
            logger.exception(
                "submission_notify event=failed kind=failure submission_id=%s step=%s",
                notice.submission_id,
                notice.step_label,
            )

    def _notify_success(
        self,
        submission: Submission,
        task_result: TaskResult,
        drive_result: DriveResult | None,
    ) -> None:
        if self.success_notifier is None:
            return
        try:
            self.success_notifier.notify_success(
                submission.request_payload,
                task_url=task_result.task_url,
                folder_url=drive_result.folder_url if drive_result else None,
            )
        except Exception:  # noqa: BLE001
            logger.exception(
                "submission_notify event=failed kind=success submission_id=%s",
                submission.id,
            )
