"""Error taxonomy for submission handling.

HTTP translation lives in `main.py`; everything here is transport-agnostic.
"""

from __future__ import annotations


class ArtRequestError(Exception):
    """Base class for errors raised by this service."""


class NotFoundError(ArtRequestError):
    def __init__(self, submission_id: str, *, kind: str = "Submission") -> None:
        super().__init__(f"{kind} {submission_id} not found")
        self.submission_id = submission_id


class InvalidStateError(ArtRequestError):
    """The submission is not in a state that allows the requested action."""

    def __init__(self, message: str, *, status: str | None = None) -> None:
        super().__init__(message)
        self.status = status


class ConflictError(ArtRequestError):
    """Another caller moved the submission out of the expected status first."""


class PipelineError(ArtRequestError):
    """A pipeline run ended without completing the submission."""

    def __init__(self, message: str, *, submission_id: str | None = None) -> None:
        super().__init__(message)
        self.submission_id = submission_id


class StepFailure(PipelineError):
    """The Drive or Task step raised; always persisted and notified."""

    def __init__(self, step: str, cause: BaseException, *, submission_id: str | None = None):
        super().__init__(str(cause) or type(cause).__name__, submission_id=submission_id)
        self.step = step
        self.cause = cause


class NotificationFailure(ArtRequestError):
    """The failure notifier itself failed. Logged, never propagated."""


class IntegrationError(ArtRequestError):
    """A vendor REST call failed or its configuration is missing."""

    def __init__(self, service: str, message: str, *, status: int | None = None) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status = status
