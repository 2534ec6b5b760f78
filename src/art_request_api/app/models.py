"""Pydantic models shared across API, pipeline, integrations, and storage.

Field names are snake_case in Python and camelCase on the wire, so records
read back from the API look the way the intake form wrote them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Submission lifecycle states used by storage + API responses.
SubmissionStatus = Literal["draft", "processing", "complete", "error"]

RETRYABLE_STATUS: SubmissionStatus = "error"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Product(CamelModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    name: str | None = None
    color: str | None = None
    imprint_method: str | None = None
    imprint_color: str | None = None
    location: str | None = None
    size: str | None = None
    link: str | None = None
    notes: str | None = None


class WebsiteLink(CamelModel):
    id: str | None = None
    type: str = ""
    url: str = ""


class FileAttachment(CamelModel):
    """Attachment metadata; `base64_data` carries the bytes to upload."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    name: str
    size: int = 0
    mime_type: str = "application/octet-stream"
    base64_data: str | None = None


class RequestPayload(CamelModel):
    """Business data captured by the intake form.

    The pipeline treats this as opaque and hands it to each step. Keys the
    model does not know about are preserved.
    """

    model_config = ConfigDict(extra="allow")

    request_type: str | None = None
    requestor_name: str | None = None
    requestor_email: str | None = None
    region: str | None = None
    request_title: str | None = None
    user_id: str | None = None

    client_name: str | None = None
    client_exists: bool = False
    client_id: str | None = None

    due_date: str | None = None
    due_time: str | None = None

    project_number: str | None = None
    project_value: str | None = None
    billable: str | None = None
    client_type: str | None = None

    add_collaborators: bool = False
    collaborators: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    pertinent_information: str | None = None

    mockup_type: str | None = None
    pptx_type: str | None = None
    number_of_slides: int | None = None
    presentation_structure: str | None = None
    rise_and_shine_level: str | None = None
    proof_type: str | None = None
    sneak_peek_options: str | None = None

    products: list[Product] = Field(default_factory=list)
    website_links: list[WebsiteLink] = Field(default_factory=list)
    attachments: list[FileAttachment] = Field(default_factory=list)


class UploadedFile(CamelModel):
    file_id: str
    url: str
    name: str


class DriveResult(CamelModel):
    """Output of the Drive provisioning step."""

    folder_id: str
    folder_url: str
    uploaded_files: list[UploadedFile] = Field(default_factory=list)


class TaskResult(CamelModel):
    """Output of the task creation step."""

    task_id: str
    task_url: str


class ErrorDetail(CamelModel):
    # Plain string: records from the earlier intake app use step names such as
    # "asana_create". The pipeline maps every known name to a resume point.
    step: str
    message: str
    retry_count: int = Field(default=1, ge=0)
    timestamp: datetime


class Submission(CamelModel):
    """Canonical submission record shape returned by API/storage."""

    id: str
    status: SubmissionStatus = "draft"
    request_payload: RequestPayload = Field(default_factory=RequestPayload)
    drive_result: DriveResult | None = None
    task_result: TaskResult | None = None
    error_detail: ErrorDetail | None = None
    error_message: str | None = None
    created_at: datetime
    last_modified: datetime
    completed_at: datetime | None = None


class SubmissionSummary(CamelModel):
    """Row shape for the admin listing."""

    id: str
    request_type: str | None = None
    client_name: str | None = None
    request_title: str | None = None
    status: SubmissionStatus
    requestor_email: str | None = None
    created_at: datetime
    completed_at: datetime | None = None
    error_message: str | None = None
    task_url: str | None = None
    folder_url: str | None = None

    @classmethod
    def from_submission(cls, submission: Submission) -> SubmissionSummary:
        payload = submission.request_payload
        return cls(
            id=submission.id,
            request_type=payload.request_type,
            client_name=payload.client_name,
            request_title=payload.request_title,
            status=submission.status,
            requestor_email=payload.requestor_email,
            created_at=submission.created_at,
            completed_at=submission.completed_at,
            error_message=submission.error_message,
            task_url=submission.task_result.task_url if submission.task_result else None,
            folder_url=submission.drive_result.folder_url if submission.drive_result else None,
        )


class SubmissionQuery(BaseModel):
    """Listing filters. `status="all"` or None disables status filtering."""

    status: str | None = None
    search: str | None = None
    email: str | None = None
    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class SubmissionList(CamelModel):
    submissions: list[SubmissionSummary] = Field(default_factory=list)
    total: int = 0


class Draft(CamelModel):
    """One user's in-progress form, autosaved between sessions."""

    user_id: str
    user_email: str = ""
    form_data: dict[str, Any] = Field(default_factory=dict)
    current_step: int | None = Field(default=None, ge=0)
    last_modified: datetime


class FailureNotice(CamelModel):
    """Payload handed to the failure notifier."""

    error_message: str
    request_payload: RequestPayload
    step_label: str
    submission_id: str | None = None


class CreateSubmissionRequest(CamelModel):
    """Request body for POST /submissions."""

    request_payload: RequestPayload
    # False stores the submission as a draft without provisioning anything.
    submit: bool = True


class UpdateSubmissionRequest(CamelModel):
    """Request body for PATCH /submissions/{id}.

    `request_payload` keys are merged into the stored payload.
    """

    request_payload: dict[str, Any] | None = None
    error_message: str | None = None


class SaveDraftRequest(CamelModel):
    user_email: str = ""
    form_data: dict[str, Any] = Field(default_factory=dict)
    current_step: int | None = Field(default=None, ge=0)


class ClientValidation(CamelModel):
    exists: bool
    client_id: str | None = None
    client_data: dict[str, Any] | None = None
    message: str


class CollaboratorValidation(CamelModel):
    email: str
    valid: bool
    message: str
