"""Google Drive provisioning over the Drive v3 REST API."""

from __future__ import annotations

import base64
import json
import logging
import uuid
from datetime import date

from ..errors import IntegrationError
from ..formatters import generate_folder_name, parent_folder_for_client, sanitize_filename
from ..models import DriveResult, FileAttachment, RequestPayload, UploadedFile
from ..settings import Settings
from .http import build_url, request_json

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
SERVICE = "google_drive"


class GoogleDriveProvisioner:
    """Create (or reuse) the request folder and upload its attachments.

    Folder lookup by name under the routed parent makes a second call after a
    partial failure land in the same folder instead of creating a duplicate.
    """

    def __init__(self, settings: Settings, *, today: date | None = None) -> None:
        self.settings = settings
        self.base_url = settings.google_drive_api_url.rstrip("/")
        self.timeout_s = settings.http_timeout_s
        self._today = today

    def provision(self, payload: RequestPayload) -> DriveResult:
        parent_id = parent_folder_for_client(payload.client_name, self.settings)
        if not parent_id:
            raise IntegrationError(SERVICE, "Parent folder ID not configured for client")

        folder_name = generate_folder_name(payload, today=self._today)
        folder_id, folder_url = self.find_folder(folder_name, parent_id) or self.create_folder(
            folder_name, parent_id
        )

        uploaded: list[UploadedFile] = []
        for attachment in payload.attachments:
            if not attachment.base64_data:
                logger.warning(
                    "drive_upload event=skipped folder_id=%s file=%s reason=no_data",
                    folder_id,
                    attachment.name,
                )
                continue
            uploaded.append(self.upload_file(attachment, folder_id))

        if payload.add_collaborators and payload.collaborators:
            self.share_folder(folder_id, payload.collaborators)

        logger.info(
            "drive_provision event=completed folder_id=%s uploaded=%d",
            folder_id,
            len(uploaded),
        )
        return DriveResult(folder_id=folder_id, folder_url=folder_url, uploaded_files=uploaded)

    def find_folder(self, name: str, parent_id: str) -> tuple[str, str] | None:
        escaped = name.replace("\\", "\\\\").replace("'", "\\'")
        query = (
            f"name = '{escaped}' and '{parent_id}' in parents "
            f"and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
        )
        raw = request_json(
            service=SERVICE,
            url=build_url(
                self.base_url,
                "/drive/v3/files",
                {
                    "q": query,
                    "fields": "files(id,webViewLink)",
                    "corpora": "allDrives",
                    "includeItemsFromAllDrives": "true",
                    "supportsAllDrives": "true",
                },
            ),
            headers=self._headers(),
            timeout_s=self.timeout_s,
        )
        for item in raw.get("files") or []:
            if item.get("id") and item.get("webViewLink"):
                return item["id"], item["webViewLink"]
        return None

    def create_folder(self, name: str, parent_id: str) -> tuple[str, str]:
        raw = request_json(
            service=SERVICE,
            url=build_url(
                self.base_url,
                "/drive/v3/files",
                {"fields": "id,webViewLink", "supportsAllDrives": "true"},
            ),
            method="POST",
            headers=self._headers(),
            payload={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
            timeout_s=self.timeout_s,
        )
        folder_id, folder_url = raw.get("id"), raw.get("webViewLink")
        if not folder_id or not folder_url:
            raise IntegrationError(SERVICE, "Failed to create Google Drive folder")
        return folder_id, folder_url

    def upload_file(self, attachment: FileAttachment, folder_id: str) -> UploadedFile:
        name = sanitize_filename(attachment.name)
        try:
            content = base64.b64decode(_strip_data_url(attachment.base64_data or ""), validate=True)
        except ValueError as exc:
            raise IntegrationError(SERVICE, f"Attachment {name} is not valid base64") from exc

        boundary = f"art-request-{uuid.uuid4().hex}"
        metadata = json.dumps({"name": name, "parents": [folder_id]}).encode("utf-8")
        body = b"".join(
            [
                f"--{boundary}\r\n".encode(),
                b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
                metadata,
                f"\r\n--{boundary}\r\n".encode(),
                f"Content-Type: {attachment.mime_type}\r\n\r\n".encode(),
                content,
                f"\r\n--{boundary}--\r\n".encode(),
            ]
        )
        raw = request_json(
            service=SERVICE,
            url=build_url(
                self.base_url,
                "/upload/drive/v3/files",
                {
                    "uploadType": "multipart",
                    "fields": "id,webViewLink",
                    "supportsAllDrives": "true",
                },
            ),
            method="POST",
            headers={
                **self._headers(),
                "Content-Type": f"multipart/related; boundary={boundary}",
            },
            data=body,
            timeout_s=self.timeout_s,
        )
        file_id, file_url = raw.get("id"), raw.get("webViewLink")
        if not file_id or not file_url:
            raise IntegrationError(SERVICE, f"Failed to upload file {name}")
        return UploadedFile(file_id=file_id, url=file_url, name=attachment.name)

    def share_folder(self, folder_id: str, emails: list[str], role: str = "writer") -> None:
        """Grant collaborators access; failures are logged and skipped."""
        for email in emails:
            try:
                request_json(
                    service=SERVICE,
                    url=build_url(
                        self.base_url,
                        f"/drive/v3/files/{folder_id}/permissions",
                        {"sendNotificationEmail": "false", "supportsAllDrives": "true"},
                    ),
                    method="POST",
                    headers=self._headers(),
                    payload={"type": "user", "role": role, "emailAddress": email},
                    timeout_s=self.timeout_s,
                )
            except IntegrationError as exc:
                logger.warning(
                    "drive_share event=failed folder_id=%s email=%s reason=%s",
                    folder_id,
                    email,
                    exc,
                )

    def _headers(self) -> dict[str, str]:
        token = self.settings.google_drive_access_token
        if not token:
            raise IntegrationError(SERVICE, "ART_REQUEST_GOOGLE_DRIVE_ACCESS_TOKEN is not set")
        return {"Authorization": f"Bearer {token}"}


def _strip_data_url(value: str) -> str:
    """Accept both bare base64 and `data:<mime>;base64,<data>` strings."""
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value
