"""Asana task creation for art requests."""

from __future__ import annotations

import logging
from urllib import parse

from ..errors import IntegrationError
from ..formatters import build_task_description, format_custom_fields
from ..models import RequestPayload, TaskResult, UploadedFile
from ..settings import Settings
from .http import build_url, request_json

logger = logging.getLogger(__name__)

SERVICE = "asana"


class AsanaTaskCreator:
    """Create the tracked task, then attach follow-up context.

    Only the task creation itself can fail the step. Collaborator comments and
    file attachments are best effort.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.base_url = settings.asana_api_url.rstrip("/")
        self.timeout_s = settings.http_timeout_s

    def create_task(
        self,
        payload: RequestPayload,
        *,
        folder_url: str | None,
        uploaded_files: list[UploadedFile],
    ) -> TaskResult:
        project_id = self.settings.asana_project_id
        if not project_id:
            raise IntegrationError(SERVICE, "ART_REQUEST_ASANA_PROJECT_ID is not set")

        task_data: dict[str, object] = {
            "name": payload.request_title or "Untitled Art Request",
            "html_notes": build_task_description(payload, folder_url),
            "projects": [project_id],
            "custom_fields": format_custom_fields(payload, self.settings, folder_url),
        }
        if payload.due_date:
            task_data["due_on"] = payload.due_date

        raw = request_json(
            service=SERVICE,
            url=f"{self.base_url}/tasks",
            method="POST",
            headers=self._headers(),
            payload={"data": task_data},
            timeout_s=self.timeout_s,
        )
        task_id = (raw.get("data") or {}).get("gid")
        if not task_id:
            raise IntegrationError(SERVICE, "task response did not include a gid")
        task_url = f"https://app.asana.com/0/{project_id}/{task_id}"
        logger.info("asana_task event=created task_id=%s project_id=%s", task_id, project_id)

        if payload.add_collaborators and payload.collaborators:
            self.add_comment(
                task_id, f"Collaborators to notify: {', '.join(payload.collaborators)}"
            )
        for uploaded in uploaded_files:
            self.attach_url(task_id, url=uploaded.url, name=uploaded.name)

        return TaskResult(task_id=task_id, task_url=task_url)

    def add_comment(self, task_id: str, text: str) -> None:
        try:
            request_json(
                service=SERVICE,
                url=f"{self.base_url}/tasks/{task_id}/stories",
                method="POST",
                headers=self._headers(),
                payload={"data": {"text": text}},
                timeout_s=self.timeout_s,
            )
        except IntegrationError as exc:
            logger.warning("asana_comment event=failed task_id=%s reason=%s", task_id, exc)

    def attach_url(self, task_id: str, *, url: str, name: str) -> None:
        try:
            request_json(
                service=SERVICE,
                url=f"{self.base_url}/attachments",
                method="POST",
                headers=self._headers(),
                payload={
                    "data": {
                        "parent": task_id,
                        "resource_subtype": "external",
                        "name": name,
                        "url": url,
                    }
                },
                timeout_s=self.timeout_s,
            )
        except IntegrationError as exc:
            logger.warning(
                "asana_attachment event=failed task_id=%s name=%s reason=%s", task_id, name, exc
            )

    def user_exists(self, email: str) -> bool:
        """True when `email` belongs to a user in the configured workspace."""
        params = {"opt_fields": "email,workspaces"}
        if self.settings.asana_workspace_id:
            params["workspace"] = self.settings.asana_workspace_id
        try:
            raw = request_json(
                service=SERVICE,
                url=build_url(self.base_url, f"/users/{parse.quote(email)}", params),
                headers=self._headers(),
                timeout_s=self.timeout_s,
            )
        except IntegrationError as exc:
            if exc.status in (400, 403, 404):
                return False
            raise
        user = raw.get("data") or {}
        workspace_id = self.settings.asana_workspace_id
        if workspace_id:
            workspaces = user.get("workspaces") or []
            return any(item.get("gid") == workspace_id for item in workspaces)
        return bool(user.get("gid"))

    def _headers(self) -> dict[str, str]:
        token = self.settings.asana_access_token
        if not token:
            raise IntegrationError(SERVICE, "ART_REQUEST_ASANA_ACCESS_TOKEN is not set")
        return {"Authorization": f"Bearer {token}"}
