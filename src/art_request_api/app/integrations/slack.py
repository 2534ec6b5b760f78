"""Slack webhook notifications for submission outcomes."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from ..errors import IntegrationError, NotificationFailure
from ..models import FailureNotice, RequestPayload
from ..settings import Settings
from .http import request_json

logger = logging.getLogger(__name__)

SERVICE = "slack"


class SlackNotifier:
    """Post Block Kit messages to the tech-alert and success webhooks.

    Raises NotificationFailure when a configured webhook rejects the message;
    the pipeline decides whether that matters.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.timeout_s = settings.http_timeout_s

    def notify_failure(self, notice: FailureNotice) -> None:
        webhook_url = self.settings.slack_tech_alert_webhook
        if not webhook_url:
            logger.warning(
                "slack_notify event=skipped kind=failure reason=webhook_not_configured "
                "submission_id=%s",
                notice.submission_id,
            )
            return
        self._post(webhook_url, build_failure_message(notice, app_url=self.settings.app_url))

    def notify_success(
        self,
        payload: RequestPayload,
        *,
        task_url: str,
        folder_url: str | None,
    ) -> None:
        # Success notifications are optional.
        webhook_url = self.settings.slack_success_webhook
        if not webhook_url:
            return
        self._post(
            webhook_url,
            build_success_message(payload, task_url=task_url, folder_url=folder_url),
        )

    def _post(self, webhook_url: str, message: dict[str, Any]) -> None:
        # Webhooks answer with a plain-text "ok".
        try:
            request_json(
                service=SERVICE,
                url=webhook_url,
                method="POST",
                payload=message,
                timeout_s=self.timeout_s,
                expect_json=False,
            )
        except IntegrationError as exc:
            raise NotificationFailure(str(exc)) from exc


def build_failure_message(
    notice: FailureNotice,
    *,
    app_url: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    payload = notice.request_payload
    timestamp = (now or datetime.now(UTC)).isoformat()
    blocks: list[dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": "🚨 Art Request Submission Error", "emoji": True},
        },
        {
            "type": "section",
            "fields": [
                _field("Step Failed", notice.step_label),
                _field("Request Title", payload.request_title or "Untitled"),
                _field("Client", payload.client_name or "Unknown"),
                _field("Request Type", payload.request_type or "Unknown"),
                _field("Submitted By", payload.requestor_email or "Unknown"),
                _field("Timestamp", timestamp),
            ],
        },
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*Error Message:*\n```{notice.error_message}```"},
        },
    ]
    if notice.submission_id:
        admin_link = f"{app_url.rstrip('/')}/admin/{notice.submission_id}"
        blocks.append(
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": (
                        f"*Submission ID:*\n{notice.submission_id}\n\n"
                        f"<{admin_link}|View in Admin Dashboard>"
                    ),
                },
            }
        )
    return {"blocks": blocks}


def build_success_message(
    payload: RequestPayload,
    *,
    task_url: str,
    folder_url: str | None,
) -> dict[str, Any]:
    buttons: list[dict[str, Any]] = [
        {
            "type": "button",
            "text": {"type": "plain_text", "text": "View in Asana", "emoji": True},
            "url": task_url,
            "style": "primary",
        }
    ]
    if folder_url:
        buttons.append(
            {
                "type": "button",
                "text": {"type": "plain_text", "text": "View Files", "emoji": True},
                "url": folder_url,
            }
        )
    return {
        "blocks": [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": "✅ New Art Request Submitted", "emoji": True},
            },
            {
                "type": "section",
                "fields": [
                    _field("Request Title", payload.request_title or "Untitled"),
                    _field("Client", payload.client_name or "Unknown"),
                    _field("Request Type", payload.request_type or "Unknown"),
                    _field("Submitted By", payload.requestor_email or "Unknown"),
                ],
            },
            {"type": "actions", "elements": buttons},
        ]
    }


def _field(label: str, value: str) -> dict[str, str]:
    return {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}
