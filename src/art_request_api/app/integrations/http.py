"""Small JSON-over-HTTP helper shared by the vendor clients."""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib import error, parse, request

from ..errors import IntegrationError

logger = logging.getLogger(__name__)


def build_url(base_url: str, path: str, params: dict[str, Any] | None = None) -> str:
    url = f"{base_url.rstrip('/')}{path}"
    if not params:
        return url
    encoded = parse.urlencode(
        {key: value for key, value in params.items() if value is not None},
        doseq=True,
    )
    return f"{url}?{encoded}" if encoded else url


def request_json(
    *,
    service: str,
    url: str,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    payload: Any = None,
    data: bytes | None = None,
    timeout_s: float,
    expect_json: bool = True,
) -> dict[str, Any]:
    """Send one request and decode a JSON object response.

    `payload` is JSON-encoded; `data` is sent as-is (for multipart bodies).
    Non-2xx responses and transport errors raise IntegrationError. With
    `expect_json=False` the body is ignored and an empty dict returned.
    """
    all_headers = {"Accept": "application/json"}
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
        all_headers["Content-Type"] = "application/json"
    all_headers.update(headers or {})

    req = request.Request(url=url, data=data, method=method, headers=all_headers)
    try:
        with request.urlopen(req, timeout=timeout_s) as response:
            body = response.read().decode("utf-8")
    except error.HTTPError as exc:
        raw_error = exc.read().decode("utf-8", errors="replace")
        logger.warning(
            "integration_request event=http_error service=%s method=%s status=%s",
            service,
            method,
            exc.code,
        )
        raise IntegrationError(
            service,
            f"request failed with status {exc.code}: {_error_message(raw_error)}",
            status=exc.code,
        ) from exc
    except error.URLError as exc:
        raise IntegrationError(service, f"request failed: {exc.reason}") from exc

    if not body or not expect_json:
        return {}
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError as exc:
        raise IntegrationError(service, "returned non-JSON response") from exc
    if isinstance(parsed, dict):
        return parsed
    raise IntegrationError(service, f"returned unsupported JSON shape: {type(parsed)!r}")


def _error_message(raw_error: str) -> str:
    """Pull the vendor's own message out of an error body when there is one."""
    try:
        parsed = json.loads(raw_error)
    except json.JSONDecodeError:
        return raw_error[:300]
    if isinstance(parsed, dict):
        errors = parsed.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            message = errors[0].get("message")
            if isinstance(message, str):
                return message
        nested = parsed.get("error")
        if isinstance(nested, dict) and isinstance(nested.get("message"), str):
            return nested["message"]
        if isinstance(nested, str):
            return nested
    return raw_error[:300]
