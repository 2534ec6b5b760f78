"""Listing filters shared by the storage backends."""

from __future__ import annotations

from art_request_api.app.models import Submission, SubmissionQuery


def status_filter(query: SubmissionQuery) -> str | None:
    """Return the status to filter on, or None when every status is wanted."""
    if not query.status or query.status == "all":
        return None
    return query.status


def matches(submission: Submission, query: SubmissionQuery) -> bool:
    wanted_status = status_filter(query)
    if wanted_status is not None and submission.status != wanted_status:
        return False

    payload = submission.request_payload
    if query.email:
        if (payload.requestor_email or "").lower() != query.email.strip().lower():
            return False

    if query.search:
        needle = query.search.lower()
        haystack = (
            payload.client_name,
            payload.request_title,
            payload.request_type,
            payload.requestor_email,
        )
        if not any(value and needle in value.lower() for value in haystack):
            return False
    return True
