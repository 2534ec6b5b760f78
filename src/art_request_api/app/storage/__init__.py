"""Storage backends for submissions and drafts."""

from art_request_api.app.storage.base import SubmissionStorage
from art_request_api.app.storage.memory import InMemorySubmissionStorage
from art_request_api.app.storage.postgres import PostgresSubmissionStorage

__all__ = [
    "InMemorySubmissionStorage",
    "PostgresSubmissionStorage",
    "SubmissionStorage",
]
