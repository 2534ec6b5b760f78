"""PostgreSQL-backed submission storage with automatic table migration.

Step results and the request payload are stored as JSONB so the record can
grow new fields without schema changes.
"""

from __future__ import annotations

import json
import threading
import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from art_request_api.app.errors import NotFoundError
from art_request_api.app.models import (
    Draft,
    DriveResult,
    ErrorDetail,
    RequestPayload,
    Submission,
    SubmissionQuery,
    SubmissionStatus,
    TaskResult,
)
from art_request_api.app.storage.base import MUTABLE_FIELDS
from art_request_api.app.storage.filters import status_filter

# Columns holding JSON documents; everything else is a scalar column.
_JSON_COLUMNS = frozenset(
    {"request_payload", "drive_result", "task_result", "error_detail"}
)


class PostgresSubmissionStorage:
    """Persist submissions and drafts in PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("ART_REQUEST_DATABASE_URL is required")
        self.database_url = database_url
        # Lock guards DB operations done through this storage instance.
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        """Create required tables and indexes if they do not already exist."""
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS submissions (
                    id UUID PRIMARY KEY,
                    status TEXT NOT NULL,
                    request_payload JSONB NOT NULL DEFAULT '{}'::jsonb,
                    drive_result JSONB,
                    task_result JSONB,
                    error_detail JSONB,
                    error_message TEXT,
                    created_at TIMESTAMPTZ NOT NULL,
                    last_modified TIMESTAMPTZ NOT NULL,
                    completed_at TIMESTAMPTZ
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_submissions_status
                ON submissions(status)
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_submissions_created_at
                ON submissions(created_at DESC)
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS drafts (
                    user_id TEXT PRIMARY KEY,
                    user_email TEXT NOT NULL DEFAULT '',
                    form_data JSONB NOT NULL DEFAULT '{}'::jsonb,
                    current_step INTEGER,
                    last_modified TIMESTAMPTZ NOT NULL
                )
                """)
            conn.commit()

    def ping(self) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("SELECT 1").fetchone()

    def create_submission(
        self,
        request_payload: RequestPayload,
        *,
        status: SubmissionStatus,
    ) -> Submission:
        submission_id = uuid.uuid4()
        now = datetime.now(tz=UTC)
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO submissions (
                    id,
                    status,
                    request_payload,
                    created_at,
                    last_modified
                ) VALUES (%s, %s, %s, %s, %s)
                """,
                (
                    submission_id,
                    status,
                    self._json_wrapper(request_payload.model_dump(mode="json", by_alias=True)),
                    now,
                    now,
                ),
            )
            conn.commit()
        created = self.get_submission(str(submission_id))
        if created is None:
            raise NotFoundError(str(submission_id))
        return created

    def get_submission(self, submission_id: str) -> Submission | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM submissions WHERE id::text = %s",
                (submission_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_submission(row)

    def update_submission(self, submission_id: str, changes: dict[str, Any]) -> Submission:
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        assignments = ["last_modified = %s"]
        params: list[Any] = [datetime.now(tz=UTC)]
        for column, value in sorted(changes.items()):
            assignments.append(f"{column} = %s")
            params.append(self._to_column_value(column, value))
        params.append(submission_id)

        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE submissions SET {', '.join(assignments)} WHERE id::text = %s",
                tuple(params),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise NotFoundError(submission_id)

        refreshed = self.get_submission(submission_id)
        if refreshed is None:
            raise NotFoundError(submission_id)
        return refreshed

    def transition_status(
        self,
        submission_id: str,
        *,
        expected: SubmissionStatus,
        new: SubmissionStatus,
    ) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE submissions
                SET status = %s,
                    last_modified = %s
                WHERE id::text = %s
                  AND status = %s
                """,
                (new, datetime.now(tz=UTC), submission_id, expected),
            )
            conn.commit()
            swapped = cursor.rowcount == 1
        if not swapped and self.get_submission(submission_id) is None:
            raise NotFoundError(submission_id)
        return swapped

    def list_submissions(self, query: SubmissionQuery) -> tuple[list[Submission], int]:
        clauses: list[str] = []
        params: list[Any] = []

        wanted_status = status_filter(query)
        if wanted_status is not None:
            clauses.append("status = %s")
            params.append(wanted_status)
        if query.email:
            clauses.append("lower(request_payload->>'requestorEmail') = lower(%s)")
            params.append(query.email.strip())
        if query.search:
            pattern = f"%{query.search}%"
            clauses.append("""(
                request_payload->>'clientName' ILIKE %s
                OR request_payload->>'requestTitle' ILIKE %s
                OR request_payload->>'requestType' ILIKE %s
                OR request_payload->>'requestorEmail' ILIKE %s
            )""")
            params.extend([pattern] * 4)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock, self._connect() as conn:
            total_row = conn.execute(
                f"SELECT count(*) AS total FROM submissions {where}",
                tuple(params),
            ).fetchone()
            rows = conn.execute(
                f"""
                SELECT * FROM submissions {where}
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s
                """,
                (*params, query.limit, query.offset),
            ).fetchall()
        total = int(total_row["total"]) if total_row else 0
        return [self._row_to_submission(row) for row in rows], total

    def save_draft(
        self,
        user_id: str,
        *,
        user_email: str,
        form_data: dict[str, Any],
        current_step: int | None,
    ) -> Draft:
        now = datetime.now(tz=UTC)
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO drafts (user_id, user_email, form_data, current_step, last_modified)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (user_id) DO UPDATE SET
                    user_email = excluded.user_email,
                    form_data = excluded.form_data,
                    current_step = excluded.current_step,
                    last_modified = excluded.last_modified
                """,
                (user_id, user_email, self._json_wrapper(form_data), current_step, now),
            )
            conn.commit()
        return Draft(
            user_id=user_id,
            user_email=user_email,
            form_data=form_data,
            current_step=current_step,
            last_modified=now,
        )

    def get_draft(self, user_id: str) -> Draft | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM drafts WHERE user_id = %s",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return Draft(
            user_id=row["user_id"],
            user_email=row["user_email"] or "",
            form_data=self._parse_json_object(row["form_data"]),
            current_step=row["current_step"],
            last_modified=self._parse_datetime(row["last_modified"]),
        )

    def delete_draft(self, user_id: str) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.execute("DELETE FROM drafts WHERE user_id = %s", (user_id,))
            conn.commit()
            return cursor.rowcount > 0

    def _connect(self) -> Any:
        """Open a psycopg connection that yields dict-like rows."""
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    def _to_column_value(self, column: str, value: Any) -> Any:
        if value is None:
            return None
        if column in _JSON_COLUMNS:
            if isinstance(value, BaseModel):
                value = value.model_dump(mode="json", by_alias=True)
            return self._json_wrapper(value)
        return value

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        """Import psycopg and helpers with a friendly install hint on failure."""
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover - exercised only without dependency
            raise RuntimeError(
                "PostgreSQL backend requires psycopg. Install with: "
                'python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json_object(raw: Any) -> dict[str, Any]:
        """Parse JSON-like value into dict; fall back to empty dict."""
        parsed = json.loads(raw) if isinstance(raw, str) else raw
        if isinstance(parsed, dict):
            return parsed
        return {}

    @staticmethod
    def _parse_json_optional(raw: Any) -> dict[str, Any] | None:
        if raw is None:
            return None
        parsed = json.loads(raw) if isinstance(raw, str) else raw
        if isinstance(parsed, dict):
            return parsed
        return None

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_submission(cls, row: Any) -> Submission:
        """Map one DB row to the canonical Submission model."""
        drive_raw = cls._parse_json_optional(row["drive_result"])
        task_raw = cls._parse_json_optional(row["task_result"])
        error_raw = cls._parse_json_optional(row["error_detail"])
        return Submission(
            id=str(row["id"]),
            status=row["status"],
            request_payload=RequestPayload.model_validate(
                cls._parse_json_object(row["request_payload"])
            ),
            drive_result=DriveResult.model_validate(drive_raw) if drive_raw else None,
            task_result=TaskResult.model_validate(task_raw) if task_raw else None,
            error_detail=ErrorDetail.model_validate(error_raw) if error_raw else None,
            error_message=row["error_message"],
            created_at=cls._parse_datetime(row["created_at"]),
            last_modified=cls._parse_datetime(row["last_modified"]),
            completed_at=(
                cls._parse_datetime(row["completed_at"]) if row["completed_at"] else None
            ),
        )
