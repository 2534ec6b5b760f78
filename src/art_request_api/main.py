"""FastAPI application wiring for the art request service.

Route handlers stay thin: they load records, call the pipeline or storage,
and translate domain errors into HTTP status codes.
"""

from __future__ import annotations

import logging
import re
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, Protocol

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .app.capabilities import CreateTrackedTask, NotifyFailure, NotifySuccess, ProvisionStorage
from .app.errors import (
    ConflictError,
    IntegrationError,
    InvalidStateError,
    NotFoundError,
    StepFailure,
)
from .app.integrations import (
    AsanaTaskCreator,
    CommonSkuClient,
    GoogleDriveProvisioner,
    SlackNotifier,
)
from .app.models import (
    ClientValidation,
    CollaboratorValidation,
    CreateSubmissionRequest,
    Draft,
    RequestPayload,
    SaveDraftRequest,
    Submission,
    SubmissionList,
    SubmissionQuery,
    SubmissionSummary,
    UpdateSubmissionRequest,
)
from .app.pipeline import SubmissionPipeline
from .app.settings import Settings, get_settings
from .app.storage import PostgresSubmissionStorage, SubmissionStorage

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ClientDirectory(Protocol):
    def validate_client(self, client_name: str) -> ClientValidation: ...


class CollaboratorDirectory(Protocol):
    def user_exists(self, email: str) -> bool: ...


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    storage_override: SubmissionStorage | None,
    drive: ProvisionStorage | None,
    tasks: CreateTrackedTask | None,
    notifier: NotifyFailure | None,
    success_notifier: NotifySuccess | None,
) -> None:
    if not hasattr(app.state, "storage"):
        database_url = settings.resolved_database_url()
        if storage_override is None and not database_url:
            raise RuntimeError(
                "Missing database URL. Set ART_REQUEST_DATABASE_URL "
                "or DATABASE_URL before starting the app."
            )
        app.state.storage = storage_override or PostgresSubmissionStorage(database_url)
        app.state.storage.migrate()

    if not hasattr(app.state, "pipeline"):
        slack = SlackNotifier(settings)
        app.state.pipeline = SubmissionPipeline(
            storage=app.state.storage,
            drive=drive or GoogleDriveProvisioner(settings),
            tasks=tasks or AsanaTaskCreator(settings),
            notifier=notifier or slack,
            success_notifier=success_notifier or slack,
        )


def create_app(
    *,
    storage: SubmissionStorage | None = None,
    settings_override: Settings | None = None,
    drive: ProvisionStorage | None = None,
    tasks: CreateTrackedTask | None = None,
    notifier: NotifyFailure | None = None,
    success_notifier: NotifySuccess | None = None,
    clients: ClientDirectory | None = None,
    collaborators: CollaboratorDirectory | None = None,
) -> FastAPI:
    """Application factory.

    Passing `storage` skips the database entirely, which is how the tests
    build the app. The vendor collaborators can be overridden the same way.
    """
    settings = settings_override or get_settings()
    started_at = time.monotonic()

    def ensure_state(target: FastAPI) -> None:
        _ensure_runtime_state(
            target,
            settings=settings,
            storage_override=storage,
            drive=drive,
            tasks=tasks,
            notifier=notifier,
            success_notifier=success_notifier,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ensure_state(app)
        yield

    app_lifespan = lifespan if storage is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)
    app.state.settings = settings
    app.state.clients = clients or CommonSkuClient(settings)
    app.state.collaborators = collaborators or AsanaTaskCreator(settings)

    # Keep test paths reliable when lifespan is not executed by the client.
    if storage is not None:
        ensure_state(app)

    def _storage(request: Request) -> SubmissionStorage:
        if not hasattr(request.app.state, "storage"):
            ensure_state(request.app)
        return request.app.state.storage

    def _pipeline(request: Request) -> SubmissionPipeline:
        if not hasattr(request.app.state, "pipeline"):
            ensure_state(request.app)
        return request.app.state.pipeline

    def _load(request: Request, submission_id: str) -> Submission:
        submission = _storage(request).get_submission(submission_id)
        if submission is None:
            raise HTTPException(status_code=404, detail="Submission not found")
        return submission

    def _run(request: Request, submission: Submission) -> Submission:
        try:
            _pipeline(request).run(submission)
        except StepFailure as exc:
            raise HTTPException(
                status_code=500,
                detail={"error": str(exc), "step": exc.step, "submissionId": submission.id},
            ) from exc
        except InvalidStateError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _load(request, submission.id)

    # Liveness probes never touch dependencies.
    @app.get("/healthz")
    @app.get("/live")
    def live() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/health")
    def health(
        request: Request,
        check_db: bool = Query(default=False, alias="checkDb"),
    ) -> JSONResponse:
        checks: dict[str, dict[str, Any]] = {
            "app": {"status": "healthy", "message": "Application running"}
        }
        if check_db:
            db_started = time.perf_counter()
            try:
                _storage(request).ping()
                checks["database"] = {
                    "status": "healthy",
                    "message": "Connected to database",
                    "responseTimeMs": round((time.perf_counter() - db_started) * 1000.0, 2),
                }
            except Exception as exc:  # noqa: BLE001
                checks["database"] = {"status": "unhealthy", "message": str(exc)}

        missing = settings.missing_integration_settings()
        checks["environment"] = {
            "status": "healthy" if not missing else "unhealthy",
            "message": (
                "All required settings present" if not missing else f"Missing: {', '.join(missing)}"
            ),
        }

        healthy = all(check["status"] == "healthy" for check in checks.values())
        return JSONResponse(
            status_code=200 if healthy else 503,
            headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
            content={
                "status": "ok" if healthy else "unhealthy",
                "service": settings.app_name,
                "environment": settings.app_env,
                "timestamp": datetime.now(UTC).isoformat(),
                "uptimeS": round(time.monotonic() - started_at, 3),
                "checks": checks,
            },
        )

    @app.post("/submissions", response_model=Submission)
    def create_submission(payload: CreateSubmissionRequest, request: Request) -> Submission:
        status = "processing" if payload.submit else "draft"
        submission = _storage(request).create_submission(payload.request_payload, status=status)
        logger.info(
            "submission_create event=created submission_id=%s status=%s",
            submission.id,
            status,
        )
        if not payload.submit:
            return submission
        return _run(request, submission)

    @app.get("/submissions", response_model=SubmissionList)
    def list_submissions(
        request: Request,
        status: str | None = None,
        search: str | None = None,
        email: str | None = None,
        limit: int = Query(default=50, ge=1, le=500),
        offset: int = Query(default=0, ge=0),
    ) -> SubmissionList:
        query = SubmissionQuery(
            status=status, search=search, email=email, limit=limit, offset=offset
        )
        records, total = _storage(request).list_submissions(query)
        return SubmissionList(
            submissions=[SubmissionSummary.from_submission(record) for record in records],
            total=total,
        )

    @app.get("/submissions/{submission_id}", response_model=Submission)
    def get_submission(submission_id: str, request: Request) -> Submission:
        return _load(request, submission_id)

    @app.patch("/submissions/{submission_id}", response_model=Submission)
    def update_submission(
        submission_id: str,
        payload: UpdateSubmissionRequest,
        request: Request,
    ) -> Submission:
        current = _load(request, submission_id)
        changes: dict[str, Any] = {}
        if payload.request_payload is not None:
            # The payload is frozen once it has been handed to the pipeline.
            if current.status != "draft":
                raise HTTPException(
                    status_code=400,
                    detail="Request payload can only be changed on drafts",
                )
            try:
                # Normalize snake_case keys to the stored camelCase form before merging.
                patch = RequestPayload.model_validate(payload.request_payload)
                partial = patch.model_dump(by_alias=True, exclude_unset=True)
                partial.update(patch.model_extra or {})
                merged = current.request_payload.model_dump(by_alias=True)
                merged.update(partial)
                changes["request_payload"] = RequestPayload.model_validate(merged)
            except ValidationError as exc:
                raise HTTPException(
                    status_code=422,
                    detail=exc.errors(include_url=False, include_context=False),
                ) from exc
        if "error_message" in payload.model_fields_set:
            changes["error_message"] = payload.error_message
        try:
            return _storage(request).update_submission(submission_id, changes)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail="Submission not found") from exc

    @app.post("/submissions/{submission_id}/submit", response_model=Submission)
    def submit_draft(submission_id: str, request: Request) -> Submission:
        submission = _load(request, submission_id)
        if submission.status != "draft":
            raise HTTPException(status_code=400, detail="Only drafts can be submitted")
        return _run(request, submission)

    @app.post("/submissions/{submission_id}/retry", response_model=Submission)
    def retry_submission(submission_id: str, request: Request) -> Submission:
        try:
            return _pipeline(request).retry(submission_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail="Submission not found") from exc
        except InvalidStateError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except ConflictError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except StepFailure as exc:
            raise HTTPException(
                status_code=500,
                detail={"error": str(exc), "step": exc.step, "submissionId": submission_id},
            ) from exc

    @app.put("/drafts/{user_id}", response_model=Draft)
    def save_draft(user_id: str, payload: SaveDraftRequest, request: Request) -> Draft:
        return _storage(request).save_draft(
            user_id,
            user_email=payload.user_email,
            form_data=payload.form_data,
            current_step=payload.current_step,
        )

    @app.get("/drafts/{user_id}", response_model=Draft)
    def get_draft(user_id: str, request: Request) -> Draft:
        draft = _storage(request).get_draft(user_id)
        if draft is None:
            raise HTTPException(status_code=404, detail="Draft not found")
        return draft

    @app.delete("/drafts/{user_id}", status_code=204)
    def delete_draft(user_id: str, request: Request) -> Response:
        if not _storage(request).delete_draft(user_id):
            raise HTTPException(status_code=404, detail="Draft not found")
        return Response(status_code=204)

    @app.get("/validate-client", response_model=ClientValidation)
    def validate_client(
        request: Request,
        client_name: str = Query(default="", alias="clientName"),
    ) -> ClientValidation:
        if not client_name.strip():
            raise HTTPException(status_code=400, detail="Client name is required")
        try:
            return request.app.state.clients.validate_client(client_name.strip())
        except IntegrationError as exc:
            logger.error("client_validate event=failed reason=%s", exc)
            raise HTTPException(status_code=502, detail="Failed to validate client") from exc

    @app.get("/validate-collaborator", response_model=CollaboratorValidation)
    def validate_collaborator(
        request: Request,
        email: str = Query(default=""),
    ) -> CollaboratorValidation:
        email = email.strip()
        if not email:
            raise HTTPException(status_code=400, detail="Email parameter is required")
        if not EMAIL_PATTERN.match(email):
            raise HTTPException(status_code=400, detail="Invalid email format")
        try:
            valid = request.app.state.collaborators.user_exists(email)
        except IntegrationError as exc:
            logger.error("collaborator_validate event=failed reason=%s", exc)
            raise HTTPException(status_code=502, detail="Failed to validate collaborator") from exc
        return CollaboratorValidation(
            email=email,
            valid=valid,
            message="User exists in Asana" if valid else "User not found in Asana workspace",
        )

    return app


# Module-level app for `uvicorn art_request_api.main:app`.
app = create_app()
