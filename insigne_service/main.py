from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from insigne_service.approval import approve, deliver
from insigne_service.assets import issue_signed_urls
from insigne_service.clients import (
    Notifier,
    ObjectStorage,
    OpenAITextGenerator,
    ResendNotifier,
    SupabaseObjectStorage,
    TextGenerator,
    UnconfiguredNotifier,
    UnconfiguredObjectStorage,
    UnconfiguredTextGenerator,
)
from insigne_service.config import Settings, settings as default_settings
from insigne_service.errors import InsigneError, NotFound, ValidationFailed
from insigne_service.generation import generate_report, run_generation_in_background
from insigne_service.ingestion import ingest_submission
from insigne_service.lifecycle import AWAITING_APPROVAL
from insigne_service.models.responses import (
    GenerateResponse,
    IngestResponse,
    InsigneByTokenResponse,
    InsigneDetailResponse,
    LatestInsigneResponse,
    LookupResponse,
    QueueItem,
    QueueResponse,
    TransitionResponse,
)
from insigne_service.storage.db import (
    check_db,
    create_db_engine,
    find_insigne_by_submission,
    get_insigne,
    get_insigne_by_token,
    get_latest_insigne,
    list_insignes_by_status,
)

logger = logging.getLogger("insigne_service")


def build_error_payload(
    code: str,
    message: str,
    status_code: int | None = None,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    payload = {"code": code, "message": message}
    if status_code is not None or details:
        detail_payload = dict(details or {})
        if status_code is not None:
            detail_payload.setdefault("status_code", status_code)
        payload["details"] = detail_payload
    return payload


def build_error_response(
    *,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "error": build_error_payload(code, message, status_code=status_code, details=details)},
        headers={"Cache-Control": "no-store"},
    )


def build_text_generator(settings: Settings) -> TextGenerator:
    if settings.openai_api_key:
        return OpenAITextGenerator(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout_seconds=settings.generation_timeout_seconds,
        )
    return UnconfiguredTextGenerator()


def build_object_storage(settings: Settings) -> ObjectStorage:
    if settings.supabase_url and settings.supabase_service_role_key and settings.supabase_storage_bucket:
        return SupabaseObjectStorage(
            base_url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
            bucket=settings.supabase_storage_bucket,
            timeout_seconds=settings.storage_timeout_seconds,
        )
    return UnconfiguredObjectStorage()


def build_notifier(settings: Settings) -> Notifier:
    if settings.resend_api_key and settings.from_email:
        return ResendNotifier(
            api_key=settings.resend_api_key,
            from_email=settings.from_email,
            base_url=settings.resend_base_url,
            timeout_seconds=settings.email_timeout_seconds,
        )
    return UnconfiguredNotifier()


def _isoformat(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value) if value is not None else None


def create_app(
    app_settings: Settings | None = None,
    *,
    text_generator: TextGenerator | None = None,
    object_storage: ObjectStorage | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    app_settings = app_settings or default_settings
    app = FastAPI()
    cors_origins = [origin.strip() for origin in app_settings.cors_origins.split(",") if origin.strip()]
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "X-Admin-Key", "Content-Type", "Accept"],
        )

    app.state.settings = app_settings
    app.state.engine = create_db_engine(app_settings.database_url)
    app.state.text_generator = text_generator or build_text_generator(app_settings)
    app.state.object_storage = object_storage or build_object_storage(app_settings)
    app.state.notifier = notifier or build_notifier(app_settings)

    @app.exception_handler(InsigneError)
    async def handle_insigne_error(request: Request, exc: InsigneError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning(
                "request_failed path=%s code=%s message=%s",
                request.url.path,
                exc.code,
                exc.message,
            )
        return build_error_response(
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
            details=exc.details,
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("database_error path=%s error=%s", request.url.path, exc.__class__.__name__)
        return build_error_response(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="database_unavailable",
            message="Database unavailable",
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unexpected_error path=%s", request.url.path)
        return build_error_response(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="unexpected_error",
            message="Unexpected error",
            details={"type": exc.__class__.__name__},
        )

    def get_settings() -> Settings:
        return app.state.settings

    def disable_caching(response: Response) -> None:
        response.headers["Cache-Control"] = "no-store"

    def require_operator(
        authorization: str | None = Header(default=None),
        x_admin_key: str | None = Header(default=None, alias="X-Admin-Key"),
        settings: Settings = Depends(get_settings),
    ) -> None:
        if not settings.admin_key:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Operator access not configured")
        presented = x_admin_key
        if authorization:
            try:
                scheme, token = authorization.split(" ", 1)
            except ValueError:
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authorization header")
            if scheme.lower() != "bearer":
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authorization header")
            presented = token.strip()
        if not presented or not secrets.compare_digest(presented.encode(), settings.admin_key.encode()):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid operator credential")

    def load_insigne(insigne_id: str) -> Dict[str, Any]:
        row = get_insigne(app.state.engine, insigne_id)
        if not row:
            raise NotFound("Insigne not found", details={"insigne_id": insigne_id})
        return row

    @app.get("/health")
    def health() -> Dict[str, str]:
        try:
            check_db(app.state.engine)
        except Exception:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")
        return {"status": "ok"}

    @app.get("/version")
    def version(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
        return {"version": settings.version, "git_sha": settings.git_sha}

    @app.post("/v1/submissions", response_model=IngestResponse, response_model_exclude_none=True)
    async def ingest_submission_endpoint(
        request: Request,
        background_tasks: BackgroundTasks,
        settings: Settings = Depends(get_settings),
    ) -> IngestResponse:
        body = await request.body()
        outcome = ingest_submission(
            app.state.engine,
            body,
            hidden_field_key=settings.hidden_submission_field_key,
            require_client_email=settings.require_client_email,
        )
        if not outcome.deduped and settings.auto_generate:
            background_tasks.add_task(
                run_generation_in_background,
                app.state.engine,
                app.state.text_generator,
                outcome.insigne_id,
                input_max_chars=settings.generation_input_max_chars,
            )
        return IngestResponse(
            insigne_id=outcome.insigne_id,
            submission_id=outcome.submission_id,
            deduped=True if outcome.deduped else None,
        )

    @app.get(
        "/v1/submissions/{submission_id}",
        response_model=LookupResponse,
        dependencies=[Depends(disable_caching)],
    )
    def lookup_submission(submission_id: str) -> LookupResponse:
        insigne_id = find_insigne_by_submission(app.state.engine, submission_id)
        if not insigne_id:
            raise NotFound("Submission not found", details={"submission_id": submission_id})
        return LookupResponse(insigne_id=insigne_id, submission_id=submission_id)

    @app.post(
        "/v1/insignes/{insigne_id}/generate",
        response_model=GenerateResponse,
        response_model_exclude_none=True,
        dependencies=[Depends(require_operator)],
    )
    def generate_endpoint(
        insigne_id: str,
        retry: bool = False,
        settings: Settings = Depends(get_settings),
    ) -> GenerateResponse:
        outcome = generate_report(
            app.state.engine,
            app.state.text_generator,
            insigne_id,
            retry=retry,
            input_max_chars=settings.generation_input_max_chars,
        )
        return GenerateResponse(
            insigne_id=outcome.insigne_id,
            status=outcome.status,
            skipped=outcome.skipped or None,
            structured=outcome.structured,
        )

    @app.get(
        "/v1/insignes/by-token",
        response_model=InsigneByTokenResponse,
        dependencies=[Depends(disable_caching)],
    )
    async def read_by_token(
        token: str = Query(default=""),
        settings: Settings = Depends(get_settings),
    ) -> InsigneByTokenResponse:
        if not token:
            raise ValidationFailed("Missing token")
        row = get_insigne_by_token(app.state.engine, token)
        if not row:
            raise NotFound("Not found")
        links = await issue_signed_urls(
            app.state.engine,
            app.state.object_storage,
            row["id"],
            settings.signed_url_ttl_seconds,
        )
        return InsigneByTokenResponse(
            insigne_id=row["id"],
            status=row["status"],
            report_text=row.get("report_text"),
            motto_english=row.get("motto_english"),
            motto_latin=row.get("motto_latin"),
            assets=links,
        )

    @app.get(
        "/v1/insignes/latest",
        response_model=LatestInsigneResponse,
        dependencies=[Depends(require_operator), Depends(disable_caching)],
    )
    def read_latest() -> LatestInsigneResponse:
        row = get_latest_insigne(app.state.engine)
        if not row:
            raise NotFound("No insignes yet")
        return LatestInsigneResponse(
            insigne_id=row["id"],
            status=row["status"],
            motto_latin=row.get("motto_latin"),
            report_text=row.get("report_text"),
        )

    @app.get(
        "/v1/insignes/{insigne_id}",
        response_model=InsigneDetailResponse,
        dependencies=[Depends(require_operator), Depends(disable_caching)],
    )
    async def read_insigne(
        insigne_id: str,
        settings: Settings = Depends(get_settings),
    ) -> InsigneDetailResponse:
        row = load_insigne(insigne_id)
        links = await issue_signed_urls(
            app.state.engine,
            app.state.object_storage,
            insigne_id,
            settings.signed_url_ttl_seconds,
        )
        return InsigneDetailResponse(
            insigne_id=row["id"],
            status=row["status"],
            client_email=row.get("client_email"),
            report_text=row.get("report_text"),
            motto_english=row.get("motto_english"),
            motto_latin=row.get("motto_latin"),
            created_at=_isoformat(row.get("created_at")),
            assets=links,
        )

    @app.get(
        "/v1/admin/queue",
        response_model=QueueResponse,
        dependencies=[Depends(require_operator), Depends(disable_caching)],
    )
    def approval_queue() -> QueueResponse:
        rows = list_insignes_by_status(app.state.engine, AWAITING_APPROVAL)
        return QueueResponse(
            items=[
                QueueItem(
                    insigne_id=row["id"],
                    status=row["status"],
                    client_email=row.get("client_email"),
                    motto_latin=row.get("motto_latin"),
                    created_at=_isoformat(row.get("created_at")),
                )
                for row in rows
            ]
        )

    @app.post(
        "/v1/insignes/{insigne_id}/approve",
        response_model=TransitionResponse,
        response_model_exclude_none=True,
        dependencies=[Depends(require_operator)],
    )
    def approve_endpoint(insigne_id: str) -> TransitionResponse:
        outcome = approve(app.state.engine, insigne_id)
        return TransitionResponse(
            insigne_id=outcome.insigne_id,
            status=outcome.status,
            unchanged=outcome.unchanged or None,
        )

    @app.post(
        "/v1/insignes/{insigne_id}/deliver",
        response_model=TransitionResponse,
        response_model_exclude_none=True,
        dependencies=[Depends(require_operator)],
    )
    def deliver_endpoint(
        insigne_id: str,
        settings: Settings = Depends(get_settings),
    ) -> TransitionResponse:
        outcome = deliver(
            app.state.engine,
            app.state.notifier,
            insigne_id,
            results_url_base=settings.public_results_url_base,
        )
        return TransitionResponse(
            insigne_id=outcome.insigne_id,
            status=outcome.status,
            unchanged=outcome.unchanged or None,
        )

    return app


app = create_app()
