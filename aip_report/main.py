from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from aip_report.config import SearchIndexConfig, cors_allow_origins
from aip_report.errors import ApiError
from aip_report.routes import aips, search_index
from aip_report.routes._deps import error_response, trace_id_from_request
from aip_report.schemas import success_envelope
from aip_report.service import AipAnalyticsService

logger = logging.getLogger(__name__)


def create_app(analytics: AipAnalyticsService | None = None) -> FastAPI:
    app = FastAPI(title="AIP Report API", version="0.1.0")
    app.state.analytics = analytics or AipAnalyticsService(config=SearchIndexConfig.from_env())

    allow_origins = cors_allow_origins()
    if allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def assign_trace_id(request: Request, call_next):
        incoming_trace_id = request.headers.get("x-trace-id", "").strip()
        request.state.trace_id = incoming_trace_id or uuid.uuid4().hex
        response = await call_next(request)
        response.headers["x-trace-id"] = request.state.trace_id
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        if exc.http_status >= 500:
            logger.warning(
                "api_error code=%s status=%s path=%s trace_id=%s",
                exc.code,
                exc.http_status,
                request.url.path,
                trace_id_from_request(request),
            )
        return error_response(
            request,
            code=exc.code,
            message=exc.message,
            error_class=exc.error_class,
            retryable=exc.retryable,
            status_code=exc.http_status,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return error_response(
            request,
            code="REQ_VALIDATION_FAILED",
            message="invalid request",
            error_class="validation",
            retryable=False,
            status_code=400,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(
                request,
                code="REQ_NOT_FOUND",
                message="resource not found",
                error_class="validation",
                retryable=False,
                status_code=404,
            )
        return error_response(
            request,
            code="REQ_HTTP_ERROR",
            message=str(exc.detail),
            error_class="validation",
            retryable=False,
            status_code=exc.status_code,
        )

    @app.get("/healthz")
    def healthz(request: Request) -> dict[str, object]:
        analytics_service: AipAnalyticsService = request.app.state.analytics
        return success_envelope(
            {"status": "ok", "search_index_enabled": analytics_service.enabled},
            trace_id_from_request(request),
        )

    app.include_router(aips.router)
    app.include_router(search_index.router)
    return app


app = create_app()
