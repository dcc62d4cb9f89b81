from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.api.routes import request_locale, router
from backend.app.dependencies import get_settings, get_telemetry
from backend.app.logging_config import configure_application_logging
from backend.app.services.errors import (
    AggregateProviderError,
    ConfigError,
    FilterRejection,
    NotFoundError,
    PinAlreadySetError,
    TubeGuardError,
    ValidationError,
)
from backend.app.services.messages import message, message_for_provider_errors
from backend.app.telemetry import HTTP_REQUEST_ERROR, HTTP_REQUEST_FINISH, HTTP_REQUEST_START

LOGGER = logging.getLogger("tube_guard.http")

# Chain name -> message key used when every provider failed.
CHAIN_FAILURE_KEYS: dict[str, str] = {
    "search": "search_failed",
    "video_detail": "detail_default",
    "download": "download_failed",
}


def health_check() -> dict[str, str]:
    return {"status": "ok"}


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_application_logging(get_settings())
    yield


def _error_response(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


def _status_for_error(exc: TubeGuardError) -> int:
    if isinstance(exc, PinAlreadySetError):
        return 400
    if isinstance(exc, ConfigError):
        return 401
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, FilterRejection):
        return 403
    return 500


async def handle_service_error(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, TubeGuardError):
        raise exc
    locale = request_locale(request)

    if isinstance(exc, AggregateProviderError):
        if exc.all_not_found and exc.chain == "video_detail":
            return _error_response(404, message("video_not_found", locale))
        LOGGER.error("request providers_exhausted chain=%s error=%s", exc.chain, exc)
        return _error_response(
            500,
            message_for_provider_errors(
                exc.failure_messages(),
                locale=locale,
                default_key=CHAIN_FAILURE_KEYS.get(exc.chain, "generic_error"),
            ),
        )

    status_code = _status_for_error(exc)
    if isinstance(exc, FilterRejection):
        return _error_response(
            status_code,
            message(exc.message_key, locale),
            blocked=True,
            reason=exc.reason,
        )
    if status_code >= 500:
        LOGGER.error("request failed error_type=%s error=%s", type(exc).__name__, exc)
    return _error_response(status_code, message(exc.message_key, locale))


async def handle_request_validation_error(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, RequestValidationError):
        raise exc
    LOGGER.info("request invalid_body errors=%s", len(exc.errors()))
    return _error_response(400, message("missing_fields", request_locale(request)))


def create_app() -> FastAPI:
    app = FastAPI(title="Tube Guard API", version="0.1.0", lifespan=app_lifespan)

    async def request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        telemetry = get_telemetry()
        incoming_request_id = request.headers.get("X-Request-ID")
        request_id = (
            incoming_request_id.strip()
            if isinstance(incoming_request_id, str) and incoming_request_id.strip()
            else str(uuid4())
        )
        context_tokens = bind_contextvars(
            http_request_id=request_id,
            http_method=request.method,
            http_path=request.url.path,
        )
        started_at = perf_counter()
        telemetry.emit(
            HTTP_REQUEST_START,
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        try:
            response = await call_next(request)
        except Exception as exc:
            telemetry.emit(
                HTTP_REQUEST_ERROR,
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=int((perf_counter() - started_at) * 1000),
                error_type=type(exc).__name__,
            )
            raise
        else:
            response.headers["X-Request-ID"] = request_id
            telemetry.emit(
                HTTP_REQUEST_FINISH,
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=int((perf_counter() - started_at) * 1000),
                status_code=response.status_code,
            )
            return response
        finally:
            reset_contextvars(**context_tokens)

    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(TubeGuardError, handle_service_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        tags=["system"],
        operation_id="health_check",
    )

    return app


app = create_app()
