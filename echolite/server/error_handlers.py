"""HTTP exception handlers for FastAPI.

Maps typed EchoLite exceptions to HTTP responses with the correct status
codes. Every error body is ``{"error": <category>, "detail": <text>}``: the
category is the exception's stable ``category`` string, the detail comes from
the layer that detected the problem.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from echolite.exceptions import (
    AudioTooLargeError,
    BackendError,
    BackendRejectedError,
    ConfigError,
    EcholiteError,
    EngineNotImplementedError,
    InvalidRequestError,
    ProcessFailedError,
    RequestCancelledError,
    ServiceNotConfiguredError,
)
from echolite.logging import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = get_logger("server.errors")

# Non-standard "client closed request"; the client is gone and never sees it.
CLIENT_CLOSED_REQUEST = 499


def _error_response(status_code: int, category: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": category, "detail": detail},
        headers={"Cache-Control": "no-store"},
    )


def _get_request_id(request: Request) -> str | None:
    """Request id from request state.

    Only the catch-all handler needs it: it runs in the outermost middleware,
    outside the request's logging context.
    """
    return getattr(request.state, "request_id", None)


async def _handle_service_not_configured(
    request: Request, exc: ServiceNotConfiguredError
) -> JSONResponse:
    logger.error("service_not_configured", service=exc.service_name)
    return _error_response(503, exc.category, exc.detail)


async def _handle_invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
    logger.warning("invalid_request", detail=exc.detail)
    return _error_response(400, exc.category, exc.detail)


async def _handle_audio_too_large(request: Request, exc: AudioTooLargeError) -> JSONResponse:
    logger.warning(
        "audio_too_large",
        size_bytes=exc.size_bytes,
        max_bytes=exc.max_bytes,
    )
    return _error_response(413, exc.category, exc.detail)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg', 'invalid')}" if loc else str(err.get("msg")))
    detail = "; ".join(parts) or "Invalid request"
    logger.warning("request_validation_failed", detail=detail)
    return _error_response(400, InvalidRequestError.category, detail)


async def _handle_config_error(request: Request, exc: ConfigError) -> JSONResponse:
    logger.warning(
        "config_error",
        error=exc.category,
        detail=exc.detail,
    )
    return _error_response(400, exc.category, exc.detail)


async def _handle_engine_not_implemented(
    request: Request, exc: EngineNotImplementedError
) -> JSONResponse:
    logger.warning("engine_not_implemented", engine=exc.engine)
    return _error_response(501, exc.category, exc.detail)


async def _handle_backend_error(request: Request, exc: BackendError) -> JSONResponse:
    status = exc.status_code if isinstance(exc, BackendRejectedError) else None
    logger.error(
        "backend_error",
        error=exc.category,
        backend_status=status,
        detail=exc.detail,
    )
    return _error_response(502, exc.category, exc.detail)


async def _handle_process_failed(request: Request, exc: ProcessFailedError) -> JSONResponse:
    logger.error(
        "process_failed",
        executable=exc.executable,
        returncode=exc.returncode,
    )
    return _error_response(500, exc.category, exc.detail)


async def _handle_request_cancelled(request: Request, exc: RequestCancelledError) -> JSONResponse:
    logger.info("request_cancelled")
    return _error_response(CLIENT_CLOSED_REQUEST, exc.category, exc.detail)


async def _handle_echolite_error(request: Request, exc: EcholiteError) -> JSONResponse:
    logger.error(
        "unhandled_echolite_error",
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )
    return _error_response(500, exc.category, exc.detail)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unexpected_error",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=_get_request_id(request),
        exc_info=True,
    )
    return _error_response(500, "internal_error", str(exc) or type(exc).__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""
    app.add_exception_handler(ServiceNotConfiguredError, _handle_service_not_configured)
    app.add_exception_handler(AudioTooLargeError, _handle_audio_too_large)
    app.add_exception_handler(InvalidRequestError, _handle_invalid_request)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(ConfigError, _handle_config_error)
    app.add_exception_handler(EngineNotImplementedError, _handle_engine_not_implemented)
    app.add_exception_handler(BackendError, _handle_backend_error)
    app.add_exception_handler(ProcessFailedError, _handle_process_failed)
    app.add_exception_handler(RequestCancelledError, _handle_request_cancelled)
    app.add_exception_handler(EcholiteError, _handle_echolite_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)
