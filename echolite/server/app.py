"""FastAPI application factory for EchoLite."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

import echolite
from echolite.logging import request_context
from echolite.server.error_handlers import register_error_handlers
from echolite.server.routes import ask_audio, complete, health, models_config, transcribe

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assign a unique request_id to each HTTP request.

    The id is bound to the logging context for the lifetime of the request
    and echoed in the ``X-Request-ID`` response header.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        with request_context(request_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    import httpx

    from echolite.config.store import SettingsProvider
    from echolite.gateway.orchestrator import Gateway


def create_app(
    settings_provider: SettingsProvider | None = None,
    gateway: Gateway | None = None,
    http_client: httpx.AsyncClient | None = None,
    max_upload_bytes: int | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings_provider: Profile document store (optional, None only for
            health endpoint tests).
        gateway: Gateway serving the action endpoints (optional).
        http_client: Shared backend client, closed on shutdown (optional).
        max_upload_bytes: Upload size limit; defaults to the server settings.
        cors_origins: List of allowed CORS origins (optional).

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        client = getattr(app.state, "http_client", None)
        if client is not None:
            await client.aclose()

    if max_upload_bytes is None:
        from echolite.config.settings import get_settings

        max_upload_bytes = get_settings().server.max_file_size_bytes

    app = FastAPI(
        title="EchoLite",
        version=echolite.__version__,
        description="Audio question answering gateway for local inference backends",
        lifespan=lifespan,
    )

    app.state.settings_provider = settings_provider
    app.state.gateway = gateway
    app.state.http_client = http_client
    app.state.max_upload_bytes = max_upload_bytes

    if cors_origins:
        from fastapi.middleware.cors import CORSMiddleware

        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(ask_audio.router)
    app.include_router(transcribe.router)
    app.include_router(complete.router)
    app.include_router(models_config.router)

    return app
