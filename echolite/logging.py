"""Structured logging for EchoLite.

structlog renders through the stdlib ``logging`` handler, so records from
uvicorn and httpx share the same format as the gateway's own events.

Request-scoped fields (``request_id``) live in ``structlog.contextvars``:
the HTTP middleware binds them once per request and every event logged while
serving that request carries them, including those from the gateway, the
process runner and the backend stream reader.
"""

from __future__ import annotations

import logging
import os
from contextlib import AbstractContextManager

import structlog

# Per-request chatter from the HTTP client (one INFO line per backend call).
_QUIET_LOGGERS = ("httpx", "httpcore")

_configured = False


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]


def configure_logging(
    log_format: str | None = None,
    level: str | None = None,
) -> None:
    """Configure structured logging for the gateway.

    The first call configures structlog and installs the handler. Later calls
    without arguments are ignored; later calls with an explicit format or
    level replace only the handler and level, so ``echolite serve
    --log-format json`` wins over the import-time default while loggers bound
    at import keep working.

    Args:
        log_format: "json" or "console". Default via ECHOLITE_LOG_FORMAT env or "console".
        level: Log level (DEBUG, INFO, WARNING, ERROR). Default via ECHOLITE_LOG_LEVEL
            env or "INFO".
    """
    global _configured
    if _configured and log_format is None and level is None:
        return

    resolved_format = log_format or os.environ.get("ECHOLITE_LOG_FORMAT", "console")
    resolved_level = level or os.environ.get("ECHOLITE_LOG_LEVEL", "INFO")
    numeric_level = getattr(logging, resolved_level.upper(), logging.INFO)

    if not _configured:
        structlog.configure(
            processors=[
                *_shared_processors(),
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    if resolved_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        # Records from uvicorn and httpx arrive through stdlib logging.
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    _configured = True


def request_context(request_id: str) -> AbstractContextManager[None]:
    """Bind ``request_id`` to every event logged inside the ``with`` block."""
    return structlog.contextvars.bound_contextvars(request_id=request_id)


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Return a logger with component context.

    Args:
        component: Component name (e.g., "gateway.orchestrator", "workers.process").
    """
    configure_logging()
    return structlog.get_logger().bind(component=component)  # type: ignore[no-any-return]
