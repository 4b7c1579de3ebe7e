from __future__ import annotations

import logging
import uuid
from typing import Any

import structlog

REQUEST_ID_HEADER = "X-Request-ID"


def configure_logging(level: int = logging.INFO, *, json_logs: bool = True) -> None:
    """Route structlog output through stdlib logging at ``level``.

    JSON lines are the default; ``json_logs=False`` switches to the coloured
    console renderer for local development.
    """
    logging.basicConfig(format="%(message)s", level=level)
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def get_logger(**initial_values: Any) -> structlog.BoundLogger:
    return structlog.get_logger().bind(**initial_values)


def level_from_name(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def bind_request_context(request_id: str | None = None, **values: Any) -> str:
    """Start a fresh per-request logging context and return its request id.

    Anything bound by an earlier request on the same task is dropped first.
    """
    request_id = request_id or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **values)
    return request_id


__all__ = ["REQUEST_ID_HEADER", "configure_logging", "get_logger", "level_from_name", "bind_request_context"]
