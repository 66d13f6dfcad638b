"""
Centralized Logging Configuration for the priority service

Key/value events on top of structlog. Request-scoped fields (request id,
owner id) are bound through contextvars by the API middleware and merged
into every event logged while the request runs.

Author: Daily Priorities Core Team
Date: 2026-09-02
"""

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

SERVICE_NAME = "daily-priorities"


def _processors(json_logs: bool) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_logs: bool = False
) -> None:
    """
    Configure logging for the whole service.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path, written in addition to stdout
        json_logs: JSON lines (production) instead of console output
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(format="%(message)s", level=numeric_level, handlers=handlers, force=True)

    structlog.configure(
        processors=_processors(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    """
    Usage:
        logger = get_logger(__name__)
        logger.info("priority_created", priority_id=str(p.id), source=p.source)
    """
    return structlog.get_logger(name).bind(service=SERVICE_NAME)


def bind_request_context(**fields: Any) -> None:
    """Attach fields to every event of the current request"""
    structlog.contextvars.bind_contextvars(**fields)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def log_priority_transition(
    priority_id: str,
    owner_id: str,
    from_state: str,
    to_state: str,
    actor: str,
    reason: str
) -> None:
    """Audit line for every lifecycle state change"""
    get_logger("priority_transition").info(
        "priority_transition",
        priority_id=priority_id,
        owner_id=owner_id,
        from_state=from_state,
        to_state=to_state,
        actor=actor,
        reason=reason,
        transitioned_at=datetime.now(timezone.utc).isoformat(),
    )


def log_error(
    error: Exception,
    context: dict | None = None,
    level: str = "ERROR"
) -> None:
    """Log an exception with its traceback and extra context"""
    logger = get_logger("error_handler")
    log_func = getattr(logger, level.lower(), logger.error)
    log_func(
        "error_occurred",
        error_type=type(error).__name__,
        error_message=str(error),
        exc_info=error,
        **(context or {}),
    )


def http_request_summary(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float
) -> None:
    get_logger("http").info(
        "http_request",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
    )


# Auto-setup on import
setup_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE") or None,
    json_logs=os.getenv("LOG_JSON", "0") == "1"
)
