"""Structured logging for Fleetwarden.

structlog renders every entry; the stdlib ``logging`` module only supplies
the output handler (stdout or a size-rotated file). Two kinds of context
are merged into each entry:

- the deployment and instance a resolution runs against
  (``bind_instance_context``), and
- the resolution's correlation ID (``correlation_scope``), which also
  reaches collaborators whose loggers were created before the resolution.

Example:
    >>> setup_logging(LoggingConfig(level="INFO", format="json"))
    >>> with correlation_scope() as correlation_id:
    ...     bind_instance_context(deployment="d1", instance="worker/u1")
    ...     logger.info("vm_recreated", vm_cid="vm-123")
"""

from __future__ import annotations

import contextvars
import logging
import logging.handlers
import sys
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

from fleetwarden.config import LoggingConfig

if TYPE_CHECKING:
    from collections.abc import Iterator

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

# Libraries that log every agent request or SQL statement at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite")


def add_correlation_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor adding the current correlation ID, if any."""
    correlation_id = _correlation_id.get()
    if correlation_id is not None:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Run a block under a correlation ID.

    Uses ``correlation_id`` when given, else the ID already in effect,
    else a fresh one. The previous ID is restored on exit.
    """
    current = correlation_id or _correlation_id.get() or uuid.uuid4().hex
    token = _correlation_id.set(current)
    try:
        yield current
    finally:
        _correlation_id.reset(token)


def bind_instance_context(deployment: str, instance: str) -> None:
    """Bind deployment and instance names to all subsequent log entries."""
    structlog.contextvars.bind_contextvars(deployment=deployment, instance=instance)


def unbind_instance_context() -> None:
    structlog.contextvars.unbind_contextvars("deployment", "instance")


def _build_handler(config: LoggingConfig) -> logging.Handler:
    if config.file is None:
        return logging.StreamHandler(sys.stdout)

    config.file.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=config.file,
        maxBytes=config.rotation_size_mb * 1024 * 1024,
        backupCount=config.retention_count,
        encoding="utf-8",
    )


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog and the root handler from ``config``.

    Replaces any handlers already installed on the root logger. HTTP client
    and SQL engine loggers are held at WARNING unless DEBUG is requested.
    """
    log_level = getattr(logging, config.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = _build_handler(config)
    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    library_level = logging.DEBUG if log_level == logging.DEBUG else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    if config.format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.contextvars.merge_contextvars,
            add_correlation_id,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
