"""structlog configuration for the coordinator.

One processor chain feeds either a coloured console renderer (development)
or JSON lines (``APP_ENV=production`` or ``json_output=True``).  stdlib
``logging`` records from uvicorn, httpx and aiosqlite go through the same
chain via ``ProcessorFormatter``.

Request-scoped fields (``request_id``, ``session_id``) are carried in
structlog contextvars: :func:`bind_request_context` is called by the
request middleware and the session routes, and every log line emitted
while the request is handled picks them up.
"""

import logging
import os
import sys
from collections.abc import Iterable

import structlog

# Client libraries that log every connection at INFO/DEBUG.
NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "aiosqlite")


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> structlog.BoundLogger:
    """Configure structlog and the stdlib bridge.

    Args:
        log_level: Minimum level for structlog and the root logger.
        json_output: Force JSON output regardless of ``APP_ENV``.
        quiet_loggers: stdlib loggers pinned to WARNING so the per-poll
            upstream fetches do not flood the output.

    Returns:
        A configured structlog BoundLogger.
    """
    level = log_level.upper()
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[*shared_processors, renderer],
        # session_cache_hit is DEBUG and fires on every poll; filter before processing.
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared_processors,
                renderer,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)


def bind_request_context(**fields: object) -> None:
    """Attach *fields* to every log line emitted for the current request."""
    structlog.contextvars.bind_contextvars(**fields)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
