"""Structured logging with structlog.

Every stage runs inside a tracked pipeline run; ``bind_run_id`` puts the run
id and stage name on each line emitted while it is active.
"""
import logging
import sys

import structlog

# Chatty third-party loggers kept at WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "trafilatura", "aiosqlite")


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structlog. ``log_format`` is ``json`` or ``console``."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def bind_run_id(run_id: int, pipeline: str) -> None:
    structlog.contextvars.bind_contextvars(run_id=run_id, pipeline=pipeline)


def unbind_run_id() -> None:
    structlog.contextvars.unbind_contextvars("run_id", "pipeline")
