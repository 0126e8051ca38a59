"""Structured logging setup using structlog."""

import logging

import structlog

from src.config import settings


def configure_logging(level: str | None = None, *, json_output: bool | None = None) -> None:
    """Configure structlog processors and the minimum log level.

    Args:
        level: Log level name (defaults to settings.LOG_LEVEL).
        json_output: Render JSON lines instead of console output
            (defaults to settings.LOG_JSON).
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    numeric_level = logging.getLevelName(level_name)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    use_json = settings.LOG_JSON if json_output is None else json_output

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )
