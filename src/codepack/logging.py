from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

_LOGGING_CONFIGURED = False


def setup_logging(filename: str | Path | None = None, level: str = "INFO") -> structlog.BoundLogger:
    """Set up structured logging for the codepack package.

    The first call wins; later calls only return the logger. Use
    :func:`reconfigure_logging` to change the destination afterwards.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        level: Minimum level name (e.g. "INFO", "WARNING").

    Returns:
        A structlog logger instance configured for the codepack package.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if not _LOGGING_CONFIGURED:
        _configure(filename, level)
        _LOGGING_CONFIGURED = True

    return structlog.get_logger("codepack")


def reconfigure_logging(filename: str | Path | None = None, level: str = "INFO") -> structlog.BoundLogger:
    """Replace the current logging configuration.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        level: Minimum level name.

    Returns:
        The codepack logger.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    _configure(filename, level, force=True)
    _LOGGING_CONFIGURED = True
    return structlog.get_logger("codepack")


def _configure(filename: str | Path | None, level: str, *, force: bool = False) -> None:
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handlers: list[logging.Handler] = []
    if filename:
        handlers.append(logging.FileHandler(str(filename), encoding="utf-8"))
    else:
        handlers.append(logging.StreamHandler(sys.stderr))

    logging.basicConfig(
        level=numeric_level,
        handlers=handlers,
        format="%(message)s",
        force=force,
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


logger = setup_logging()
