"""
primbench Logging Configuration
===============================
Centralized logging configuration using loguru.

Provides:
  - configure_logging(): Setup function called by the CLI at startup
  - JSON log format when LOG_FORMAT=json environment variable is set

Logs always go to stderr (or a file) so that report rows on stdout stay
machine-parseable.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from loguru import logger

_LEVEL: Optional[str] = None


def configure_logging(
    level: Optional[str] = "INFO",
    json_format: Optional[bool] = None,
    *,
    sink: Optional[str] = None,
) -> None:
    """
    Configure loguru logging for primbench.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: If True, use JSON format. If None, check LOG_FORMAT env var.
        sink: Optional file path for log output. If None, logs to stderr.

    Environment:
        LOG_FORMAT: Set to "json" to enable JSON formatted logs.
        LOG_LEVEL: Override log level if not specified.
    """
    global _LEVEL

    if json_format is None:
        json_format = os.environ.get("LOG_FORMAT", "").lower() == "json"

    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO")

    logger.remove()

    log_sink = sink if sink else sys.stderr

    if json_format:
        logger.add(
            log_sink,
            level=level.upper(),
            serialize=True,
            backtrace=False,
            diagnose=False,
        )
    else:
        format_str = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )
        logger.add(
            log_sink,
            level=level.upper(),
            format=format_str,
            colorize=sink is None,
            backtrace=True,
            diagnose=False,
        )

    _intercept_standard_logging()

    _LEVEL = level.upper()
    logger.debug(f"Logging configured: level={level}, json_format={json_format}")


def _intercept_standard_logging() -> None:
    """Redirect stdlib logging records (e.g. from concurrent.futures) to loguru."""

    class InterceptHandler(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            try:
                log_level = logger.level(record.levelname).name
            except ValueError:
                log_level = record.levelno

            frame, depth = logging.currentframe(), 2
            while frame and frame.f_code.co_filename == logging.__file__:
                frame = frame.f_back
                depth += 1

            logger.opt(depth=depth, exception=record.exc_info).log(
                log_level, record.getMessage()
            )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


def current_level() -> Optional[str]:
    """Level passed to the last configure_logging call, if any."""
    return _LEVEL


__all__ = ["configure_logging", "current_level", "logger"]
