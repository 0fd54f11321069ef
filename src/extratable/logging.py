"""Logging configuration for extratable.

The package logs through loguru and is disabled on import. Applications
(and the CLI) call :func:`configure_logging` to turn it on, choosing either
JSON lines for log collectors or human-readable colored output.
"""

import json
import logging
import sys
import traceback
from typing import Any

from loguru import logger

from extratable.config import get_settings


def _json_serializer(record: dict[str, Any]) -> str:
    """Serialize a log record to a single JSON object.

    Fields:
    - severity: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - message: The log message
    - time: ISO format timestamp

    Values bound with ``logger.bind`` are included at the top level.
    """
    level = record["level"].name
    severity_map = {
        "TRACE": "DEBUG",
        "SUCCESS": "INFO",
    }

    log_entry: dict[str, Any] = {
        "severity": severity_map.get(level, level),
        "message": record["message"],
        "time": record["time"].isoformat(),
        "logger": record["name"],
    }

    if record["exception"] is not None:
        exc_info = record["exception"]
        tb_str = None
        if exc_info.traceback:
            tb_str = "".join(
                traceback.format_exception(exc_info.type, exc_info.value, exc_info.traceback)
            )
        log_entry["exception"] = {
            "type": exc_info.type.__name__ if exc_info.type else None,
            "value": str(exc_info.value) if exc_info.value else None,
            "traceback": tb_str,
        }

    for key, value in record.get("extra", {}).items():
        if not key.startswith("_"):
            log_entry[key] = value

    return json.dumps(log_entry, default=str)


def _json_sink(message: Any) -> None:
    """Sink that writes serialized JSON to stderr."""
    sys.stderr.write(_json_serializer(message.record) + "\n")
    sys.stderr.flush()


def configure_logging(*, json_logs: bool | None = None, log_level: str | None = None) -> None:
    """Enable and configure loguru output for the engine.

    Args:
        json_logs: If True, emit one JSON object per line. Otherwise use
            human-readable colored output. Defaults to the ``json_logs`` setting.
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Defaults to the ``log_level`` setting.
    """
    settings = get_settings()
    if json_logs is None:
        json_logs = settings.json_logs
    if log_level is None:
        log_level = settings.log_level
    logger.remove()
    logger.enable("extratable")

    if json_logs:
        logger.add(
            _json_sink,
            level=log_level,
            format="{message}",
            backtrace=False,
            diagnose=False,
        )
    else:
        logger.add(
            sys.stderr,
            level=log_level,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level>"
                "{exception}"
            ),
            colorize=True,
        )

    _intercept_standard_logging(log_level)


class InterceptHandler(logging.Handler):
    """Route standard library log records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _intercept_standard_logging(log_level: str) -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=log_level, force=True)
