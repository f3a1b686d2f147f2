"""Logging Setup.

Installs one root handler for the client. JSON lines suit long-running
syncs whose output is shipped elsewhere; the console format is for watching
a session from a terminal. Both formats append the bound session context
and the sync fields that leaderboard modules pass through ``extra=``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from ranksync.logging_config.config import DEFAULT_LOGGING_CONFIG, LogFormat, LoggingConfig
from ranksync.logging_config.context import get_context_dict

# Record attributes set via ``extra=`` by the connection and reconnection code.
SYNC_FIELDS = ("close_code", "latency_ms", "attempt", "delay_ms", "event_kind")

NOISY_LOGGERS = ("asyncio", "websockets", "httpx", "httpcore")


def sync_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Sync-specific extras present on ``record``, in a fixed order."""
    return {key: getattr(record, key) for key in SYNC_FIELDS if hasattr(record, key)}


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: timestamp, level, logger, message, service, then caller details
    (optional), session context, sync fields and exception details.
    """

    def __init__(self, service_name: str = "ranksync", include_caller: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_caller = include_caller

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        if self.include_caller:
            payload.update(
                module=record.module, function=record.funcName, line=record.lineno
            )
        payload.update(get_context_dict())
        payload.update(sync_fields(record))

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """``HH:MM:SS.mmm LEVEL logger: message [key=value, ...]`` with a colored level."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        clock = _record_time(record).strftime("%H:%M:%S.%f")[:-3]

        fields = {**get_context_dict(), **sync_fields(record)}
        suffix = ""
        if fields:
            suffix = " [" + ", ".join(f"{k}={v}" for k, v in fields.items()) + "]"

        line = (
            f"{color}{clock} {record.levelname:8s}{self.RESET} "
            f"{record.name}: {record.getMessage()}{suffix}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def build_formatter(config: LoggingConfig) -> logging.Formatter:
    if config.format == LogFormat.JSON:
        return StructuredFormatter(
            service_name=config.service_name,
            include_caller=config.include_caller,
        )
    return ConsoleFormatter()


def configure_logging(
    config: Optional[LoggingConfig] = None, stream: Optional[TextIO] = None
) -> logging.Handler:
    """Replace the root handlers with a single ranksync handler.

    Args:
        config: Level and format. Build it with ``LoggingConfig.from_settings``
            to honour ``RANKSYNC_LOG_LEVEL`` / ``RANKSYNC_LOG_FORMAT``.
        stream: Output stream, stdout by default.

    Returns:
        The installed handler.
    """
    config = config or DEFAULT_LOGGING_CONFIG

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(build_formatter(config))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(config.level.value)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler
