"""Logging Configuration.

Log levels, output formats and the config object consumed by
``configure_logging``.
"""

from dataclasses import dataclass
from enum import Enum

from ranksync.settings import Settings


class LogLevel(str, Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output format."""
    JSON = "json"
    CONSOLE = "console"


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    include_caller: bool = True
    service_name: str = "ranksync"

    @classmethod
    def from_settings(cls, settings: Settings, verbose: bool = False) -> "LoggingConfig":
        """Level and format from settings; ``verbose`` forces debug console output.

        Unknown values fall back to the defaults.
        """
        if verbose:
            return cls(level=LogLevel.DEBUG, format=LogFormat.CONSOLE)

        level = settings.log_level.upper()
        fmt = settings.log_format.lower()
        return cls(
            level=LogLevel(level) if level in LogLevel.__members__ else LogLevel.INFO,
            format=LogFormat(fmt) if fmt in {f.value for f in LogFormat} else LogFormat.JSON,
        )


DEFAULT_LOGGING_CONFIG = LoggingConfig()
