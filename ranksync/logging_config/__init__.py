"""Structured Logging & Session Context.

Provides structured JSON logging and session-scoped context binding
for the ranksync client.
"""

from ranksync.logging_config.config import LogFormat, LoggingConfig, LogLevel
from ranksync.logging_config.context import SessionContext, generate_session_id
from ranksync.logging_config.setup import configure_logging

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "SessionContext",
    "configure_logging",
    "generate_session_id",
]
