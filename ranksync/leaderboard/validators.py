"""Request parameter sanitisation for the leaderboard HTTP API."""

from typing import Any, Optional

from ranksync.leaderboard.config import DEFAULT_LANGUAGE, Timeframe

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
DEFAULT_RANGE = 5
MAX_RANGE = 20
MAX_LANGUAGE_LENGTH = 5


def validate_timeframe(timeframe: Any) -> Timeframe:
    """Return a known timeframe, falling back to ``all``."""
    try:
        return Timeframe(timeframe)
    except ValueError:
        return Timeframe.ALL


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def validate_limit(limit: Any) -> int:
    """Clamp a page size to 1..100; missing or zero means 20."""
    num = _as_int(limit)
    if not num:
        num = DEFAULT_LIMIT
    return max(1, min(MAX_LIMIT, num))


def validate_offset(offset: Any) -> int:
    num = _as_int(offset) or 0
    return max(0, num)


def validate_range(value: Any) -> int:
    """Clamp an around-me window to 1..20; missing means 5."""
    num = _as_int(value)
    if not num:
        return DEFAULT_RANGE
    return max(1, min(MAX_RANGE, num))


def normalize_language(language: Any) -> str:
    if not language or not isinstance(language, str):
        return DEFAULT_LANGUAGE
    return language.lower()[:MAX_LANGUAGE_LENGTH]
