"""Configuration for the leaderboard sync client."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional

from ranksync.settings import Settings


class ConnectionState(str, Enum):
    """Lifecycle states of a sync session's push channel."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    POLLING = "polling"


class ConnectionQuality(str, Enum):
    """Coarse health label derived from heartbeat round-trip latency."""
    EXCELLENT = "excellent"
    GOOD = "good"
    DEGRADED = "degraded"
    POOR = "poor"
    OFFLINE = "offline"


class MessageKind(str, Enum):
    """Kinds of messages a session can receive or synthesize."""
    SNAPSHOT_PUSH = "snapshot_push"
    RANK_CHANGE = "rank_change"
    NEW_ENTRY = "new_entry"
    SCORE_UPDATE = "score_update"
    CONTROL_CONNECTED = "connected"
    CONTROL_PONG = "pong"

    @property
    def is_update(self) -> bool:
        return self not in (MessageKind.CONTROL_CONNECTED, MessageKind.CONTROL_PONG)


class EventSource(str, Enum):
    """Where an update event came from."""
    CHANNEL = "channel"
    POLL = "poll"


class Timeframe(str, Enum):
    """Leaderboard timeframes."""
    ALL = "all"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# ── Default Constants ────────────────────────────────────────────────

DEFAULT_MODE = "global"
DEFAULT_LANGUAGE = "en"
DEFAULT_TEST_MODE = 60  # seconds, test duration assumed for new entrants
DEFAULT_HEARTBEAT_INTERVAL_MS = 30_000
DEFAULT_RATE_LIMIT_COOLDOWN_MS = 30_000
DEFAULT_HTTP_POLLING_INTERVAL_MS = 10_000
DEFAULT_MAX_RECONNECT_ATTEMPTS = 5
DEFAULT_BASE_RECONNECT_DELAY_MS = 1_000
DEFAULT_HISTORY_LIMIT = 50
DEFAULT_HIGHLIGHT_MS = 3_000
DEFAULT_SNAPSHOT_LIMIT = 50

RATE_LIMIT_CLOSE_CODE = 1008


@dataclass(frozen=True)
class SyncParameters:
    """The leaderboard scope a session is subscribed to."""

    mode: str = DEFAULT_MODE
    timeframe: Timeframe = Timeframe.ALL
    language: str = DEFAULT_LANGUAGE
    user_id: Optional[str] = None

    def replace(self, **changes: Any) -> "SyncParameters":
        if "timeframe" in changes:
            changes["timeframe"] = Timeframe(changes["timeframe"])
        return replace(self, **changes)

    def scope(self) -> dict[str, str]:
        """Scope filters as plain strings, for logging and event tagging."""
        return {
            "mode": self.mode,
            "timeframe": self.timeframe.value,
            "language": self.language,
        }

    def query_params(self) -> dict[str, str]:
        params = self.scope()
        if self.user_id:
            params["userId"] = self.user_id
        return params


@dataclass
class SyncConfig:
    """Caller-supplied configuration for one leaderboard sync session."""

    # Scope
    mode: str = DEFAULT_MODE
    timeframe: Timeframe = Timeframe.ALL
    language: str = DEFAULT_LANGUAGE
    user_id: Optional[str] = None

    # Behaviour flags
    enabled: bool = True
    enable_http_fallback: bool = False

    # Timing (milliseconds)
    rate_limit_cooldown_ms: int = DEFAULT_RATE_LIMIT_COOLDOWN_MS
    http_polling_interval_ms: int = DEFAULT_HTTP_POLLING_INTERVAL_MS
    heartbeat_interval_ms: int = DEFAULT_HEARTBEAT_INTERVAL_MS
    base_reconnect_delay_ms: int = DEFAULT_BASE_RECONNECT_DELAY_MS
    highlight_ms: int = DEFAULT_HIGHLIGHT_MS

    # Limits
    max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS
    history_limit: int = DEFAULT_HISTORY_LIMIT
    snapshot_limit: int = DEFAULT_SNAPSHOT_LIMIT
    default_test_mode: int = DEFAULT_TEST_MODE

    # Endpoints
    ws_url: str = "ws://localhost:5000/ws/leaderboard"
    api_base_url: str = "http://localhost:5000/api/leaderboard"
    snapshot_path: str = "/snapshot"
    batch_path: str = "/batch"
    request_timeout: float = 15.0

    def __post_init__(self) -> None:
        self.timeframe = Timeframe(self.timeframe)

    @property
    def parameters(self) -> SyncParameters:
        return SyncParameters(
            mode=self.mode,
            timeframe=self.timeframe,
            language=self.language,
            user_id=self.user_id,
        )

    @property
    def max_reconnect_delay_ms(self) -> int:
        """Backoff ceiling: the delay of the last budgeted attempt."""
        return self.base_reconnect_delay_ms * 2 ** (self.max_reconnect_attempts - 1)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "SyncConfig":
        """Build a config from environment settings, then apply overrides."""
        values: dict[str, Any] = {
            "ws_url": settings.ws_url,
            "api_base_url": settings.api_base_url,
            "snapshot_path": settings.snapshot_path,
            "batch_path": settings.batch_path,
            "request_timeout": settings.request_timeout,
            "snapshot_limit": settings.snapshot_limit,
            "heartbeat_interval_ms": settings.heartbeat_interval_ms,
            "rate_limit_cooldown_ms": settings.rate_limit_cooldown_ms,
            "http_polling_interval_ms": settings.http_polling_interval_ms,
            "enable_http_fallback": settings.enable_http_fallback,
        }
        values.update(overrides)
        return cls(**values)
