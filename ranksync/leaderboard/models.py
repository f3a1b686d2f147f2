"""Data models for the leaderboard sync client."""

import math
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from ranksync.leaderboard.config import (
    ConnectionQuality,
    ConnectionState,
    DEFAULT_HISTORY_LIMIT,
    EventSource,
    MessageKind,
    SyncParameters,
)
from ranksync.leaderboard.exceptions import MessageDecodeError


@dataclass
class LeaderboardEntry:
    """One participant's leaderboard row. Identity is ``user_id``."""

    user_id: str
    username: str = ""
    rank: int = 1
    wpm: float = 0.0
    accuracy: float = 0.0
    mode: Optional[int] = None
    avatar_color: Optional[str] = None
    is_verified: bool = False
    old_rank: Optional[int] = None
    total_tests: Optional[int] = None

    @classmethod
    def from_api(cls, data: Any) -> "LeaderboardEntry":
        """Build an entry from a camelCase wire object.

        Raises:
            MessageDecodeError: if the object is not a mapping, lacks a
                user id, or carries out-of-range metrics.
        """
        if not isinstance(data, dict):
            raise MessageDecodeError("entry must be an object")
        user_id = data.get("userId")
        if user_id in (None, ""):
            raise MessageDecodeError("entry is missing userId")

        try:
            rank = int(data.get("rank", 0))
            wpm = float(data.get("wpm", 0))
            accuracy = float(data.get("accuracy", 0))
            mode = int(data["mode"]) if data.get("mode") is not None else None
            old_rank = int(data["oldRank"]) if data.get("oldRank") is not None else None
            total_tests = (
                int(data["totalTests"]) if data.get("totalTests") is not None else None
            )
        except (TypeError, ValueError, OverflowError) as exc:
            raise MessageDecodeError(f"entry {user_id} has invalid metrics: {exc}") from exc

        if not (math.isfinite(wpm) and math.isfinite(accuracy)):
            raise MessageDecodeError(f"entry {user_id} has non-finite metrics")

        if rank < 1:
            raise MessageDecodeError(f"entry {user_id} has invalid rank {rank}")
        if wpm < 0:
            raise MessageDecodeError(f"entry {user_id} has negative wpm")
        if not 0 <= accuracy <= 100:
            raise MessageDecodeError(f"entry {user_id} has accuracy outside 0-100")

        return cls(
            user_id=str(user_id),
            username=str(data.get("username") or ""),
            rank=rank,
            wpm=wpm,
            accuracy=accuracy,
            mode=mode,
            avatar_color=data.get("avatarColor"),
            is_verified=bool(data.get("isVerified", False)),
            old_rank=old_rank,
            total_tests=total_tests,
        )

    def to_dict(self) -> dict:
        """Convert to the camelCase wire shape, omitting unset optionals."""
        out: dict[str, Any] = {
            "userId": self.user_id,
            "username": self.username,
            "rank": self.rank,
            "wpm": self.wpm,
            "accuracy": self.accuracy,
            "isVerified": self.is_verified,
        }
        optional = {
            "mode": self.mode,
            "avatarColor": self.avatar_color,
            "oldRank": self.old_rank,
            "totalTests": self.total_tests,
        }
        out.update({k: v for k, v in optional.items() if v is not None})
        return out

    def same_standing(self, other: "LeaderboardEntry") -> bool:
        """Whether rank, wpm and accuracy all match ``other``."""
        return (
            self.rank == other.rank
            and self.wpm == other.wpm
            and self.accuracy == other.accuracy
        )

    def copy(self, **changes: Any) -> "LeaderboardEntry":
        return replace(self, **changes)


@dataclass
class UpdateEvent:
    """A single leaderboard change, pushed by the channel or synthesized by polling."""

    kind: MessageKind
    entry: LeaderboardEntry
    mode: str
    timeframe: str
    language: str
    timestamp: int  # epoch ms
    source: EventSource = EventSource.CHANNEL

    @property
    def is_new_entry(self) -> bool:
        return self.kind == MessageKind.NEW_ENTRY

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "mode": self.mode,
            "timeframe": self.timeframe,
            "language": self.language,
            "entry": self.entry.to_dict(),
            "timestamp": self.timestamp,
            "source": self.source.value,
        }


@dataclass
class SessionState:
    """Observable state of one sync session.

    ``history`` keeps the most recent update events, oldest dropped first.
    ``baseline`` is the last polled snapshot keyed by user id and is only
    read and written by the fallback poller.
    """

    parameters: SyncParameters = field(default_factory=SyncParameters)
    history_limit: int = DEFAULT_HISTORY_LIMIT
    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    connection_quality: ConnectionQuality = ConnectionQuality.OFFLINE
    reconnect_attempt: int = 0
    is_using_fallback: bool = False
    baseline: dict[str, LeaderboardEntry] = field(default_factory=dict)
    last_update: Optional[UpdateEvent] = None
    last_error: Optional[BaseException] = None
    latency_ms: Optional[float] = None
    history: deque = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.history = deque(maxlen=self.history_limit)

    @property
    def is_connected(self) -> bool:
        return self.connection_state == ConnectionState.CONNECTED

    @property
    def is_reconnecting(self) -> bool:
        return self.connection_state == ConnectionState.RECONNECTING

    def record(self, event: UpdateEvent) -> None:
        """Append an event to the bounded history."""
        self.history.append(event)
        self.last_update = event

    def update_parameters(self, parameters: SyncParameters) -> bool:
        """Swap in new parameters. Returns True (and drops the baseline) if they changed."""
        if parameters == self.parameters:
            return False
        self.parameters = parameters
        self.baseline = {}
        return True

    def to_dict(self) -> dict:
        """Status snapshot for presentation or diagnostics."""
        return {
            "parameters": {**self.parameters.scope(), "userId": self.parameters.user_id},
            "connection_state": self.connection_state.value,
            "connection_quality": self.connection_quality.value,
            "reconnect_attempt": self.reconnect_attempt,
            "is_using_fallback": self.is_using_fallback,
            "latency_ms": self.latency_ms,
            "history_size": len(self.history),
            "baseline_size": len(self.baseline),
            "last_update": self.last_update.to_dict() if self.last_update else None,
            "last_error": str(self.last_error) if self.last_error else None,
        }
