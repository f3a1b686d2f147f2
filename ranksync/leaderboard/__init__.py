"""Real-time leaderboard synchronization.

Keeps a displayed leaderboard current from a WebSocket push channel, with
exponential-backoff reconnects, rate-limit cooldowns, heartbeat-based
connection quality and an HTTP polling fallback that diffs snapshots.
"""

from ranksync.leaderboard.config import (
    SyncConfig,
    SyncParameters,
    ConnectionState,
    ConnectionQuality,
    MessageKind,
    EventSource,
    Timeframe,
)
from ranksync.leaderboard.models import (
    LeaderboardEntry,
    UpdateEvent,
    SessionState,
)
from ranksync.leaderboard.exceptions import (
    LeaderboardSyncError,
    MessageDecodeError,
    SnapshotFetchError,
    TransientFetchError,
    ChannelOpenError,
)
from ranksync.leaderboard.quality import classify_latency
from ranksync.leaderboard.reconciler import UpdateReconciler, SortField, sort_entries
from ranksync.leaderboard.api import SnapshotClient, BatchRequest, BatchResult
from ranksync.leaderboard.poller import FallbackPoller, diff_snapshot
from ranksync.leaderboard.reconnection import (
    ReconnectionPolicy,
    ReconnectAction,
    ReconnectDecision,
    is_rate_limited,
)
from ranksync.leaderboard.channel import ChannelState, WebSocketChannel
from ranksync.leaderboard.connection import ConnectionManager, SyncCallbacks
from ranksync.leaderboard.session import LeaderboardSession
from ranksync.leaderboard.rank_tracker import UserRankTracker
from ranksync.leaderboard.timers import AsyncioScheduler, TimerSlot


__all__ = [
    # Config
    "SyncConfig",
    "SyncParameters",
    "ConnectionState",
    "ConnectionQuality",
    "MessageKind",
    "EventSource",
    "Timeframe",
    # Models
    "LeaderboardEntry",
    "UpdateEvent",
    "SessionState",
    # Errors
    "LeaderboardSyncError",
    "MessageDecodeError",
    "SnapshotFetchError",
    "TransientFetchError",
    "ChannelOpenError",
    # Components
    "classify_latency",
    "UpdateReconciler",
    "SortField",
    "sort_entries",
    "SnapshotClient",
    "BatchRequest",
    "BatchResult",
    "FallbackPoller",
    "diff_snapshot",
    "ReconnectionPolicy",
    "ReconnectAction",
    "ReconnectDecision",
    "is_rate_limited",
    "ChannelState",
    "WebSocketChannel",
    "ConnectionManager",
    "SyncCallbacks",
    # Core
    "LeaderboardSession",
    "UserRankTracker",
    "AsyncioScheduler",
    "TimerSlot",
]
