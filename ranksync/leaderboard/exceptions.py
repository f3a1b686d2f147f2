"""Exception hierarchy for the leaderboard sync client.

None of these escape the session's public entry points; they travel
between internal layers and end up logged, recorded on the session
state, or handed to the ``on_error`` callback.
"""

from typing import Optional


class LeaderboardSyncError(Exception):
    """Base exception for all leaderboard sync errors."""


class MessageDecodeError(LeaderboardSyncError):
    """Raised when a channel payload or entry cannot be decoded."""

    def __init__(self, message: str, payload: Optional[str] = None):
        super().__init__(message)
        self.payload = payload


class SnapshotFetchError(LeaderboardSyncError):
    """Raised when a snapshot or batch request fails without hope of retry."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return False


class TransientFetchError(SnapshotFetchError):
    """Raised for server errors, transport errors, and malformed bodies."""

    @property
    def retryable(self) -> bool:
        return True


class ChannelOpenError(LeaderboardSyncError):
    """Raised when a push channel cannot even be constructed."""
