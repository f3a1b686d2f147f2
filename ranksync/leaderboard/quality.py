"""Connection quality classification from heartbeat round-trip latency."""

from typing import Optional

from ranksync.leaderboard.config import ConnectionQuality

EXCELLENT_THRESHOLD_MS = 100
GOOD_THRESHOLD_MS = 300
DEGRADED_THRESHOLD_MS = 1000


def classify_latency(
    latency_ms: Optional[float], channel_open: bool = True
) -> ConnectionQuality:
    """Map a measured round-trip time to a quality label.

    No measurement yet, or a channel that is not open, reads as offline.
    """
    if latency_ms is None or not channel_open:
        return ConnectionQuality.OFFLINE
    if latency_ms < EXCELLENT_THRESHOLD_MS:
        return ConnectionQuality.EXCELLENT
    if latency_ms < GOOD_THRESHOLD_MS:
        return ConnectionQuality.GOOD
    if latency_ms < DEGRADED_THRESHOLD_MS:
        return ConnectionQuality.DEGRADED
    return ConnectionQuality.POOR
