"""ranksync - real-time leaderboard synchronization client."""

__version__ = "0.1.0"
