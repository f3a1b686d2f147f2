"""Resilience Patterns.

Backoff computation and retry helpers shared by the reconnection policy
and the snapshot API client.
"""

from .config import (
    RetryStrategy,
    RetryConfig,
)
from .retry import (
    MaxRetriesExceeded,
    compute_delay,
    retry,
)

__all__ = [
    "RetryStrategy",
    "RetryConfig",
    "MaxRetriesExceeded",
    "compute_delay",
    "retry",
]
