"""Reconnection policy for the push channel.

A small state machine over ``SessionState``: it decides whether a dropped
channel is retried with exponential backoff, parked behind a rate-limit
cooldown, or escalated to HTTP polling. It owns ``connection_state`` and
``reconnect_attempt``; timers and side effects stay with the connection
manager, which acts on the returned ``ReconnectDecision``.

Transition table (state x event -> next state):

    ============== ================ ==============
    state          event            next
    ============== ================ ==============
    disconnected   connect          connecting
    failed         connect          connecting
    reconnecting   connect          connecting
    connecting     open             connected
    polling        open             connected
    connected      close            reconnecting
    connecting     close            reconnecting
    failed         close            reconnecting
    any            rate_limited     reconnecting
    connecting     connect_failed   failed
    reconnecting   connect_failed   failed
    disconnected   connect_failed   failed
    connecting     exhausted        polling
    connected      exhausted        polling
    failed         exhausted        polling
    reconnecting   exhausted        polling
    any            disconnect       disconnected
    ============== ================ ==============

Polling is sticky: while the fallback is active, ``connect``, ``close``,
``rate_limited`` and ``connect_failed`` leave the state at ``polling``; only
a successful ``open`` or an explicit ``disconnect`` leaves it.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ranksync.leaderboard.config import (
    ConnectionQuality,
    ConnectionState,
    RATE_LIMIT_CLOSE_CODE,
    SyncConfig,
)
from ranksync.leaderboard.models import SessionState
from ranksync.resilience import RetryConfig, RetryStrategy, compute_delay

logger = logging.getLogger(__name__)

RATE_LIMIT_REASON = re.compile(r"rate limit", re.IGNORECASE)


class PolicyEvent(str, Enum):
    """Inputs to the reconnection state machine."""
    CONNECT = "connect"
    OPEN = "open"
    CLOSE = "close"
    RATE_LIMITED = "rate_limited"
    CONNECT_FAILED = "connect_failed"
    EXHAUSTED = "exhausted"
    DISCONNECT = "disconnect"


class ReconnectAction(str, Enum):
    """What the connection manager should do next."""
    RETRY = "retry"
    FALLBACK = "fallback"


S = ConnectionState
E = PolicyEvent

TRANSITIONS: dict[tuple[ConnectionState, PolicyEvent], ConnectionState] = {
    (S.DISCONNECTED, E.CONNECT): S.CONNECTING,
    (S.FAILED, E.CONNECT): S.CONNECTING,
    (S.RECONNECTING, E.CONNECT): S.CONNECTING,
    (S.CONNECTING, E.OPEN): S.CONNECTED,
    (S.POLLING, E.OPEN): S.CONNECTED,
    (S.CONNECTED, E.CLOSE): S.RECONNECTING,
    (S.CONNECTING, E.CLOSE): S.RECONNECTING,
    (S.FAILED, E.CLOSE): S.RECONNECTING,
    (S.CONNECTING, E.CONNECT_FAILED): S.FAILED,
    (S.RECONNECTING, E.CONNECT_FAILED): S.FAILED,
    (S.DISCONNECTED, E.CONNECT_FAILED): S.FAILED,
    (S.CONNECTING, E.EXHAUSTED): S.POLLING,
    (S.CONNECTED, E.EXHAUSTED): S.POLLING,
    (S.FAILED, E.EXHAUSTED): S.POLLING,
    (S.RECONNECTING, E.EXHAUSTED): S.POLLING,
}
for _state in ConnectionState:
    TRANSITIONS[(_state, E.DISCONNECT)] = S.DISCONNECTED
    if _state != S.POLLING:
        TRANSITIONS[(_state, E.RATE_LIMITED)] = S.RECONNECTING
TRANSITIONS[(S.POLLING, E.CONNECT)] = S.POLLING
TRANSITIONS[(S.POLLING, E.CLOSE)] = S.POLLING
TRANSITIONS[(S.POLLING, E.RATE_LIMITED)] = S.POLLING
TRANSITIONS[(S.POLLING, E.CONNECT_FAILED)] = S.POLLING


@dataclass(frozen=True)
class ReconnectDecision:
    """The policy's verdict after a failure."""

    action: ReconnectAction
    delay_ms: float = 0.0
    rate_limited: bool = False


def is_rate_limited(code: Optional[int], reason: Optional[str]) -> bool:
    """Close code 1008 or a reason mentioning "rate limit" signals throttling."""
    return code == RATE_LIMIT_CLOSE_CODE or bool(RATE_LIMIT_REASON.search(reason or ""))


class ReconnectionPolicy:
    """Backoff, cooldown and fallback decisions for one session."""

    def __init__(self, state: SessionState, config: SyncConfig):
        self._state = state
        self._config = config
        self._backoff = RetryConfig(
            max_retries=config.max_reconnect_attempts,
            base_delay=config.base_reconnect_delay_ms,
            max_delay=config.max_reconnect_delay_ms,
            jitter_max=0.0,
            strategy=RetryStrategy.EXPONENTIAL,
        )

    @property
    def attempt(self) -> int:
        return self._state.reconnect_attempt

    @property
    def max_attempts(self) -> int:
        return self._config.max_reconnect_attempts

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based): 1s, 2s, 4s, 8s, 16s, 16s..."""
        return compute_delay(max(attempt, 1) - 1, self._backoff)

    # ── Lifecycle inputs ──────────────────────────────────────────────

    def on_connect(self) -> None:
        self._transition(E.CONNECT)
        if self._state.connection_state != S.POLLING:
            self._state.connection_quality = ConnectionQuality.OFFLINE

    def on_open(self) -> None:
        self._state.reconnect_attempt = 0
        self._transition(E.OPEN)
        self._state.connection_quality = ConnectionQuality.GOOD

    def on_disconnect(self) -> None:
        self._transition(E.DISCONNECT)
        self._state.connection_quality = ConnectionQuality.OFFLINE

    def on_resume(self) -> None:
        """Visibility or network regained: start a fresh retry budget."""
        self._state.reconnect_attempt = 0

    def on_close(self, code: Optional[int], reason: Optional[str]) -> ReconnectDecision:
        """Decide what follows a non-programmatic close."""
        if is_rate_limited(code, reason):
            self._state.reconnect_attempt = 0
            if self._transition(E.RATE_LIMITED) != S.POLLING:
                self._state.connection_quality = ConnectionQuality.POOR
            logger.warning(
                "Rate limited (code=%s), retrying in %dms",
                code,
                self._config.rate_limit_cooldown_ms,
                extra={"close_code": code, "delay_ms": self._config.rate_limit_cooldown_ms},
            )
            return ReconnectDecision(
                ReconnectAction.RETRY,
                self._config.rate_limit_cooldown_ms,
                rate_limited=True,
            )
        return self._on_failure(E.CLOSE)

    def on_connect_failed(self) -> ReconnectDecision:
        """Decide what follows a channel that could not even be constructed."""
        self._transition(E.CONNECT_FAILED)
        return self._on_failure(E.CLOSE)

    # ── Internals ─────────────────────────────────────────────────────

    def _on_failure(self, event: PolicyEvent) -> ReconnectDecision:
        cooldown = self._config.rate_limit_cooldown_ms

        if self._state.connection_state == S.POLLING:
            # Background attempt failed; keep polling and try again later
            self._state.reconnect_attempt = 0
            logger.info("Background reconnect failed, next attempt in %dms", cooldown)
            return ReconnectDecision(ReconnectAction.RETRY, cooldown)

        attempt = min(self._state.reconnect_attempt + 1, self.max_attempts)
        self._state.reconnect_attempt = attempt

        if attempt >= self.max_attempts and self._config.enable_http_fallback:
            self._state.reconnect_attempt = 0
            self._transition(E.EXHAUSTED)
            logger.warning(
                "Max reconnection attempts reached, falling back to HTTP polling",
                extra={"attempt": attempt, "delay_ms": cooldown},
            )
            return ReconnectDecision(ReconnectAction.FALLBACK, cooldown)

        self._transition(event)
        delay = self.backoff_delay(attempt)
        logger.info(
            "Reconnecting in %dms (attempt %d/%d)",
            delay,
            attempt,
            self.max_attempts,
            extra={"attempt": attempt, "delay_ms": delay},
        )
        return ReconnectDecision(ReconnectAction.RETRY, delay)

    def _transition(self, event: PolicyEvent) -> ConnectionState:
        current = self._state.connection_state
        nxt = TRANSITIONS.get((current, event))
        if nxt is None:
            logger.debug("No transition for %s on %s", current.value, event.value)
            return current
        if nxt != current:
            logger.debug("State %s -> %s on %s", current.value, nxt.value, event.value)
        self._state.connection_state = nxt
        return nxt
