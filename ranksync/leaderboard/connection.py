"""Push-channel lifecycle management.

``ConnectionManager`` owns the channel handle and the heartbeat and reconnect
timers of one session. It opens channels, dispatches their messages, reacts to
closes and errors by consulting the ``ReconnectionPolicy``, and hands over to
the ``FallbackPoller`` when the policy escalates.

Channel callbacks never act directly. Each becomes a ``ChannelEvent`` tagged
with the channel's link number and is appended to a FIFO queue that is
drained sequentially, so a callback fired while another event is being
handled (for example an ``on_update`` handler that calls ``disconnect()``)
waits for the current transition to finish. Events tagged with a superseded
link are dropped.
"""

import inspect
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import urlencode

from ranksync.leaderboard.channel import Channel, ChannelFactory, ChannelState
from ranksync.leaderboard.config import (
    ConnectionQuality,
    MessageKind,
    SyncConfig,
    SyncParameters,
)
from ranksync.leaderboard.exceptions import ChannelOpenError, MessageDecodeError
from ranksync.leaderboard.models import SessionState, UpdateEvent
from ranksync.leaderboard.poller import FallbackPoller
from ranksync.leaderboard.protocol import decode_message, encode_ping, encode_subscribe
from ranksync.leaderboard.quality import classify_latency
from ranksync.leaderboard.reconciler import UpdateReconciler
from ranksync.leaderboard.reconnection import (
    ReconnectAction,
    ReconnectDecision,
    ReconnectionPolicy,
)
from ranksync.leaderboard.timers import Scheduler, TimerSlot
from ranksync.logging_config.context import SessionContext

logger = logging.getLogger(__name__)

PROGRAMMATIC_CLOSE_REASON = "client disconnect"


@dataclass
class SyncCallbacks:
    """Presentation-layer hooks. Each may be a plain function or a coroutine function."""

    on_update: Optional[Callable[[UpdateEvent], Any]] = None
    on_connect: Optional[Callable[[], Any]] = None
    on_disconnect: Optional[Callable[[], Any]] = None
    on_error: Optional[Callable[[BaseException], Any]] = None


@dataclass
class ChannelEvent:
    """One queued channel callback or poll delivery."""

    type: str  # open | message | close | error | update
    link: Optional[int] = None
    raw: Any = None
    code: Optional[int] = None
    reason: str = ""
    error: Optional[BaseException] = None
    update: Optional[UpdateEvent] = None


class _LinkListener:
    """Channel listener that tags every callback with its channel's link."""

    def __init__(self, manager: "ConnectionManager", link: int):
        self._manager = manager
        self._link = link

    def on_open(self) -> None:
        self._manager._enqueue(ChannelEvent("open", self._link))

    def on_message(self, raw: Any) -> None:
        self._manager._enqueue(ChannelEvent("message", self._link, raw=raw))

    def on_close(self, code: int, reason: str) -> None:
        self._manager._enqueue(ChannelEvent("close", self._link, code=code, reason=reason))

    def on_error(self, exc: BaseException) -> None:
        self._manager._enqueue(ChannelEvent("error", self._link, error=exc))


class ConnectionManager:
    """Drives one session's push channel, heartbeat, reconnects and fallback."""

    def __init__(
        self,
        state: SessionState,
        config: SyncConfig,
        scheduler: Scheduler,
        channel_factory: ChannelFactory,
        reconciler: UpdateReconciler,
        poller: Optional[FallbackPoller] = None,
        callbacks: Optional[SyncCallbacks] = None,
        log_context: Optional[Callable[[], SessionContext]] = None,
    ):
        self.state = state
        self.config = config
        self.policy = ReconnectionPolicy(state, config)
        self._scheduler = scheduler
        self._channel_factory = channel_factory
        self._reconciler = reconciler
        self._poller = poller
        self._callbacks = callbacks or SyncCallbacks()
        self._log_context = log_context or SessionContext

        self._channel: Optional[Channel] = None
        self._link = 0
        self._programmatic: set[int] = set()
        self._active = False
        self._last_ping_ms: Optional[int] = None

        self._heartbeat = TimerSlot(scheduler, "heartbeat")
        self._reconnect = TimerSlot(scheduler, "reconnect")

        self._queue: deque[ChannelEvent] = deque()
        self._draining = False

    # ── Properties ────────────────────────────────────────────────────

    @property
    def channel(self) -> Optional[Channel]:
        return self._channel

    @property
    def is_channel_open(self) -> bool:
        return self._channel is not None and self._channel.state == ChannelState.OPEN

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect.active

    @property
    def heartbeat_active(self) -> bool:
        return self._heartbeat.active

    # ── Public operations ─────────────────────────────────────────────

    def attach_poller(self, poller: FallbackPoller) -> None:
        self._poller = poller

    def connect(self) -> None:
        """Open a channel for the current parameters.

        No-op when the session is disabled or a channel is already open or
        opening. Never raises: a channel that cannot be constructed counts
        as a failed attempt.
        """
        if not self.config.enabled:
            logger.info("Leaderboard sync disabled, not connecting")
            return
        self._active = True
        if self._channel is not None:
            logger.debug("Channel already open or opening, connect() ignored")
            return

        self._reconnect.cancel()
        self.policy.on_connect()

        self._link += 1
        url = self.build_channel_url()
        logger.info("Connecting to %s", url, extra={"attempt": self.state.reconnect_attempt})
        try:
            self._channel = self._channel_factory(url, _LinkListener(self, self._link))
            self._channel.open()
        except Exception as exc:
            self._channel = None
            logger.error("Failed to create channel: %s", exc)
            self._record_error(ChannelOpenError(f"Failed to create channel: {exc}"))
            self._act(self.policy.on_connect_failed())

    def disconnect(self) -> None:
        """Tear down timers, the poller and the channel; no retry follows."""
        self._active = False
        self._heartbeat.cancel()
        self._reconnect.cancel()
        if self._poller is not None:
            self._poller.stop()

        channel, self._channel = self._channel, None
        if channel is not None:
            self._programmatic.add(self._link)
            channel.close(1000, PROGRAMMATIC_CLOSE_REASON)

        self._last_ping_ms = None
        self.policy.on_disconnect()
        logger.info("Disconnected")

    def resume(self) -> None:
        """Visibility or network regained: reconnect now if the channel is down."""
        if not self._active or self._channel is not None:
            return
        logger.info("Resuming, reconnecting immediately")
        self.policy.on_resume()
        self._reconnect.cancel()
        self.connect()

    def update_parameters(self, **changes: Any) -> bool:
        """Change the subscription scope. Returns True if anything changed.

        An open channel is resubscribed in place; the poll baseline is always
        dropped on change.
        """
        parameters = self.state.parameters.replace(**changes)
        if not self.state.update_parameters(parameters):
            return False

        logger.info("Parameters changed to %s", parameters.scope())
        if self.is_channel_open:
            self._channel.send(encode_subscribe(parameters))
        return True

    def build_channel_url(self, parameters: Optional[SyncParameters] = None) -> str:
        params = (parameters or self.state.parameters).query_params()
        separator = "&" if "?" in self.config.ws_url else "?"
        return f"{self.config.ws_url}{separator}{urlencode(params)}"

    def deliver(self, event: UpdateEvent) -> None:
        """Queue an update event, e.g. one synthesized by the poller."""
        self._enqueue(ChannelEvent("update", update=event))

    # ── Event queue ───────────────────────────────────────────────────

    def _enqueue(self, event: ChannelEvent) -> None:
        self._queue.append(event)
        if self._draining:
            return
        self._draining = True
        try:
            with self._log_context():
                while self._queue:
                    self._dispatch(self._queue.popleft())
        finally:
            self._draining = False

    def _dispatch(self, event: ChannelEvent) -> None:
        if event.type == "update":
            self._apply_update(event.update)
            return

        if event.type == "close" and event.link in self._programmatic:
            self._programmatic.discard(event.link)
            logger.debug("Programmatic close completed (code=%s)", event.code)
            self._fire("on_disconnect")
            return

        if event.link != self._link or self._channel is None:
            logger.debug("Ignoring %s from superseded channel %s", event.type, event.link)
            return

        handler = {
            "open": self._handle_open,
            "message": self._handle_message,
            "close": self._handle_close,
            "error": self._handle_error,
        }[event.type]
        handler(event)

    # ── Channel event handlers ────────────────────────────────────────

    def _handle_open(self, event: ChannelEvent) -> None:
        self.policy.on_open()
        if self._poller is not None and self._poller.is_running:
            self._poller.stop()

        parameters = self.state.parameters
        if parameters.user_id:
            self._channel.send(encode_subscribe(parameters))

        self._last_ping_ms = None
        self._heartbeat.schedule_interval(self.config.heartbeat_interval_ms, self._send_ping)
        logger.info("Channel connected")
        self._fire("on_connect")

    def _handle_message(self, event: ChannelEvent) -> None:
        now = self._scheduler.now()
        try:
            message = decode_message(event.raw, now)
        except MessageDecodeError as exc:
            logger.warning("Dropping malformed message: %s", exc)
            return
        if message is None:
            logger.debug("Ignoring message of unhandled type")
            return

        if message.kind == MessageKind.CONTROL_CONNECTED:
            logger.info("Server acknowledged connection (client_id=%s)", message.client_id)
        elif message.kind == MessageKind.CONTROL_PONG:
            self._handle_pong(now)
        elif message.kind.is_update and message.event is not None:
            self._apply_update(message.event)

    def _handle_pong(self, now: int) -> None:
        if self._last_ping_ms is None:
            return
        latency = now - self._last_ping_ms
        self.state.latency_ms = latency
        self.state.connection_quality = classify_latency(latency, self.is_channel_open)
        logger.debug(
            "Heartbeat round trip %dms (%s)",
            latency,
            self.state.connection_quality.value,
            extra={"latency_ms": latency},
        )

    def _handle_close(self, event: ChannelEvent) -> None:
        self._channel = None
        self._heartbeat.cancel()
        self._last_ping_ms = None
        logger.info(
            "Channel closed (code=%s, reason=%r)",
            event.code,
            event.reason,
            extra={"close_code": event.code},
        )
        self._fire("on_disconnect")
        self._act(self.policy.on_close(event.code, event.reason))

    def _handle_error(self, event: ChannelEvent) -> None:
        logger.error("Channel error: %s", event.error)
        self._record_error(event.error)

    # ── Helpers ───────────────────────────────────────────────────────

    def _apply_update(self, event: UpdateEvent) -> None:
        self.state.record(event)
        self._reconciler.apply(event)
        logger.debug(
            "Applied %s for %s",
            event.kind.value,
            event.entry.user_id,
            extra={"event_kind": event.kind.value},
        )
        self._fire("on_update", event)

    def _record_error(self, exc: BaseException) -> None:
        self.state.last_error = exc
        if not self.state.is_using_fallback:
            self.state.connection_quality = ConnectionQuality.POOR
        self._fire("on_error", exc)

    def _act(self, decision: ReconnectDecision) -> None:
        if decision.action == ReconnectAction.FALLBACK:
            if self._poller is not None:
                self._poller.start()
            else:
                logger.warning("No snapshot client configured, cannot poll")
        self._reconnect.schedule(decision.delay_ms, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        with self._log_context():
            self.connect()

    def _send_ping(self) -> None:
        if not self.is_channel_open:
            return
        self._last_ping_ms = self._scheduler.now()
        self._channel.send(encode_ping())

    def _fire(self, name: str, *args: Any) -> None:
        callback = getattr(self._callbacks, name)
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                self._scheduler.spawn(result)
        except Exception as exc:
            logger.error("%s callback error: %s", name, exc)
