"""WebSocket push channel.

A ``Channel`` is one connection attempt: it is opened once, reports its
lifecycle to a listener exactly once per transition, and is never reused.
The connection manager builds a fresh channel for every (re)connect.

Close reporting always ends with exactly one ``on_close(code, reason)``:

    - normal or abnormal close -> the close frame's code and reason
      (1006 when no close frame was received);
    - HTTP 429 during the handshake -> 1008 "rate limit";
    - handshake, DNS or socket failure -> ``on_error`` then 1006;
    - ``close()`` before the handshake completes -> the requested code.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Union

import websockets
from websockets.exceptions import (
    ConnectionClosed,
    InvalidHandshake,
    InvalidStatus,
    InvalidURI,
)

from ranksync.leaderboard.config import RATE_LIMIT_CLOSE_CODE
from ranksync.leaderboard.timers import Scheduler

logger = logging.getLogger(__name__)

ABNORMAL_CLOSE_CODE = 1006
NORMAL_CLOSE_CODE = 1000
HTTP_TOO_MANY_REQUESTS = 429


class ChannelState(str, Enum):
    """Lifecycle of a single channel instance."""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ChannelListener(Protocol):
    def on_open(self) -> None: ...

    def on_message(self, raw: Union[str, bytes]) -> None: ...

    def on_close(self, code: int, reason: str) -> None: ...

    def on_error(self, exc: BaseException) -> None: ...


class Channel(Protocol):
    """What the connection manager needs from a push channel."""

    state: ChannelState

    def open(self) -> None: ...

    def send(self, text: str) -> None: ...

    def close(self, code: int = NORMAL_CLOSE_CODE, reason: str = "") -> None: ...


ChannelFactory = Callable[[str, ChannelListener], Channel]


class WebSocketChannel:
    """Push channel over a ``websockets`` client connection.

    Protocol-level pings are disabled; liveness is measured with the
    application-level ``ping``/``pong`` heartbeat instead.
    """

    def __init__(
        self,
        url: str,
        listener: ChannelListener,
        scheduler: Scheduler,
        connect: Optional[Callable[..., Any]] = None,
    ):
        self.url = url
        self.state = ChannelState.CONNECTING
        self._listener = listener
        self._scheduler = scheduler
        self._connect = connect or websockets.connect
        self._ws = None
        self._task = None
        self._close_reported = False

    def open(self) -> None:
        if self._task is not None or self.state != ChannelState.CONNECTING:
            return
        self._task = self._scheduler.spawn(self._run())

    def send(self, text: str) -> None:
        """Queue ``text`` for sending. Dropped silently unless the channel is open."""
        if self.state != ChannelState.OPEN or self._ws is None:
            logger.debug("Channel not open, dropping outbound message")
            return
        self._scheduler.spawn(self._send(text))

    def close(self, code: int = NORMAL_CLOSE_CODE, reason: str = "") -> None:
        if self.state in (ChannelState.CLOSING, ChannelState.CLOSED):
            return

        if self.state == ChannelState.CONNECTING:
            # Handshake not finished: abandon it and report the close now
            self.state = ChannelState.CLOSED
            if self._task is not None:
                self._task.cancel()
            self._report_close(code, reason)
            return

        self.state = ChannelState.CLOSING
        self._scheduler.spawn(self._ws.close(code, reason))

    async def _send(self, text: str) -> None:
        try:
            await self._ws.send(text)
        except ConnectionClosed:
            logger.debug("Send skipped, connection already closed")

    async def _run(self) -> None:
        code, reason = ABNORMAL_CLOSE_CODE, ""
        try:
            async with self._connect(self.url, ping_interval=None) as ws:
                self._ws = ws
                if self.state == ChannelState.CONNECTING:
                    self.state = ChannelState.OPEN
                    self._listener.on_open()
                try:
                    async for raw in ws:
                        self._listener.on_message(raw)
                except ConnectionClosed as exc:
                    code, reason = _close_details(exc)
                else:
                    code = ws.close_code or ABNORMAL_CLOSE_CODE
                    reason = ws.close_reason or ""
        except InvalidStatus as exc:
            status = exc.response.status_code
            if status == HTTP_TOO_MANY_REQUESTS:
                logger.warning("Handshake rejected with HTTP 429")
                code, reason = RATE_LIMIT_CLOSE_CODE, "rate limit"
            else:
                logger.error("Handshake rejected with HTTP %d", status)
                self._listener.on_error(exc)
        except (InvalidHandshake, InvalidURI, OSError, asyncio.TimeoutError) as exc:
            logger.error("Channel connection failed: %s", exc)
            self._listener.on_error(exc)
        except asyncio.CancelledError:
            code, reason = NORMAL_CLOSE_CODE, "cancelled"
            raise
        finally:
            self._ws = None
            self.state = ChannelState.CLOSED
            self._report_close(code, reason)

    def _report_close(self, code: int, reason: str) -> None:
        if self._close_reported:
            return
        self._close_reported = True
        logger.debug("Channel closed: code=%s reason=%r", code, reason)
        self._listener.on_close(code, reason)


def _close_details(exc: ConnectionClosed) -> tuple[int, str]:
    frame = exc.rcvd or exc.sent
    if frame is None:
        return ABNORMAL_CLOSE_CODE, ""
    return frame.code, frame.reason


def websocket_channel_factory(scheduler: Scheduler) -> ChannelFactory:
    """Factory producing ``WebSocketChannel`` instances bound to ``scheduler``."""

    def factory(url: str, listener: ChannelListener) -> WebSocketChannel:
        return WebSocketChannel(url, listener, scheduler)

    return factory
