"""Push-channel wire protocol.

Client -> server: ``subscribe`` and ``ping``.
Server -> client: ``connected``, ``pong`` and ``leaderboard_update``
(``updateType`` optional). Older servers send ``rank_change``,
``new_entry`` or ``score_update`` as the top-level type; those are
accepted as well.
"""

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from ranksync.leaderboard.config import EventSource, MessageKind, SyncParameters
from ranksync.leaderboard.exceptions import MessageDecodeError
from ranksync.leaderboard.models import LeaderboardEntry, UpdateEvent


class MessageType(str, Enum):
    """Values of the ``type`` field on the wire."""
    # Client -> Server
    SUBSCRIBE = "subscribe"
    PING = "ping"

    # Server -> Client
    CONNECTED = "connected"
    PONG = "pong"
    LEADERBOARD_UPDATE = "leaderboard_update"
    RANK_CHANGE = "rank_change"
    NEW_ENTRY = "new_entry"
    SCORE_UPDATE = "score_update"


_UPDATE_TYPES = {
    "rank_change": MessageKind.RANK_CHANGE,
    "new_entry": MessageKind.NEW_ENTRY,
    "score_update": MessageKind.SCORE_UPDATE,
}


@dataclass
class InboundMessage:
    """A decoded server message."""

    kind: MessageKind
    event: Optional[UpdateEvent] = None
    client_id: Optional[str] = None


def encode_subscribe(parameters: SyncParameters) -> str:
    payload = {"type": MessageType.SUBSCRIBE.value}
    if parameters.user_id:
        payload["userId"] = parameters.user_id
    payload.update(parameters.scope())
    return json.dumps(payload)


def encode_ping() -> str:
    return json.dumps({"type": MessageType.PING.value})


def decode_message(
    raw: Union[str, bytes], received_at_ms: int
) -> Optional[InboundMessage]:
    """Decode one channel payload.

    Returns None for well-formed messages of a type this client does not
    handle.

    Raises:
        MessageDecodeError: if the payload is not a JSON object, or an
            update message lacks a valid entry or has a non-finite timestamp.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MessageDecodeError(f"invalid JSON: {exc}", payload=_preview(raw)) from exc

    if not isinstance(data, dict):
        raise MessageDecodeError("message must be a JSON object", payload=_preview(raw))

    msg_type = data.get("type")
    if msg_type == MessageType.CONNECTED.value:
        return InboundMessage(
            kind=MessageKind.CONTROL_CONNECTED, client_id=data.get("clientId")
        )
    if msg_type == MessageType.PONG.value:
        return InboundMessage(kind=MessageKind.CONTROL_PONG)

    if msg_type == MessageType.LEADERBOARD_UPDATE.value:
        kind = _UPDATE_TYPES.get(data.get("updateType"), MessageKind.SNAPSHOT_PUSH)
    elif msg_type in _UPDATE_TYPES:
        kind = _UPDATE_TYPES[msg_type]
    else:
        return None

    entry = LeaderboardEntry.from_api(data.get("entry"))
    timestamp = data.get("timestamp")
    if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
        timestamp = received_at_ms
    elif not math.isfinite(timestamp):
        raise MessageDecodeError(
            f"non-finite timestamp {timestamp!r}", payload=_preview(raw)
        )

    event = UpdateEvent(
        kind=kind,
        entry=entry,
        mode=str(data.get("mode", "")),
        timeframe=str(data.get("timeframe", "")),
        language=str(data.get("language", "")),
        timestamp=int(timestamp),
        source=EventSource.CHANNEL,
    )
    return InboundMessage(kind=kind, event=event)


def _preview(raw: Union[str, bytes, None]) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return raw[:100]
