"""Tests for leaderboard config, models, validators and wire protocol."""

import json

import pytest

from ranksync.leaderboard.config import (
    ConnectionQuality,
    ConnectionState,
    EventSource,
    MessageKind,
    SyncConfig,
    SyncParameters,
    Timeframe,
)
from ranksync.leaderboard.exceptions import MessageDecodeError
from ranksync.leaderboard.models import LeaderboardEntry, SessionState, UpdateEvent
from ranksync.leaderboard.protocol import decode_message, encode_ping, encode_subscribe
from ranksync.leaderboard.validators import (
    normalize_language,
    validate_limit,
    validate_offset,
    validate_range,
    validate_timeframe,
)
from ranksync.settings import Settings

from conftest import START_MS, make_entry, update_message


def _event(user_id="u1", rank=1, kind=MessageKind.RANK_CHANGE, ts=START_MS):
    return UpdateEvent(
        kind=kind,
        entry=make_entry(user_id, rank),
        mode="global",
        timeframe="all",
        language="en",
        timestamp=ts,
    )


# ── Config ───────────────────────────────────────────────────────────


class TestEnums:
    def test_connection_states(self):
        assert {s.value for s in ConnectionState} == {
            "connecting", "connected", "reconnecting", "disconnected", "failed", "polling",
        }

    def test_connection_qualities(self):
        assert len(ConnectionQuality) == 5
        assert ConnectionQuality.OFFLINE.value == "offline"

    def test_control_kinds_are_not_updates(self):
        assert not MessageKind.CONTROL_PONG.is_update
        assert not MessageKind.CONTROL_CONNECTED.is_update
        assert MessageKind.SNAPSHOT_PUSH.is_update
        assert MessageKind.NEW_ENTRY.is_update


class TestSyncConfig:
    def test_defaults(self):
        config = SyncConfig()
        assert config.rate_limit_cooldown_ms == 30_000
        assert config.http_polling_interval_ms == 10_000
        assert config.heartbeat_interval_ms == 30_000
        assert config.max_reconnect_attempts == 5
        assert config.enable_http_fallback is False
        assert config.max_reconnect_delay_ms == 16_000

    def test_timeframe_coerced(self):
        config = SyncConfig(timeframe="weekly")
        assert config.timeframe is Timeframe.WEEKLY

    def test_invalid_timeframe_rejected(self):
        with pytest.raises(ValueError):
            SyncConfig(timeframe="yearly")

    def test_parameters(self):
        config = SyncConfig(mode="code", language="es", user_id="u9")
        assert config.parameters == SyncParameters("code", Timeframe.ALL, "es", "u9")

    def test_from_settings_with_overrides(self):
        settings = Settings(rate_limit_cooldown_ms=5000, enable_http_fallback=True)
        config = SyncConfig.from_settings(settings, language="fr")
        assert config.rate_limit_cooldown_ms == 5000
        assert config.enable_http_fallback is True
        assert config.language == "fr"


class TestSyncParameters:
    def test_replace_coerces_timeframe(self):
        params = SyncParameters().replace(timeframe="daily")
        assert params.timeframe is Timeframe.DAILY

    def test_query_params_include_user_only_when_set(self):
        assert "userId" not in SyncParameters().query_params()
        assert SyncParameters(user_id="u1").query_params()["userId"] == "u1"

    def test_scope(self):
        assert SyncParameters(language="es").scope() == {
            "mode": "global", "timeframe": "all", "language": "es",
        }


# ── Models ───────────────────────────────────────────────────────────


class TestLeaderboardEntry:
    def test_from_api(self):
        entry = LeaderboardEntry.from_api({
            "userId": "u1",
            "username": "alice",
            "rank": 3,
            "wpm": 95.5,
            "accuracy": 98,
            "mode": 60,
            "avatarColor": "#ff0000",
            "isVerified": True,
        })
        assert entry.user_id == "u1"
        assert entry.rank == 3
        assert entry.wpm == 95.5
        assert entry.mode == 60
        assert entry.avatar_color == "#ff0000"
        assert entry.is_verified is True
        assert entry.old_rank is None

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"rank": 1},
        {"userId": "u1", "rank": 0},
        {"userId": "u1", "rank": 1, "wpm": -1},
        {"userId": "u1", "rank": 1, "accuracy": 101},
        {"userId": "u1", "rank": "first"},
        {"userId": "u1", "rank": float("inf")},
        {"userId": "u1", "rank": float("nan")},
        {"userId": "u1", "rank": 1, "wpm": float("inf")},
        {"userId": "u1", "rank": 1, "accuracy": float("nan")},
        {"userId": "u1", "rank": 1, "oldRank": float("-inf")},
    ])
    def test_from_api_rejects_invalid(self, payload):
        with pytest.raises(MessageDecodeError):
            LeaderboardEntry.from_api(payload)

    def test_to_dict_omits_unset_optionals(self):
        data = make_entry("u1", 2).to_dict()
        assert data["userId"] == "u1"
        assert "oldRank" not in data
        assert "avatarColor" not in data

    def test_copy_is_independent(self):
        entry = make_entry("u1", 2)
        clone = entry.copy(rank=1)
        assert entry.rank == 2
        assert clone.rank == 1

    def test_same_standing(self):
        assert make_entry("u1", 2).same_standing(make_entry("u1", 2))
        assert not make_entry("u1", 2).same_standing(make_entry("u1", 2, wpm=81))


class TestSessionState:
    def test_history_bound_keeps_most_recent(self):
        state = SessionState()
        events = [_event(f"u{i}", ts=START_MS + i) for i in range(60)]
        for event in events:
            state.record(event)
        assert len(state.history) == 50
        assert list(state.history) == events[10:]
        assert state.last_update is events[-1]

    def test_update_parameters_clears_baseline(self):
        state = SessionState()
        state.baseline = {"u1": make_entry("u1")}
        assert state.update_parameters(SyncParameters(language="es")) is True
        assert state.baseline == {}

    def test_update_parameters_unchanged(self):
        state = SessionState()
        state.baseline = {"u1": make_entry("u1")}
        assert state.update_parameters(SyncParameters()) is False
        assert "u1" in state.baseline

    def test_to_dict(self):
        state = SessionState()
        state.record(_event())
        status = state.to_dict()
        assert status["connection_state"] == "disconnected"
        assert status["history_size"] == 1
        assert status["last_update"]["entry"]["userId"] == "u1"


# ── Validators ───────────────────────────────────────────────────────


class TestValidators:
    def test_timeframe(self):
        assert validate_timeframe("daily") is Timeframe.DAILY
        assert validate_timeframe("forever") is Timeframe.ALL
        assert validate_timeframe(None) is Timeframe.ALL

    def test_limit(self):
        assert validate_limit(None) == 20
        assert validate_limit(0) == 20
        assert validate_limit(500) == 100
        assert validate_limit(-3) == 1
        assert validate_limit("abc") == 20

    def test_offset(self):
        assert validate_offset(-5) == 0
        assert validate_offset(40) == 40

    def test_range(self):
        assert validate_range(None) == 5
        assert validate_range(50) == 20

    def test_language(self):
        assert normalize_language("EN-US-extra") == "en-us"
        assert normalize_language(None) == "en"


# ── Protocol ─────────────────────────────────────────────────────────


class TestProtocol:
    def test_encode_subscribe(self):
        payload = json.loads(encode_subscribe(SyncParameters(language="es", user_id="u1")))
        assert payload == {
            "type": "subscribe",
            "userId": "u1",
            "mode": "global",
            "timeframe": "all",
            "language": "es",
        }

    def test_encode_subscribe_without_user(self):
        assert "userId" not in json.loads(encode_subscribe(SyncParameters()))

    def test_encode_ping(self):
        assert json.loads(encode_ping()) == {"type": "ping"}

    def test_decode_connected(self):
        message = decode_message('{"type": "connected", "clientId": "c-1"}', START_MS)
        assert message.kind is MessageKind.CONTROL_CONNECTED
        assert message.client_id == "c-1"
        assert message.event is None

    def test_decode_pong(self):
        assert decode_message('{"type": "pong"}', START_MS).kind is MessageKind.CONTROL_PONG

    def test_decode_update_with_update_type(self):
        raw = json.dumps(update_message("u1", 5, update_type="rank_change"))
        message = decode_message(raw, START_MS + 10)
        assert message.kind is MessageKind.RANK_CHANGE
        assert message.event.entry.rank == 5
        assert message.event.source is EventSource.CHANNEL
        assert message.event.timestamp == START_MS

    def test_decode_update_defaults_to_snapshot_push(self):
        raw = json.dumps(update_message("u1", 5))
        assert decode_message(raw, START_MS).kind is MessageKind.SNAPSHOT_PUSH

    def test_decode_legacy_top_level_type(self):
        data = update_message("u1", 5)
        data["type"] = "new_entry"
        assert decode_message(json.dumps(data), START_MS).kind is MessageKind.NEW_ENTRY

    def test_decode_missing_timestamp_uses_receive_time(self):
        data = update_message("u1", 5)
        del data["timestamp"]
        assert decode_message(json.dumps(data), 1234).event.timestamp == 1234

    def test_decode_unknown_type(self):
        assert decode_message('{"type": "announcement"}', START_MS) is None

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"type": "leaderboard_update"}'])
    def test_decode_malformed(self, raw):
        with pytest.raises(MessageDecodeError):
            decode_message(raw, START_MS)

    @pytest.mark.parametrize("field, literal", [
        ("timestamp", "Infinity"),
        ("timestamp", "NaN"),
        ("rank", "Infinity"),
        ("wpm", "-Infinity"),
    ])
    def test_decode_non_finite_numbers(self, field, literal):
        data = update_message("u1", 5)
        placeholder = "__value__"
        if field == "timestamp":
            data["timestamp"] = placeholder
        else:
            data["entry"][field] = placeholder
        raw = json.dumps(data).replace(f'"{placeholder}"', literal)

        with pytest.raises(MessageDecodeError):
            decode_message(raw, START_MS)
