import pytest

from spot_stream.config.models import HeartbeatMode
from spot_stream.core.errors import LivenessError
from spot_stream.stream.events import ArmTimer, PeriodicPingTimer, PingTimer, PongTimer, SendPing
from spot_stream.stream.heartbeat import (
    ExpectedCountHeartbeat,
    HeartbeatTimings,
    PeriodicHeartbeat,
    build_heartbeat,
)
from spot_stream.stream.state import ConnectionState


def test_start_arms_first_ping_after_grace_period():
    state = ConnectionState()

    effects = ExpectedCountHeartbeat().start(state)

    assert effects == [ArmTimer(20_000, PingTimer(expected=1))]
    assert state.expected_heartbeat == 1


def test_ping_is_skipped_when_peer_already_active():
    state = ConnectionState(heartbeat_count=3)

    effects = ExpectedCountHeartbeat().on_timer(PingTimer(expected=2), state)

    assert effects == [ArmTimer(1_000, PingTimer(expected=4))]


def test_ping_is_sent_when_no_activity():
    state = ConnectionState(heartbeat_count=2)

    effects = ExpectedCountHeartbeat().on_timer(PingTimer(expected=3), state)

    assert effects == [SendPing(), ArmTimer(4_000, PongTimer(expected=3))]


def test_pong_check_rearms_ping_when_answered():
    state = ConnectionState(heartbeat_count=5)

    effects = ExpectedCountHeartbeat().on_timer(PongTimer(expected=4), state)

    assert effects == [ArmTimer(1_000, PingTimer(expected=6))]


def test_pong_check_raises_liveness_error_when_unanswered():
    state = ConnectionState(heartbeat_count=4)

    with pytest.raises(LivenessError):
        ExpectedCountHeartbeat().on_timer(PongTimer(expected=5), state)


def test_custom_timings_are_used():
    heartbeat = ExpectedCountHeartbeat(HeartbeatTimings(initial_delay_ms=10, pong_wait_ms=20, idle_poll_ms=5))
    state = ConnectionState()

    assert heartbeat.start(state) == [ArmTimer(10, PingTimer(expected=1))]
    assert heartbeat.on_timer(PingTimer(expected=1), state)[1] == ArmTimer(20, PongTimer(expected=1))


def test_periodic_heartbeat_pings_every_interval():
    heartbeat = PeriodicHeartbeat(interval_ms=4_000)
    state = ConnectionState()

    assert heartbeat.start(state) == [ArmTimer(4_000, PeriodicPingTimer())]
    assert heartbeat.on_timer(PeriodicPingTimer(), state) == [SendPing(), ArmTimer(4_000, PeriodicPingTimer())]

    state.inc_heartbeat()
    assert heartbeat.on_timer(PeriodicPingTimer(), state)[0] == SendPing()


def test_periodic_heartbeat_fails_without_pong_since_last_ping():
    heartbeat = PeriodicHeartbeat(interval_ms=4_000)
    state = ConnectionState()
    heartbeat.start(state)
    heartbeat.on_timer(PeriodicPingTimer(), state)

    with pytest.raises(LivenessError):
        heartbeat.on_timer(PeriodicPingTimer(), state)


def test_build_heartbeat_selects_mode():
    assert isinstance(build_heartbeat(HeartbeatMode.EXPECTED_COUNT, 5_000), ExpectedCountHeartbeat)
    periodic = build_heartbeat(HeartbeatMode.PERIODIC, 4_000)
    assert isinstance(periodic, PeriodicHeartbeat)
    assert periodic.interval_ms == 4_000
