"""Heartbeat liveness policies.

The heartbeat count on ``ConnectionState`` is the only liveness signal: every
protocol pong and every compressed pong frame bumps it. A policy compares the
count against the value it expects at each timer fire, so late or coalesced
pongs never cause a false failure.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List

from spot_stream.config.models import HeartbeatMode
from spot_stream.core.errors import LivenessError
from spot_stream.stream.events import ArmTimer, Effect, PeriodicPingTimer, PingTimer, PongTimer, SendPing, Timer
from spot_stream.stream.state import ConnectionState

INITIAL_PING_DELAY_MS = 20_000
PONG_WAIT_MS = 4_000
IDLE_POLL_MS = 1_000


@dataclass(frozen=True)
class HeartbeatTimings:
    initial_delay_ms: int = INITIAL_PING_DELAY_MS
    pong_wait_ms: int = PONG_WAIT_MS
    idle_poll_ms: int = IDLE_POLL_MS


class ExpectedCountHeartbeat:
    """Alternate ``Ping``/``Pong`` checks keyed off the expected heartbeat count."""

    def __init__(self, timings: HeartbeatTimings = HeartbeatTimings()) -> None:
        self.timings = timings

    def start(self, state: ConnectionState) -> List[Effect]:
        state.expected_heartbeat = 1
        return [ArmTimer(self.timings.initial_delay_ms, PingTimer(expected=1))]

    def on_timer(self, timer: Timer, state: ConnectionState) -> List[Effect]:
        if isinstance(timer, PingTimer):
            if state.heartbeat_count >= timer.expected:
                return self._rearm(state)
            state.expected_heartbeat = state.heartbeat_count + 1
            return [SendPing(), ArmTimer(self.timings.pong_wait_ms, PongTimer(expected=state.expected_heartbeat))]
        if isinstance(timer, PongTimer):
            if state.heartbeat_count >= timer.expected:
                return self._rearm(state)
            raise LivenessError(f"no heartbeat #{timer.expected} (count={state.heartbeat_count})")
        return []

    def _rearm(self, state: ConnectionState) -> List[Effect]:
        state.expected_heartbeat = state.heartbeat_count + 1
        return [ArmTimer(self.timings.idle_poll_ms, PingTimer(expected=state.expected_heartbeat))]


class PeriodicHeartbeat:
    """Ping every ``interval_ms``; a tick with no pong since the last ping fails."""

    def __init__(self, interval_ms: int) -> None:
        self.interval_ms = interval_ms

    def start(self, state: ConnectionState) -> List[Effect]:
        state.expected_heartbeat = 0
        return [ArmTimer(self.interval_ms, PeriodicPingTimer())]

    def on_timer(self, timer: Timer, state: ConnectionState) -> List[Effect]:
        if not isinstance(timer, PeriodicPingTimer):
            return []
        if state.expected_heartbeat and state.heartbeat_count < state.expected_heartbeat:
            raise LivenessError(f"no heartbeat #{state.expected_heartbeat} within {self.interval_ms}ms")
        state.expected_heartbeat = state.heartbeat_count + 1
        return [SendPing(), ArmTimer(self.interval_ms, PeriodicPingTimer())]


def build_heartbeat(mode: HeartbeatMode, ping_interval_ms: int, timings: HeartbeatTimings = HeartbeatTimings()):
    if mode is HeartbeatMode.PERIODIC:
        return PeriodicHeartbeat(ping_interval_ms)
    return ExpectedCountHeartbeat(timings)
