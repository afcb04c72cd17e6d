"""Connection state machine.

``StreamStateMachine.handle`` maps one mailbox event to a list of effects and
mutates ``ConnectionState`` in place. It performs no I/O; the runtime in
``spot_stream.stream.connection`` interprets the effects.
"""
from __future__ import annotations

from typing import List, Optional

from spot_stream.binance_client.codec import decode_frame
from spot_stream.config.models import StreamMode
from spot_stream.core.errors import DecodeError, LivenessError
from spot_stream.stream.events import (
    CancelTimers,
    CloseRequested,
    CloseSocket,
    DecodeFailed,
    Dispatch,
    DropFrame,
    Effect,
    Event,
    FrameIn,
    KeepaliveTimer,
    NotifyConnect,
    NotifyDisconnect,
    NotifyTerminate,
    PongIn,
    SendFrame,
    SocketClosed,
    SocketOpened,
    TimerFired,
    UserSend,
)
from spot_stream.stream.heartbeat import HeartbeatTimings, build_heartbeat
from spot_stream.stream.keepalive import KeepaliveSchedule
from spot_stream.stream.state import ConnectionConfig, ConnectionState, Phase, TerminateCause

NORMAL_CLOSE_CODE = 1000
LIVENESS_CLOSE_CODE = 1001


class StreamStateMachine:
    def __init__(
        self,
        config: ConnectionConfig,
        listen_key: Optional[str] = None,
        timings: HeartbeatTimings = HeartbeatTimings(),
    ) -> None:
        if (listen_key is not None) != (config.mode is StreamMode.USER_DATA):
            raise ValueError("a listen key is required for, and only for, the user data stream")
        self.config = config
        self.state = ConnectionState()
        self.heartbeat = build_heartbeat(config.heartbeat_mode, config.ping_interval_ms, timings)
        self.keepalive = KeepaliveSchedule(config.keepalive_interval_ms)
        self.terminate_cause: Optional[TerminateCause] = None
        self.close_error: Optional[Exception] = None
        self._pending_listen_key = listen_key
        self._normal_close_requested = False

    def handle(self, event: Event) -> List[Effect]:
        if self.state.phase is Phase.CLOSED:
            return []
        if isinstance(event, SocketOpened):
            return self._on_open()
        if isinstance(event, FrameIn):
            return self._on_frame(event)
        if isinstance(event, PongIn):
            self.state.inc_heartbeat()
            return []
        if isinstance(event, TimerFired):
            return self._on_timer(event)
        if isinstance(event, UserSend):
            if self.state.phase is not Phase.OPEN:
                return [DropFrame(event.frame, self.state.phase)]
            return [SendFrame(event.frame)]
        if isinstance(event, CloseRequested):
            return self._request_close(NORMAL_CLOSE_CODE, event.reason, normal=True)
        if isinstance(event, SocketClosed):
            return self._on_closed(event)
        raise TypeError(f"unknown event {event!r}")

    def _on_open(self) -> List[Effect]:
        if self.state.phase is not Phase.CONNECTING:
            return []
        self.state.phase = Phase.OPEN
        self.state.listen_key = self._pending_listen_key
        return [NotifyConnect(), *self.heartbeat.start(self.state), *self.keepalive.start(self.state)]

    def _on_frame(self, event: FrameIn) -> List[Effect]:
        try:
            decoded = decode_frame(event.frame)
        except DecodeError as exc:
            return [DecodeFailed(exc)]
        if decoded.is_pong:
            self.state.inc_heartbeat()
        return [Dispatch(decoded.payload)]

    def _on_timer(self, event: TimerFired) -> List[Effect]:
        if self.state.phase is not Phase.OPEN:
            return []
        if isinstance(event.timer, KeepaliveTimer):
            return self.keepalive.on_timer(self.state)
        try:
            return self.heartbeat.on_timer(event.timer, self.state)
        except LivenessError as exc:
            self.close_error = exc
            return self._request_close(LIVENESS_CLOSE_CODE, "heartbeat timeout", normal=False, error=exc)

    def _request_close(self, code: int, reason: str, normal: bool, error=None) -> List[Effect]:
        if self.state.phase in (Phase.CLOSING, Phase.CLOSED):
            return []
        self.state.phase = Phase.CLOSING
        self._normal_close_requested = normal
        return [CloseSocket(code=code, reason=reason, error=error)]

    def _on_closed(self, event: SocketClosed) -> List[Effect]:
        self.state.phase = Phase.CLOSED
        if self._normal_close_requested and event.error is None:
            self.terminate_cause = TerminateCause.NORMAL_CLOSE
        else:
            self.terminate_cause = TerminateCause.ABNORMAL_CLOSE
        error = self.close_error or event.error
        return [
            CancelTimers(),
            NotifyDisconnect(code=event.code, reason=event.reason, error=error),
            NotifyTerminate(self.terminate_cause),
        ]
