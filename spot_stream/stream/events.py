"""Mailbox events consumed by a connection and the effects its state machine emits."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from spot_stream.core.errors import StreamError
from spot_stream.stream.state import Phase, TerminateCause


# Timer kinds -----------------------------------------------------------------


@dataclass(frozen=True)
class PingTimer:
    expected: int


@dataclass(frozen=True)
class PongTimer:
    expected: int


@dataclass(frozen=True)
class PeriodicPingTimer:
    pass


@dataclass(frozen=True)
class KeepaliveTimer:
    pass


Timer = Union[PingTimer, PongTimer, PeriodicPingTimer, KeepaliveTimer]


# Events ----------------------------------------------------------------------


@dataclass(frozen=True)
class SocketOpened:
    pass


@dataclass(frozen=True)
class FrameIn:
    frame: Any


@dataclass(frozen=True)
class PongIn:
    pass


@dataclass(frozen=True)
class TimerFired:
    timer: Timer


@dataclass(frozen=True)
class UserSend:
    frame: Any


@dataclass(frozen=True)
class CloseRequested:
    reason: str = "normal"


@dataclass(frozen=True)
class SocketClosed:
    code: Optional[int] = None
    reason: str = ""
    error: Optional[StreamError] = None


Event = Union[SocketOpened, FrameIn, PongIn, TimerFired, UserSend, CloseRequested, SocketClosed]


# Effects ---------------------------------------------------------------------


@dataclass(frozen=True)
class NotifyConnect:
    pass


@dataclass(frozen=True)
class Dispatch:
    payload: Any


@dataclass(frozen=True)
class DecodeFailed:
    error: StreamError


@dataclass(frozen=True)
class ArmTimer:
    delay_ms: int
    timer: Timer


@dataclass(frozen=True)
class SendPing:
    pass


@dataclass(frozen=True)
class SendFrame:
    frame: Any


@dataclass(frozen=True)
class DropFrame:
    """A user frame discarded because the connection is not open."""

    frame: Any
    phase: Phase


@dataclass(frozen=True)
class RenewListenKey:
    listen_key: str


@dataclass(frozen=True)
class CloseSocket:
    code: int = 1000
    reason: str = ""
    error: Optional[StreamError] = None


@dataclass(frozen=True)
class CancelTimers:
    pass


@dataclass(frozen=True)
class NotifyDisconnect:
    code: Optional[int]
    reason: str
    error: Optional[StreamError] = None


@dataclass(frozen=True)
class NotifyTerminate:
    cause: TerminateCause


Effect = Union[
    NotifyConnect,
    Dispatch,
    DecodeFailed,
    ArmTimer,
    SendPing,
    SendFrame,
    DropFrame,
    RenewListenKey,
    CloseSocket,
    CancelTimers,
    NotifyDisconnect,
    NotifyTerminate,
]
