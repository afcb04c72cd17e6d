from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Callable, Optional, Tuple

from spot_stream.config.models import (
    DEFAULT_KEEPALIVE_INTERVAL_MS,
    DEFAULT_PING_INTERVAL_MS,
    DEFAULT_WS_ENDPOINT,
    Credentials,
    HeartbeatMode,
    StreamMode,
)
from spot_stream.core.errors import ConfigError


class Phase(IntEnum):
    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


class TerminateCause(str, Enum):
    NORMAL_CLOSE = "normal_close"
    ABNORMAL_CLOSE = "abnormal_close"


@dataclass(frozen=True)
class ConnectionConfig:
    name: str
    mode: StreamMode = StreamMode.PUBLIC_STREAMS
    public_channels: Tuple[str, ...] = ()
    credentials: Optional[Credentials] = None
    base_url: str = DEFAULT_WS_ENDPOINT
    ping_interval_ms: int = DEFAULT_PING_INTERVAL_MS
    keepalive_interval_ms: int = DEFAULT_KEEPALIVE_INTERVAL_MS
    heartbeat_mode: HeartbeatMode = HeartbeatMode.EXPECTED_COUNT
    close_listen_key_on_exit: bool = False
    catch_terminate: Optional[Callable[[TerminateCause], None]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "public_channels", tuple(self.public_channels))
        if self.mode is StreamMode.PUBLIC_STREAMS and not self.public_channels:
            raise ConfigError(f"{self.name}: public_channels must not be empty for public streams")
        if self.mode is StreamMode.USER_DATA and self.credentials is None:
            raise ConfigError(f"{self.name}: credentials are required for the user data stream")
        if self.keepalive_interval_ms <= 0 or self.ping_interval_ms <= 0:
            raise ConfigError(f"{self.name}: timer intervals must be positive")


@dataclass
class ConnectionState:
    """Mutable per-connection state, owned by the connection's event loop.

    Hooks may read ``heartbeat_count``, ``listen_key`` and ``phase``.
    """

    heartbeat_count: int = 0
    listen_key: Optional[str] = None
    phase: Phase = Phase.CONNECTING
    expected_heartbeat: int = 0

    def inc_heartbeat(self) -> int:
        self.heartbeat_count += 1
        return self.heartbeat_count
