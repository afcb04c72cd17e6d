from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

DEFAULT_WS_ENDPOINT = "wss://stream.binance.com:9443"
DEFAULT_REST_BASE = "https://api.binance.com"
DEFAULT_PING_INTERVAL_MS = 5_000
DEFAULT_KEEPALIVE_INTERVAL_MS = 10 * 60_000


class StreamMode(str, Enum):
    PUBLIC_STREAMS = "public"
    USER_DATA = "user_data"


class HeartbeatMode(str, Enum):
    EXPECTED_COUNT = "expected_count"
    PERIODIC = "periodic"


@dataclass(frozen=True)
class Credentials:
    api_key: str
    secret_key: str

    def __repr__(self) -> str:
        return f"Credentials(api_key={self.api_key[:6]}..., secret_key=***)"


@dataclass
class APISettings:
    websocket_url: str = DEFAULT_WS_ENDPOINT
    rest_base: str = DEFAULT_REST_BASE
    request_timeout_sec: float = 10.0


@dataclass
class StreamSettings:
    ping_interval_ms: int = DEFAULT_PING_INTERVAL_MS
    keepalive_interval_ms: int = DEFAULT_KEEPALIVE_INTERVAL_MS
    heartbeat_mode: HeartbeatMode = HeartbeatMode.EXPECTED_COUNT
    close_listen_key_on_exit: bool = False


@dataclass
class LoggingSettings:
    level: str = "INFO"
    log_file: Optional[str] = "data/stream.log"
    console: bool = True


@dataclass
class HealthSettings:
    log_interval_sec: float = 30.0
    stale_ms: int = 30_000


@dataclass
class Settings:
    api: APISettings = field(default_factory=APISettings)
    stream: StreamSettings = field(default_factory=StreamSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    health: HealthSettings = field(default_factory=HealthSettings)
    credentials: Optional[Credentials] = None

    def connection_config(self, name, mode, public_channels=(), catch_terminate=None):
        # Imported here: stream.state depends on this module.
        from spot_stream.stream.state import ConnectionConfig

        return ConnectionConfig(
            name=name,
            mode=StreamMode(mode),
            public_channels=tuple(public_channels),
            credentials=self.credentials,
            base_url=self.api.websocket_url,
            ping_interval_ms=self.stream.ping_interval_ms,
            keepalive_interval_ms=self.stream.keepalive_interval_ms,
            heartbeat_mode=self.stream.heartbeat_mode,
            close_listen_key_on_exit=self.stream.close_listen_key_on_exit,
            catch_terminate=catch_terminate,
        )
