from __future__ import annotations

import os
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from spot_stream.core.errors import ConfigError

from .models import (
    APISettings,
    Credentials,
    HealthSettings,
    HeartbeatMode,
    LoggingSettings,
    Settings,
    StreamSettings,
)

_TRUTHY = {"1", "true", "yes", "on"}


def load_config(config_path: Optional[str] = None) -> Settings:
    """Load configuration from an optional YAML file and environment variables."""
    load_dotenv()
    raw: Dict[str, Any] = {}
    if config_path is not None:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    raw = apply_env_overrides(raw)

    api = APISettings(**raw["api"])

    stream_raw = raw["stream"]
    try:
        heartbeat_mode = HeartbeatMode(str(stream_raw.get("heartbeat_mode", HeartbeatMode.EXPECTED_COUNT.value)))
    except ValueError as exc:
        raise ConfigError(f"unknown heartbeat_mode {stream_raw.get('heartbeat_mode')!r}") from exc
    stream = StreamSettings(
        ping_interval_ms=int(stream_raw["ping_interval_ms"]),
        keepalive_interval_ms=int(stream_raw["keepalive_interval_ms"]),
        heartbeat_mode=heartbeat_mode,
        close_listen_key_on_exit=_as_bool(stream_raw.get("close_listen_key_on_exit", False)),
    )
    if stream.keepalive_interval_ms <= 0 or stream.ping_interval_ms <= 0:
        raise ConfigError("ping_interval_ms and keepalive_interval_ms must be positive")

    logging = LoggingSettings(
        level=raw["logging"]["level"],
        log_file=raw["logging"]["log_file"] or None,
        console=_as_bool(raw["logging"]["console"]),
    )

    health = HealthSettings(
        log_interval_sec=float(raw["health"]["log_interval_sec"]),
        stale_ms=int(raw["health"]["stale_ms"]),
    )

    creds_raw = raw.get("credentials") or {}
    credentials = None
    if creds_raw.get("api_key") or creds_raw.get("secret_key"):
        if not (creds_raw.get("api_key") and creds_raw.get("secret_key")):
            raise ConfigError("both api_key and secret_key are required when credentials are configured")
        credentials = Credentials(api_key=creds_raw["api_key"], secret_key=creds_raw["secret_key"])

    return Settings(api=api, stream=stream, logging=logging, health=health, credentials=credentials)


def apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    env = os.environ
    defaults_api = APISettings()
    defaults_stream = StreamSettings()
    defaults_logging = LoggingSettings()
    defaults_health = HealthSettings()

    raw.setdefault("api", {})
    raw["api"]["websocket_url"] = env.get("BINANCE_WS_ENDPOINT", raw["api"].get("websocket_url", defaults_api.websocket_url))
    raw["api"]["rest_base"] = env.get("BINANCE_REST_BASE", raw["api"].get("rest_base", defaults_api.rest_base))
    raw["api"]["request_timeout_sec"] = float(
        env.get("BINANCE_REQUEST_TIMEOUT_SEC", raw["api"].get("request_timeout_sec", defaults_api.request_timeout_sec))
    )

    raw.setdefault("credentials", {})
    raw["credentials"]["api_key"] = env.get("BINANCE_API_KEY", raw["credentials"].get("api_key"))
    raw["credentials"]["secret_key"] = env.get("BINANCE_SECRET_KEY", raw["credentials"].get("secret_key"))

    raw.setdefault("stream", {})
    raw["stream"]["ping_interval_ms"] = int(
        env.get("BINANCE_PING_INTERVAL_MS", raw["stream"].get("ping_interval_ms", defaults_stream.ping_interval_ms))
    )
    raw["stream"]["keepalive_interval_ms"] = int(
        env.get(
            "BINANCE_KEEPALIVE_INTERVAL_MS",
            raw["stream"].get("keepalive_interval_ms", defaults_stream.keepalive_interval_ms),
        )
    )
    raw["stream"]["heartbeat_mode"] = env.get(
        "BINANCE_HEARTBEAT_MODE", raw["stream"].get("heartbeat_mode", defaults_stream.heartbeat_mode.value)
    )
    raw["stream"]["close_listen_key_on_exit"] = env.get(
        "BINANCE_CLOSE_LISTEN_KEY_ON_EXIT",
        raw["stream"].get("close_listen_key_on_exit", defaults_stream.close_listen_key_on_exit),
    )

    raw.setdefault("logging", {})
    raw["logging"]["level"] = env.get("LOG_LEVEL", raw["logging"].get("level", defaults_logging.level))
    raw["logging"]["log_file"] = env.get("LOG_FILE", raw["logging"].get("log_file", defaults_logging.log_file))
    raw["logging"]["console"] = env.get("LOG_CONSOLE", raw["logging"].get("console", defaults_logging.console))

    raw.setdefault("health", {})
    raw["health"]["log_interval_sec"] = float(
        env.get("STREAM_HEALTH_LOG_INTERVAL_SEC", raw["health"].get("log_interval_sec", defaults_health.log_interval_sec))
    )
    raw["health"]["stale_ms"] = int(env.get("STREAM_HEALTH_STALE_MS", raw["health"].get("stale_ms", defaults_health.stale_ms)))

    return raw


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)
