import pytest

from spot_stream.binance_client.urls import build_stream_url, parse_stream_url
from spot_stream.core.errors import ConfigError


def test_single_channel_uses_ws_path():
    assert build_stream_url("wss://example", ["btcusdt@depth"]) == "wss://example/ws/btcusdt@depth"


def test_multiple_channels_use_combined_stream_path():
    url = build_stream_url("wss://example", ["btcusdt@depth", "ethusdt@trade"])

    assert url == "wss://example/stream?streams=btcusdt@depth/ethusdt@trade"


def test_listen_key_token_uses_ws_path():
    url = build_stream_url("wss://stream.binance.com:9443", "abc123")

    assert url.endswith("/ws/abc123")


def test_trailing_slash_on_base_is_ignored():
    assert build_stream_url("wss://example/", "abc123") == "wss://example/ws/abc123"


def test_empty_channel_list_is_rejected():
    with pytest.raises(ConfigError):
        build_stream_url("wss://example", [])


def test_channel_order_survives_round_trip():
    channels = ["xrpusdt@kline_1m", "btcusdt@depth@100ms", "ethusdt@trade", "bnbusdt@bookTicker"]

    assert parse_stream_url(build_stream_url("wss://example", channels)) == channels
    assert parse_stream_url(build_stream_url("wss://example", channels[:1])) == channels[:1]
