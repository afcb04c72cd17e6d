from __future__ import annotations

from typing import List, Sequence, Union

from spot_stream.core.errors import ConfigError

_MULTI_STREAM_PATH = "/stream?streams="
_SINGLE_STREAM_PATH = "/ws/"


def build_stream_url(base: str, streams: Union[str, Sequence[str]]) -> str:
    """Build the connect URL for a listen key, a single channel or a list of channels.

    A single token (listen key or one channel name) maps to ``{base}/ws/{token}``.
    Several channels map to ``{base}/stream?streams=c1/c2/...`` in input order.
    Channel names are already gateway-safe and are not URL-encoded.
    """
    base = base.rstrip("/")
    if isinstance(streams, str):
        if not streams:
            raise ConfigError("stream token must not be empty")
        return f"{base}{_SINGLE_STREAM_PATH}{streams}"

    channels = list(streams)
    if not channels:
        raise ConfigError("public_channels must not be empty for public streams")
    if any(not channel for channel in channels):
        raise ConfigError(f"empty channel name in {channels!r}")
    if len(channels) == 1:
        return f"{base}{_SINGLE_STREAM_PATH}{channels[0]}"
    return f"{base}{_MULTI_STREAM_PATH}{'/'.join(channels)}"


def parse_stream_url(url: str) -> List[str]:
    """Return the stream tokens encoded in a URL produced by ``build_stream_url``."""
    if _MULTI_STREAM_PATH in url:
        return url.split(_MULTI_STREAM_PATH, 1)[1].split("/")
    if _SINGLE_STREAM_PATH in url:
        return [url.rsplit(_SINGLE_STREAM_PATH, 1)[1]]
    raise ValueError(f"not a stream URL: {url}")
