"""Inbound frame classification and decoding for the Spot stream gateway.

Text frames carry JSON. Binary frames starting with ``COMPRESSED_PONG_PREFIX`` are
raw-deflate compressed pongs; they are inflated, delivered like any other response
and count as a heartbeat. Any other binary frame is passed through untouched.
"""
from __future__ import annotations

import json
import zlib
from dataclasses import dataclass
from typing import Any, Union

from spot_stream.core.errors import DecodeError

COMPRESSED_PONG_PREFIX = bytes([0x2B, 0xC8, 0xCF, 0x4B, 0x07, 0x00])

Frame = Union[str, bytes, bytearray, memoryview]


@dataclass(frozen=True)
class DecodedFrame:
    payload: Any
    is_pong: bool = False


def is_compressed_pong(frame: Frame) -> bool:
    if isinstance(frame, str):
        return False
    return bytes(frame[: len(COMPRESSED_PONG_PREFIX)]) == COMPRESSED_PONG_PREFIX


def inflate(data: bytes) -> bytes:
    decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
    try:
        return decompressor.decompress(data) + decompressor.flush()
    except zlib.error as exc:
        raise DecodeError(f"cannot inflate compressed frame: {exc}") from exc


def decode_frame(frame: Frame) -> DecodedFrame:
    if isinstance(frame, str):
        try:
            return DecodedFrame(payload=json.loads(frame))
        except json.JSONDecodeError as exc:
            raise DecodeError(f"malformed JSON frame: {exc.msg} at {exc.pos}") from exc
    if not isinstance(frame, (bytes, bytearray, memoryview)):
        raise DecodeError(f"unsupported frame type {type(frame).__name__}")
    data = bytes(frame)
    if is_compressed_pong(data):
        return DecodedFrame(payload=inflate(data), is_pong=True)
    return DecodedFrame(payload=data)


def encode_frame(frame: Any) -> Union[str, bytes]:
    """Normalise an outbound user frame; mappings and lists are sent as JSON text."""
    if isinstance(frame, (str, bytes)):
        return frame
    if isinstance(frame, (bytearray, memoryview)):
        return bytes(frame)
    if isinstance(frame, (dict, list)):
        return json.dumps(frame, separators=(",", ":"))
    raise TypeError(f"cannot send frame of type {type(frame).__name__}")
