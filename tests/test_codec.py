import zlib

import pytest

from spot_stream.binance_client.codec import (
    COMPRESSED_PONG_PREFIX,
    decode_frame,
    encode_frame,
    is_compressed_pong,
)
from spot_stream.core.errors import DecodeError


def test_text_frame_is_decoded_as_json():
    decoded = decode_frame('{"e":"depthUpdate","s":"BTCUSDT"}')

    assert decoded.payload == {"e": "depthUpdate", "s": "BTCUSDT"}
    assert decoded.is_pong is False


def test_malformed_json_raises_decode_error():
    with pytest.raises(DecodeError):
        decode_frame('{"e": "depthUpdate"')


def test_compressed_pong_is_inflated():
    decoded = decode_frame(COMPRESSED_PONG_PREFIX)

    assert decoded.is_pong is True
    assert decoded.payload == b"pong"


def test_magic_prefix_is_raw_deflate_of_pong():
    compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
    deflated = compressor.compress(b"pong") + compressor.flush()

    assert deflated.startswith(COMPRESSED_PONG_PREFIX)
    assert is_compressed_pong(bytearray(deflated))


def test_other_binary_frames_pass_through():
    decoded = decode_frame(b"\x01\x02\x03")

    assert decoded.payload == b"\x01\x02\x03"
    assert decoded.is_pong is False


def test_text_frame_equal_to_magic_is_not_a_pong():
    assert is_compressed_pong(COMPRESSED_PONG_PREFIX.decode("latin-1")) is False


def test_encode_frame_serialises_mappings():
    assert encode_frame({"method": "LIST_SUBSCRIPTIONS", "id": 3}) == '{"method":"LIST_SUBSCRIPTIONS","id":3}'
    assert encode_frame("raw") == "raw"
    assert encode_frame(bytearray(b"\x00")) == b"\x00"
    with pytest.raises(TypeError):
        encode_frame(object())
