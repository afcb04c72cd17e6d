from spot_stream.binance_client.signing import (
    canonical_query,
    prepare_request_body,
    prepare_request_headers,
    sign,
)

SECRET = "NhqPtmdSJYdKjVHjA7PZj4Mge3R5YNiP1e3UZjInClVN65XAbvqqM6A7H5fATj0j"
QUERY = (
    "symbol=LTCBTC&side=BUY&type=LIMIT&timeInForce=GTC&quantity=1&price=0.1&recvWindow=5000&timestamp=1499827319559"
)
PARAMS = {
    "symbol": "LTCBTC",
    "side": "BUY",
    "type": "LIMIT",
    "timeInForce": "GTC",
    "quantity": 1,
    "price": "0.1",
    "recvWindow": 5000,
    "timestamp": 1499827319559,
}
EXPECTED = "c8db56825ae71d6d79447849e617115f4a920fa2acdcab2b053c4b2838bd6b71"


def test_sign_matches_reference_signature():
    signature = sign(SECRET, QUERY)

    assert signature == EXPECTED.upper()
    assert signature.lower() == EXPECTED


def test_canonical_query_keeps_insertion_order():
    assert canonical_query(PARAMS) == QUERY


def test_signed_body_appends_signature():
    body = prepare_request_body(PARAMS, SECRET)

    assert body == f"{QUERY}&signature={EXPECTED.upper()}"


def test_unsigned_body_is_plain_query():
    assert prepare_request_body({"listenKey": "abc123"}, SECRET, signed=False) == "listenKey=abc123"


def test_headers_for_write_methods_include_form_content_type():
    assert prepare_request_headers("POST", "key") == [
        ("X-MBX-APIKEY", "key"),
        ("Content-Type", "application/x-www-form-urlencoded"),
    ]
    assert ("Content-Type", "application/x-www-form-urlencoded") in prepare_request_headers("put", "key")


def test_headers_for_read_and_delete_only_carry_api_key():
    assert prepare_request_headers("GET", "key") == [("X-MBX-APIKEY", "key")]
    assert prepare_request_headers("DELETE", "key") == [("X-MBX-APIKEY", "key")]
