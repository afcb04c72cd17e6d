import asyncio

import httpx
import pytest

from spot_stream.binance_client.rest import ListenKeyClient
from spot_stream.binance_client.signing import sign
from spot_stream.config.models import Credentials
from spot_stream.core.errors import RestError

CREDS = Credentials(api_key="my-api-key", secret_key="my-secret")


def _run(handler, action):
    async def _scenario():
        session = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = ListenKeyClient("https://api.example.com/", session=session)
        try:
            return await action(client)
        finally:
            await client.close()

    return asyncio.run(_scenario())


def test_create_listen_key_posts_with_api_key_header():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"listenKey": "abc123"})

    listen_key = _run(handler, lambda client: client.create_listen_key(CREDS))

    assert listen_key == "abc123"
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.example.com/api/v3/userDataStream"
    assert request.headers["X-MBX-APIKEY"] == "my-api-key"
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"


def test_keepalive_puts_listen_key_in_body():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    _run(handler, lambda client: client.keepalive_listen_key("abc123", CREDS))

    assert seen[0].method == "PUT"
    assert seen[0].content == b"listenKey=abc123"


def test_close_sends_delete_with_query_string():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    _run(handler, lambda client: client.close_listen_key("abc123", CREDS))

    assert seen[0].method == "DELETE"
    assert seen[0].url.params["listenKey"] == "abc123"
    assert "Content-Type" not in seen[0].headers


def test_http_error_maps_to_rest_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"code": -2014, "msg": "API-key format invalid."})

    with pytest.raises(RestError) as excinfo:
        _run(handler, lambda client: client.create_listen_key(CREDS))

    assert excinfo.value.status_code == 400
    assert excinfo.value.code == -2014
    assert "API-key format invalid." in str(excinfo.value)


def test_network_error_maps_to_rest_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RestError):
        _run(handler, lambda client: client.keepalive_listen_key("abc123", CREDS))


def test_missing_listen_key_is_an_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(RestError):
        _run(handler, lambda client: client.create_listen_key(CREDS))


def test_signed_request_adds_timestamp_and_signature(monkeypatch):
    monkeypatch.setattr("spot_stream.binance_client.rest.time.time", lambda: 1499827319.0)
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"balances": []})

    data = _run(handler, lambda client: client._request("GET", "/api/v3/account", {"recvWindow": 5000}, CREDS, signed=True))

    assert data == {"balances": []}
    params = seen[0].url.params
    assert params["recvWindow"] == "5000"
    assert params["timestamp"] == "1499827319000"
    assert params["signature"] == sign("my-secret", "recvWindow=5000&timestamp=1499827319000")
    assert seen[0].headers["X-MBX-APIKEY"] == "my-api-key"


def test_signed_write_request_signs_form_body(monkeypatch):
    monkeypatch.setattr("spot_stream.binance_client.rest.time.time", lambda: 1499827319.0)
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    _run(handler, lambda client: client._request("POST", "/api/v3/order/test", {"symbol": "LTCBTC"}, CREDS, signed=True))

    query = "symbol=LTCBTC&timestamp=1499827319000"
    assert seen[0].content == f"{query}&signature={sign('my-secret', query)}".encode()
