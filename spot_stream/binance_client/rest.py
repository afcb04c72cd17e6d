from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx

from spot_stream.binance_client.signing import prepare_request_body, prepare_request_headers
from spot_stream.config.models import DEFAULT_REST_BASE, Credentials
from spot_stream.core.errors import RestError
from spot_stream.core.logging import get_logger

logger = get_logger(__name__)

USER_DATA_STREAM_PATH = "/api/v3/userDataStream"


class ListenKeyClient:
    """Listen key create/keepalive/close over the Spot REST API.

    One instance may be shared by many connections; ``httpx.AsyncClient`` is safe for
    concurrent requests.
    """

    def __init__(
        self,
        rest_base: str = DEFAULT_REST_BASE,
        session: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self.rest_base = rest_base.rstrip("/")
        self._session = session or httpx.AsyncClient(timeout=timeout)

    async def create_listen_key(self, credentials: Credentials) -> str:
        """POST /api/v3/userDataStream and return the ``listenKey``."""
        data = await self._request("POST", USER_DATA_STREAM_PATH, {}, credentials)
        listen_key = data.get("listenKey") if isinstance(data, dict) else None
        if not listen_key:
            raise RestError(f"listen key missing from response: {data!r}", body=data)
        logger.info("[LISTEN_KEY] created listen key %s...", listen_key[:8])
        return listen_key

    async def keepalive_listen_key(self, listen_key: str, credentials: Credentials) -> None:
        await self._request("PUT", USER_DATA_STREAM_PATH, {"listenKey": listen_key}, credentials)

    async def close_listen_key(self, listen_key: str, credentials: Credentials) -> None:
        await self._request("DELETE", USER_DATA_STREAM_PATH, {"listenKey": listen_key}, credentials)
        logger.info("[LISTEN_KEY] closed listen key %s...", listen_key[:8])

    async def _request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any],
        credentials: Credentials,
        signed: bool = False,
    ) -> Any:
        if signed:
            params = {**params, "timestamp": int(time.time() * 1000)}
        body = prepare_request_body(params, credentials.secret_key, signed=signed)
        headers = prepare_request_headers(method, credentials.api_key)
        url = f"{self.rest_base}{path}"
        try:
            if method.upper() in {"POST", "PUT"}:
                resp = await self._session.request(method, url, content=body, headers=headers)
            else:
                target = f"{url}?{body}" if body else url
                resp = await self._session.request(method, target, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            payload = _safe_json(exc.response)
            code = payload.get("code") if isinstance(payload, dict) else None
            msg = payload.get("msg") if isinstance(payload, dict) else exc.response.text
            raise RestError(
                f"{method} {path} failed with HTTP {exc.response.status_code}: {msg}",
                status_code=exc.response.status_code,
                code=code,
                body=payload,
            ) from exc
        except httpx.HTTPError as exc:
            raise RestError(f"{method} {path} failed: {exc}") from exc
        return _safe_json(resp)

    async def close(self) -> None:
        await self._session.aclose()


def _safe_json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text
