from __future__ import annotations

import hashlib
import hmac
from typing import Any, List, Mapping, Tuple

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
API_KEY_HEADER = "X-MBX-APIKEY"


def canonical_query(params: Mapping[str, Any]) -> str:
    """Join ``params`` as ``k=v`` pairs with ``&`` in insertion order."""
    return "&".join(f"{key}={value}" for key, value in params.items())


def sign(secret: str, query: str) -> str:
    """Uppercase hex HMAC-SHA256 of ``query`` keyed with ``secret``."""
    digest = hmac.new(secret.encode("utf-8"), query.encode("utf-8"), hashlib.sha256).digest()
    return digest.hex().upper()


def prepare_request_body(params: Mapping[str, Any], secret: str = "", signed: bool = True) -> str:
    query = canonical_query(params)
    if not signed:
        return query
    signature = sign(secret, query)
    if not query:
        return f"signature={signature}"
    return f"{query}&signature={signature}"


def prepare_request_headers(method: str, api_key: str) -> List[Tuple[str, str]]:
    headers = [(API_KEY_HEADER, api_key)]
    if method.upper() in {"POST", "PUT"}:
        headers.append(("Content-Type", FORM_CONTENT_TYPE))
    return headers
