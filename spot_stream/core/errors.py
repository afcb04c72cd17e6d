from __future__ import annotations

from typing import Any, Optional


class StreamError(Exception):
    """Base class for every error raised by the streaming client."""


class ConfigError(StreamError):
    """Invalid connection configuration; fatal to the connection."""


class AuthError(StreamError):
    """The user-data listen key could not be created."""


class RestError(StreamError):
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.body = body


class DecodeError(StreamError):
    """An inbound frame could not be decoded."""


class LivenessError(StreamError):
    """The peer stopped answering heartbeats."""


class TransportError(StreamError):
    """The socket failed underneath the connection."""
