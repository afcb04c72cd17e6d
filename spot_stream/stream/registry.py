from __future__ import annotations

from typing import Any, Dict, List, Optional

from spot_stream.core.errors import ConfigError
from spot_stream.core.logging import get_logger

logger = get_logger(__name__)


class StreamRegistry:
    """Running connections by name; a name can be held by one live connection at a time."""

    def __init__(self) -> None:
        self._streams: Dict[str, Any] = {}

    def register(self, name: str, client: Any) -> None:
        current = self._streams.get(name)
        if current is not None and current is not client:
            raise ConfigError(f"a stream named {name!r} is already running")
        self._streams[name] = client
        logger.debug("[REGISTRY] registered %s", name)

    def unregister(self, name: str, client: Any = None) -> None:
        current = self._streams.get(name)
        if current is None or (client is not None and current is not client):
            return
        del self._streams[name]
        logger.debug("[REGISTRY] unregistered %s", name)

    def get(self, name: str) -> Optional[Any]:
        return self._streams.get(name)

    def names(self) -> List[str]:
        return sorted(self._streams)

    def __contains__(self, name: object) -> bool:
        return name in self._streams

    def __len__(self) -> int:
        return len(self._streams)
