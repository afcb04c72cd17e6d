from __future__ import annotations

from typing import List, Optional

from spot_stream.binance_client.rest import ListenKeyClient
from spot_stream.config.models import Credentials
from spot_stream.core.errors import RestError
from spot_stream.core.logging import get_logger
from spot_stream.observability.stream_health import StreamHealthTracker
from spot_stream.stream.events import ArmTimer, Effect, KeepaliveTimer, RenewListenKey
from spot_stream.stream.state import ConnectionState

logger = get_logger(__name__)


class KeepaliveSchedule:
    """Arms the listen key renewal timer; only user data connections have one."""

    def __init__(self, interval_ms: int) -> None:
        self.interval_ms = interval_ms

    def start(self, state: ConnectionState) -> List[Effect]:
        if not state.listen_key:
            return []
        return [ArmTimer(self.interval_ms, KeepaliveTimer())]

    def on_timer(self, state: ConnectionState) -> List[Effect]:
        if not state.listen_key:
            return []
        # Re-armed regardless of the REST outcome; the server reaps only after 30 minutes.
        return [RenewListenKey(state.listen_key), ArmTimer(self.interval_ms, KeepaliveTimer())]


async def renew_listen_key(
    rest_client: ListenKeyClient,
    listen_key: str,
    credentials: Credentials,
    name: str,
    health_tracker: Optional[StreamHealthTracker] = None,
) -> bool:
    """Keep the listen key alive; failures are logged and retried at the next tick."""
    try:
        await rest_client.keepalive_listen_key(listen_key, credentials)
    except RestError as exc:
        logger.warning("[KEEPALIVE][%s] listen key keepalive failed, retrying next tick: %s", name, exc)
        if health_tracker:
            health_tracker.register_keepalive(ok=False)
        return False
    logger.info("[KEEPALIVE][%s] keepalive of user data stream done", name)
    if health_tracker:
        health_tracker.register_keepalive(ok=True)
    return True
