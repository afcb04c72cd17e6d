from __future__ import annotations

import asyncio
import contextlib
import inspect
from typing import Any, Callable, List, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from spot_stream.binance_client.codec import encode_frame
from spot_stream.binance_client.rest import ListenKeyClient
from spot_stream.binance_client.urls import build_stream_url
from spot_stream.config.models import StreamMode
from spot_stream.core.errors import AuthError, RestError, TransportError
from spot_stream.core.logging import get_logger
from spot_stream.observability.stream_health import StreamHealthTracker
from spot_stream.stream.events import (
    ArmTimer,
    CancelTimers,
    CloseRequested,
    CloseSocket,
    DecodeFailed,
    Dispatch,
    DropFrame,
    Effect,
    Event,
    FrameIn,
    NotifyConnect,
    NotifyDisconnect,
    NotifyTerminate,
    PongIn,
    RenewListenKey,
    SendFrame,
    SendPing,
    SocketClosed,
    SocketOpened,
    TimerFired,
    UserSend,
)
from spot_stream.stream.heartbeat import HeartbeatTimings
from spot_stream.stream.keepalive import renew_listen_key
from spot_stream.stream.machine import StreamStateMachine
from spot_stream.stream.registry import StreamRegistry
from spot_stream.stream.state import ConnectionConfig, ConnectionState, Phase, TerminateCause

logger = get_logger(__name__)

CLOSE_TIMEOUT_SEC = 5


class SpotStreamClient:
    """WebSocket client for Binance Spot public streams and the user data stream.

    One instance serves one connection. Every socket frame, timer fire, user send and
    close request is posted to a single mailbox and handled in order by ``run``, so
    hooks observe a totally ordered event stream and need no locking.

    Subclass and override ``on_connect``, ``on_response``, ``on_disconnect`` and
    ``on_terminate`` to consume the stream. The defaults only log. A hook may return
    a ``str``/``bytes`` frame (or a dict/list, sent as JSON) to reply on the socket;
    hooks may be plain functions or coroutines.

    Usage::

        client = SpotStreamClient(ConnectionConfig(name="btcusdt-depth", public_channels=["btcusdt@depth"]))
        cause = await client.run()
    """

    def __init__(
        self,
        config: ConnectionConfig,
        rest_client: Optional[ListenKeyClient] = None,
        connect: Callable[..., Any] = websockets.connect,
        health_tracker: Optional[StreamHealthTracker] = None,
        registry: Optional[StreamRegistry] = None,
        timings: HeartbeatTimings = HeartbeatTimings(),
    ) -> None:
        self.config = config
        self.name = config.name
        self.health_tracker = health_tracker
        self._rest_client = rest_client
        self._owns_rest_client = False
        self._connect = connect
        self._registry = registry
        self._timings = timings
        self._machine: Optional[StreamStateMachine] = None
        # Created in run() so the queue binds to the running loop.
        self._mailbox: Optional["asyncio.Queue[Event]"] = None
        self._pending: List[Event] = []
        self._ws: Any = None
        self._timers: Set[asyncio.TimerHandle] = set()
        self._tasks: Set[asyncio.Task] = set()
        self.url: Optional[str] = None

    @property
    def state(self) -> Optional[ConnectionState]:
        return self._machine.state if self._machine else None

    # Public API ------------------------------------------------------------

    async def run(self) -> TerminateCause:
        """Connect, serve the mailbox until the socket closes and return the cause."""
        self._mailbox = asyncio.Queue()
        for event in self._pending:
            self._mailbox.put_nowait(event)
        self._pending.clear()
        if self._registry is not None:
            self._registry.register(self.name, self)
        try:
            listen_key = await self._obtain_listen_key()
            self.url = build_stream_url(
                self.config.base_url,
                listen_key if listen_key is not None else self.config.public_channels,
            )
            self._machine = StreamStateMachine(self.config, listen_key=listen_key, timings=self._timings)
            self._ws = await self._open_socket(self.url)
            return await self._serve()
        finally:
            await self._shutdown()
            if self._registry is not None:
                self._registry.unregister(self.name, self)

    async def send(self, frame: Any) -> None:
        self._post(UserSend(frame))

    def send_nowait(self, frame: Any) -> None:
        self._post(UserSend(frame))

    def request_close(self, reason: str = "normal") -> None:
        """Ask for a normal close; repeated calls are ignored by the state machine."""
        self._post(CloseRequested(reason))

    def _post(self, event: Event) -> None:
        if self._mailbox is None:
            self._pending.append(event)
        else:
            self._mailbox.put_nowait(event)

    # Overridable hooks -----------------------------------------------------

    def on_connect(self, state: ConnectionState) -> Any:
        logger.info("[WS_STREAM][%s] Binance Spot connected: %s", self.name, self.url)

    def on_response(self, payload: Any, state: ConnectionState) -> Any:
        logger.info("[WS_STREAM][%s] received response: %r", self.name, payload)

    def on_disconnect(self, reason: Any, state: ConnectionState) -> Any:
        logger.info("[WS_STREAM][%s] Binance Spot disconnected: %s", self.name, reason)

    def on_terminate(self, cause: TerminateCause, state: ConnectionState) -> Any:
        logger.info("[WS_STREAM][%s] terminated: %s", self.name, cause.value)

    # Connecting ------------------------------------------------------------

    async def _obtain_listen_key(self) -> Optional[str]:
        if self.config.mode is not StreamMode.USER_DATA:
            return None
        if self._rest_client is None:
            self._rest_client = ListenKeyClient()
            self._owns_rest_client = True
        try:
            return await self._rest_client.create_listen_key(self.config.credentials)
        except RestError as exc:
            raise AuthError(f"{self.name}: cannot create listen key: {exc}") from exc

    async def _open_socket(self, url: str) -> Any:
        logger.info("[WS_STREAM][%s] connecting to %s", self.name, url)
        try:
            # Liveness is owned by the heartbeat loop, not the library.
            return await self._connect(url, ping_interval=None, close_timeout=CLOSE_TIMEOUT_SEC)
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
            raise TransportError(f"{self.name}: cannot connect to {url}: {exc}") from exc

    # Event loop ------------------------------------------------------------

    async def _serve(self) -> TerminateCause:
        self._mailbox.put_nowait(SocketOpened())
        self._spawn(self._read_frames(self._ws))
        machine = self._machine
        while machine.state.phase is not Phase.CLOSED:
            event = await self._mailbox.get()
            if isinstance(event, FrameIn) and self.health_tracker:
                self.health_tracker.register_frame(event.frame)
            await self._apply(machine.handle(event))
        return machine.terminate_cause

    async def _read_frames(self, ws: Any) -> None:
        try:
            async for frame in ws:
                logger.debug("[WS_STREAM][%s] raw frame: %r", self.name, frame)
                self._mailbox.put_nowait(FrameIn(frame))
        except ConnectionClosedOK as exc:
            self._mailbox.put_nowait(SocketClosed(code=_close_code(exc), reason=_close_reason(exc)))
            return
        except ConnectionClosed as exc:
            self._mailbox.put_nowait(
                SocketClosed(
                    code=_close_code(exc),
                    reason=_close_reason(exc),
                    error=TransportError(f"connection closed abnormally: {exc}"),
                )
            )
            return
        except Exception as exc:
            logger.error("[WS_STREAM][%s] socket error: %s", self.name, exc)
            self._mailbox.put_nowait(SocketClosed(error=TransportError(str(exc))))
            return
        self._mailbox.put_nowait(
            SocketClosed(code=getattr(ws, "close_code", None), reason=getattr(ws, "close_reason", None) or "")
        )

    async def _apply(self, effects: List[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, Dispatch):
                await self._call_hook(self.on_response, effect.payload)
            elif isinstance(effect, ArmTimer):
                self._arm(effect)
            elif isinstance(effect, SendPing):
                await self._send_ping()
            elif isinstance(effect, SendFrame):
                await self._send(effect.frame)
            elif isinstance(effect, DropFrame):
                logger.warning(
                    "[WS_STREAM][%s] frame dropped, connection is %s: %r", self.name, effect.phase.name, effect.frame
                )
            elif isinstance(effect, DecodeFailed):
                logger.warning("[WS_STREAM][%s] dropping undecodable frame: %s", self.name, effect.error)
                if self.health_tracker:
                    self.health_tracker.register_decode_error()
            elif isinstance(effect, RenewListenKey):
                self._spawn(
                    renew_listen_key(
                        self._rest_client,
                        effect.listen_key,
                        self.config.credentials,
                        self.name,
                        self.health_tracker,
                    )
                )
            elif isinstance(effect, CloseSocket):
                await self._close_socket(effect)
            elif isinstance(effect, NotifyConnect):
                if self.health_tracker:
                    self.health_tracker.set_connected(True)
                await self._call_hook(self.on_connect)
            elif isinstance(effect, CancelTimers):
                self._cancel_timers()
            elif isinstance(effect, NotifyDisconnect):
                if self.health_tracker:
                    self.health_tracker.set_connected(False)
                reason = effect.error or f"code={effect.code} reason={effect.reason!r}"
                await self._call_hook(self.on_disconnect, reason, reply=False)
            elif isinstance(effect, NotifyTerminate):
                self._notify_catch_terminate(effect.cause)
                await self._call_hook(self.on_terminate, effect.cause, reply=False)

    async def _call_hook(self, hook: Callable[..., Any], *args: Any, reply: bool = True) -> None:
        state = self._machine.state
        try:
            result = hook(*args, state)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.warning("[WS_STREAM][%s] %s hook error: %s", self.name, hook.__name__, exc)
            if self.health_tracker:
                self.health_tracker.register_hook_error()
            return
        if result is not None and reply and state.phase is Phase.OPEN:
            await self._send(result)

    def _notify_catch_terminate(self, cause: TerminateCause) -> None:
        sink = self.config.catch_terminate
        if sink is None:
            return
        try:
            sink(cause)
        except Exception as exc:
            logger.warning("[WS_STREAM][%s] catch_terminate sink error: %s", self.name, exc)

    # Effects ---------------------------------------------------------------

    def _arm(self, effect: ArmTimer) -> None:
        loop = asyncio.get_running_loop()
        handle: Optional[asyncio.TimerHandle] = None

        def _fire() -> None:
            self._timers.discard(handle)
            self._mailbox.put_nowait(TimerFired(effect.timer))

        handle = loop.call_later(effect.delay_ms / 1000.0, _fire)
        self._timers.add(handle)

    async def _send_ping(self) -> None:
        try:
            pong_waiter = await self._ws.ping()
        except ConnectionClosed as exc:
            logger.debug("[HEARTBEAT][%s] ping not sent, socket closing: %s", self.name, exc)
            return
        self._spawn(self._await_pong(pong_waiter))

    async def _await_pong(self, pong_waiter: Any) -> None:
        with contextlib.suppress(ConnectionClosed):
            await pong_waiter
            if self.health_tracker:
                self.health_tracker.register_pong()
            self._mailbox.put_nowait(PongIn())

    async def _send(self, frame: Any) -> None:
        try:
            await self._ws.send(encode_frame(frame))
        except TypeError as exc:
            logger.warning("[WS_STREAM][%s] cannot send frame: %s", self.name, exc)
        except ConnectionClosed as exc:
            logger.warning("[WS_STREAM][%s] frame dropped, socket closed: %s", self.name, exc)

    async def _close_socket(self, effect: CloseSocket) -> None:
        if effect.error is not None:
            logger.warning("[HEARTBEAT][%s] terminating connection: %s", self.name, effect.error)
        else:
            logger.info("[WS_STREAM][%s] closing connection (%s)", self.name, effect.reason)
        await self._ws.close(code=effect.code, reason=effect.reason)

    def _cancel_timers(self) -> None:
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _shutdown(self) -> None:
        self._cancel_timers()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._ws is not None and self._machine and self._machine.state.phase is not Phase.CLOSED:
            with contextlib.suppress(ConnectionClosed):
                await self._ws.close()
        await self._close_listen_key()
        if self._owns_rest_client and self._rest_client is not None:
            await self._rest_client.close()

    async def _close_listen_key(self) -> None:
        state = self.state
        if not (self.config.close_listen_key_on_exit and state and state.listen_key):
            return
        try:
            await self._rest_client.close_listen_key(state.listen_key, self.config.credentials)
        except RestError as exc:
            logger.warning("[LISTEN_KEY][%s] close on exit failed: %s", self.name, exc)


def _close_code(exc: ConnectionClosed) -> Optional[int]:
    rcvd = getattr(exc, "rcvd", None)
    return rcvd.code if rcvd is not None else None


def _close_reason(exc: ConnectionClosed) -> str:
    rcvd = getattr(exc, "rcvd", None)
    return rcvd.reason if rcvd is not None else ""

