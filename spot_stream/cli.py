from __future__ import annotations

import asyncio
import json
from typing import Any, List, Optional

import typer

from spot_stream.binance_client.rest import ListenKeyClient
from spot_stream.binance_client.signing import sign as sign_query
from spot_stream.config.loader import load_config
from spot_stream.config.models import Credentials, Settings, StreamMode
from spot_stream.core.errors import ConfigError, StreamError
from spot_stream.core.logging import get_logger, setup_logging
from spot_stream.observability.stream_health import StreamHealthTracker
from spot_stream.stream.connection import SpotStreamClient
from spot_stream.stream.state import ConnectionState, TerminateCause

app = typer.Typer(add_completion=False)
logger = get_logger(__name__)


class EchoStreamClient(SpotStreamClient):
    """Prints every decoded response on stdout, one per line."""

    def on_response(self, payload: Any, state: ConnectionState) -> None:
        typer.echo(render_payload(payload))


def render_payload(payload: Any) -> str:
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload).decode("utf-8", errors="replace")
    return json.dumps(payload, separators=(",", ":"))


def _load(config_path: Optional[str]) -> Settings:
    settings = load_config(config_path)
    setup_logging(settings.logging)
    return settings


def _run_stream(settings: Settings, name: str, mode: StreamMode, channels: List[str]) -> TerminateCause:
    health = StreamHealthTracker(settings.health)

    async def _run() -> TerminateCause:
        rest_client = ListenKeyClient(settings.api.rest_base, timeout=settings.api.request_timeout_sec)
        client = EchoStreamClient(
            settings.connection_config(name, mode, channels),
            rest_client=rest_client,
            health_tracker=health,
        )

        async def _log_health() -> None:
            while True:
                await asyncio.sleep(settings.health.log_interval_sec)
                logger.info("[STREAM_HEALTH] %s", health.build_snapshot(name))

        health_task = asyncio.create_task(_log_health())
        try:
            return await client.run()
        finally:
            health_task.cancel()
            await asyncio.gather(health_task, return_exceptions=True)
            await rest_client.close()

    try:
        return asyncio.run(_run())
    except KeyboardInterrupt:  # pragma: no cover - manual stop
        logger.info("Keyboard interrupt received, stopping %s", name)
        return TerminateCause.NORMAL_CLOSE


@app.command()
def stream(
    channel: List[str] = typer.Option(..., "--channel", "-c", help="Stream name, e.g. btcusdt@depth (repeatable)"),
    name: str = typer.Option("public-stream", help="Connection name used in logs"),
    config_path: Optional[str] = typer.Option(None, help="Path to config YAML"),
):
    """Subscribe to public market data streams and print every event."""
    settings = _load(config_path)
    try:
        cause = _run_stream(settings, name, StreamMode.PUBLIC_STREAMS, channel)
    except StreamError as exc:
        typer.echo(f"Stream failed: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Stream {name} terminated: {cause.value}", err=True)


@app.command()
def user_stream(
    name: str = typer.Option("user-data-stream", help="Connection name used in logs"),
    config_path: Optional[str] = typer.Option(None, help="Path to config YAML"),
):
    """Open the account user data stream and print every event."""
    settings = _load(config_path)
    try:
        cause = _run_stream(settings, name, StreamMode.USER_DATA, [])
    except StreamError as exc:
        typer.echo(f"Stream failed: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Stream {name} terminated: {cause.value}", err=True)


@app.command()
def sign(
    secret: str = typer.Option(..., help="Secret key"),
    query: str = typer.Option(..., help="Canonical query string to sign"),
):
    """Print the HMAC-SHA256 signature of a query string."""
    typer.echo(sign_query(secret, query))


@app.command()
def create_listen_key(config_path: Optional[str] = typer.Option(None, help="Path to config YAML")):
    """Create a user data stream listen key and print it."""
    settings = _load(config_path)

    async def _create() -> str:
        client = ListenKeyClient(settings.api.rest_base, timeout=settings.api.request_timeout_sec)
        try:
            return await client.create_listen_key(_require_credentials(settings))
        finally:
            await client.close()

    try:
        listen_key = asyncio.run(_create())
    except StreamError as exc:
        typer.echo(f"Create listen key failed: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(listen_key)


@app.command()
def close_listen_key(
    listen_key: str = typer.Option(..., help="Listen key to delete"),
    config_path: Optional[str] = typer.Option(None, help="Path to config YAML"),
):
    settings = _load(config_path)

    async def _close() -> None:
        client = ListenKeyClient(settings.api.rest_base, timeout=settings.api.request_timeout_sec)
        try:
            await client.close_listen_key(listen_key, _require_credentials(settings))
        finally:
            await client.close()

    try:
        asyncio.run(_close())
    except StreamError as exc:
        typer.echo(f"Close listen key failed: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Listen key {listen_key} closed")


def _require_credentials(settings: Settings) -> Credentials:
    if settings.credentials is None:
        raise ConfigError("BINANCE_API_KEY and BINANCE_SECRET_KEY are required")
    return settings.credentials


if __name__ == "__main__":
    app()
