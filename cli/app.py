from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass
from typing import Optional

import typer
from dotenv import load_dotenv

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_health, render_reading, render_snapshot


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Run and query the scale aggregation service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Lookup API base URL (defaults to API_BASE_URL env or http://localhost:4000).",
    ),
    stream_url: Optional[str] = typer.Option(
        None,
        "--stream-url",
        "-s",
        help="Subscriber stream URL (defaults to STREAM_URL env or ws://localhost:3000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for the service to respond.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, stream_url=stream_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("serve")
def serve_command(
    port: Optional[int] = typer.Option(None, "--port", help="Override the subscriber stream port."),
    http_port: Optional[int] = typer.Option(None, "--http-port", help="Override the lookup API port."),
    enable_http: Optional[bool] = typer.Option(
        None,
        "--http/--no-http",
        help="Enable or disable the lookup API regardless of ENABLE_HTTP_SERVER.",
    ),
) -> None:
    """Run the aggregation service until interrupted."""
    load_dotenv()

    from logging_config import configure_logging
    from settings import get_settings

    get_settings.cache_clear()
    settings = get_settings()
    overrides = {}
    if port is not None:
        overrides["port"] = port
    if http_port is not None:
        overrides["http_port"] = http_port
    if enable_http is not None:
        overrides["enable_http_server"] = enable_http
    if overrides:
        settings = dataclasses.replace(settings, **overrides)
    if not settings.sources:
        typer.secho("WEIGHT_SERVICES is not set; nothing to aggregate.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    configure_logging(settings.log_level, settings.log_path)

    from app.main import serve

    asyncio.run(serve(settings))


@app.command("lookup")
def lookup_command(
    ctx: typer.Context,
    address: str = typer.Argument(..., help="Configured address of the scale, e.g. ws://10.0.0.5:8081."),
) -> None:
    """Fetch the current reading of one scale from the lookup API."""
    state = _get_state(ctx)
    payload = state.client.lookup(address)
    render_reading(payload, address=address)


@app.command("health")
def health_command(ctx: typer.Context) -> None:
    """Show connection state for every configured scale."""
    state = _get_state(ctx)
    render_health(state.client.health())


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-n",
        min=1,
        help="Stop after this many snapshots (default: run until interrupted).",
    ),
) -> None:
    """Subscribe to the snapshot stream and print every broadcast."""
    state = _get_state(ctx)
    typer.echo(f"Subscribing to {state.config.stream_url} ...")
    for snapshot in state.client.stream_snapshots(count=count):
        render_snapshot(snapshot)
        typer.echo()


@app.command("mock-scale")
def mock_scale_command(
    port: int = typer.Option(8081, "--port", help="Port the mock scale listens on."),
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind."),
    net: float = typer.Option(100.0, "--net", help="Net weight to report."),
    gross: float = typer.Option(100.0, "--gross", help="Gross weight to report."),
    status: str = typer.Option("OK", "--status", help="Device status string."),
    message: Optional[str] = typer.Option(None, "--message", help="Optional device message."),
    interval: int = typer.Option(1000, "--interval", min=1, help="Milliseconds between frames."),
) -> None:
    """Run a simulated scale for local testing."""
    from devices.mock_scale import MockScale

    reading = {
        "WeightNet": net,
        "WeightGross": gross,
        "Status": status,
        "DeviceMessage": message,
    }
    scale = MockScale(reading, interval_ms=interval)

    async def _run() -> None:
        await scale.start(host=host, port=port)
        typer.echo(f"Mock scale serving {scale.payload()} on {scale.url}")
        try:
            await asyncio.Event().wait()
        finally:
            await scale.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        typer.echo("Mock scale stopped.")
