from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _status_color(status: Any) -> str:
    if status == "Not connected":
        return typer.colors.RED
    if isinstance(status, str) and status.lower() == "ok":
        return typer.colors.GREEN
    return typer.colors.YELLOW


def render_reading(payload: Dict[str, Any], address: str | None = None) -> None:
    echo_heading(f"Reading for {address}" if address else "Reading")
    echo_key_values(
        [
            ("WeightNet", payload.get("WeightNet")),
            ("WeightGross", payload.get("WeightGross")),
            ("DeviceMessage", payload.get("DeviceMessage")),
        ]
    )
    status = payload.get("Status")
    typer.secho(f"Status: {status}", fg=_status_color(status))


def render_snapshot(snapshot: Dict[str, Any]) -> None:
    echo_heading(f"Snapshot ({len(snapshot)} scales)")
    for slot in sorted(snapshot, key=lambda key: int(key) if key.isdigit() else key):
        reading = snapshot[slot] or {}
        status = reading.get("Status")
        line = (
            f"  [{slot}] net={reading.get('WeightNet')} gross={reading.get('WeightGross')} "
            f"status={status}"
        )
        message = reading.get("DeviceMessage")
        if message:
            line = f"{line} message={message}"
        typer.secho(line, fg=_status_color(status))


def render_health(payload: Dict[str, Any]) -> None:
    echo_heading("Source Health")
    sources = payload.get("sources") or []
    if not sources:
        typer.echo("No sources configured.")
        return
    for source in sources:
        limit = source.get("max_reconnect_attempts")
        attempts = f"{source.get('reconnect_attempts')}/{limit if limit is not None else 'unlimited'}"
        typer.echo(
            f"  [{source.get('slot')}] {source.get('address')} state={source.get('state')} "
            f"attempts={attempts} status={source.get('status')}"
        )
