from __future__ import annotations

import json
from typing import Any, Dict, Iterator, Optional

import httpx
import typer
from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect

from cli.config import CLIConfig


class ApiClient:
    """Minimal client for the lookup API and the subscriber stream."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def lookup(self, address: str) -> Dict[str, Any]:
        try:
            response = self._client.post("/weight", json={"path": address})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def health(self) -> Dict[str, Any]:
        try:
            response = self._client.get("/health")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def stream_snapshots(self, count: Optional[int] = None) -> Iterator[Dict[str, Any]]:
        """Yield decoded snapshots from the subscriber stream."""
        received = 0
        try:
            with connect(self._config.stream_url, open_timeout=self._config.timeout) as websocket:
                for message in websocket:
                    yield json.loads(message)
                    received += 1
                    if count is not None and received >= count:
                        return
        except (OSError, ConnectionClosed) as exc:
            typer.secho(f"Stream connection failed: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
