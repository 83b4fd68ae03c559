"""In-process stand-in for a networked scale streaming readings."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)


class MockScale:
    """Serves a fixed reading to every connected client on a fixed interval."""

    def __init__(self, reading: Dict[str, Any], interval_ms: int = 1000) -> None:
        self._reading = dict(reading)
        self.interval = interval_ms / 1000
        self._server: Optional[Any] = None
        self._connections: Set[Any] = set()
        self.host: Optional[str] = None
        self.port: Optional[int] = None

    @property
    def url(self) -> str:
        if self.port is None:
            raise RuntimeError("Mock scale is not running.")
        host = "localhost" if self.host in (None, "0.0.0.0", "") else self.host
        return f"ws://{host}:{self.port}"

    @property
    def client_count(self) -> int:
        return len(self._connections)

    def set_reading(self, reading: Dict[str, Any]) -> None:
        self._reading = dict(reading)

    def payload(self) -> str:
        return json.dumps(self._reading)

    async def start(self, host: str = "127.0.0.1", port: int = 0) -> "MockScale":
        self._server = await websockets.serve(self._serve_client, host, port)
        sockname = next(iter(self._server.sockets)).getsockname()
        self.host = host
        self.port = sockname[1]
        logger.info("Mock scale listening on %s", self.url)
        return self

    async def drop_clients(self) -> None:
        """Close every client link, as a device restart would."""
        for connection in list(self._connections):
            await connection.close()

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Mock scale on port %s stopped", self.port)

    async def __aenter__(self) -> "MockScale":
        if self._server is None:
            await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _serve_client(self, connection: Any, *_args: Any) -> None:
        self._connections.add(connection)
        logger.info("Client connected to mock scale on port %s", self.port)
        try:
            while True:
                await connection.send(self.payload())
                await asyncio.sleep(self.interval)
        except ConnectionClosed:
            pass
        finally:
            self._connections.discard(connection)
