from __future__ import annotations

import asyncio
import os
import time
from typing import Any, Awaitable, Callable, List, Optional

import pytest
from fastapi.websockets import WebSocketState

# Keep test runs from creating a logs/ directory in the working tree.
os.environ["LOG_PATH"] = ""

_CLOSE = object()


class FakeDeviceLink:
    """Scripted stand-in for an open device WebSocket."""

    def __init__(self, address: str) -> None:
        self.address = address
        self._frames: asyncio.Queue[Any] = asyncio.Queue()
        self.consumed = 0
        self.closed = False

    def push(self, frame: Any) -> None:
        self._frames.put_nowait(frame)

    def fail(self, exc: BaseException) -> None:
        self._frames.put_nowait(exc)

    def close(self) -> None:
        self._frames.put_nowait(_CLOSE)

    def __aiter__(self) -> "FakeDeviceLink":
        return self

    async def __anext__(self) -> Any:
        item = await self._frames.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        self.consumed += 1
        return item


class _FakeSession:
    def __init__(self, connector: "FakeConnector", address: str) -> None:
        self._connector = connector
        self._address = address
        self._link: Optional[FakeDeviceLink] = None

    async def __aenter__(self) -> FakeDeviceLink:
        connector = self._connector
        connector.calls += 1
        connector.in_flight += 1
        connector.max_in_flight = max(connector.max_in_flight, connector.in_flight)
        try:
            if connector.hang:
                await asyncio.Event().wait()
            if connector.refusals is None or connector.refusals > 0:
                if connector.refusals is not None:
                    connector.refusals -= 1
                raise OSError("connection refused")
        except BaseException:
            connector.in_flight -= 1
            raise
        self._link = FakeDeviceLink(self._address)
        connector.links.append(self._link)
        return self._link

    async def __aexit__(self, *exc_info: object) -> bool:
        self._connector.in_flight -= 1
        if self._link is not None:
            self._link.closed = True
        return False


class FakeConnector:
    """Callable with the ``websockets.connect`` shape producing fake links.

    ``refusals`` is how many attempts fail before links open; ``None`` refuses
    forever. ``hang`` keeps every attempt pending until cancelled.
    """

    def __init__(self, refusals: Optional[int] = 0, hang: bool = False) -> None:
        self.refusals = refusals
        self.hang = hang
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.links: List[FakeDeviceLink] = []
        self.kwargs: List[dict] = []

    def __call__(self, address: str, **kwargs: Any) -> _FakeSession:
        self.kwargs.append(kwargs)
        return _FakeSession(self, address)

    @property
    def latest(self) -> FakeDeviceLink:
        return self.links[-1]


async def _wait_until(
    predicate: Callable[[], bool],
    timeout: float = 2.0,
    interval: float = 0.005,
) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("Condition not met before timeout.")
        await asyncio.sleep(interval)


@pytest.fixture
def connector_factory() -> Callable[..., FakeConnector]:
    return FakeConnector


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    return _wait_until


class FakeSubscriber:
    """WebSocket-like subscriber recording every text frame it is sent."""

    def __init__(self, delay: float = 0.0, error: Optional[BaseException] = None) -> None:
        self.messages: List[str] = []
        self.delay = delay
        self.error = error
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, text: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.messages.append(text)

    def mark_closed(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED


@pytest.fixture
def subscriber_factory() -> Callable[..., FakeSubscriber]:
    return FakeSubscriber
