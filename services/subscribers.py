"""Registry of downstream subscribers receiving snapshot broadcasts."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Dict, List, Set

from fastapi.websockets import WebSocketState

from services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


def _is_open(subscriber: Any) -> bool:
    for attribute in ("client_state", "application_state"):
        state = getattr(subscriber, attribute, WebSocketState.CONNECTED)
        if state != WebSocketState.CONNECTED:
            return False
    return True


class SubscriberManager:
    """Tracks active subscribers and fans encoded snapshots out to them.

    Subscribers are WebSocket-like objects exposing ``send_text``. Each
    broadcast send runs as its own task bounded by ``send_timeout_ms``;
    ``broadcast`` never waits for them, so a stalled subscriber cannot hold
    up the tick or the other subscribers. A subscriber whose previous send is
    still running is skipped for that tick.
    """

    def __init__(self, store: SnapshotStore, send_timeout_ms: int = 5000) -> None:
        self.store = store
        self.send_timeout = send_timeout_ms / 1000
        self._subscribers: Set[Any] = set()
        self._pending: Dict[Any, asyncio.Task[bool]] = {}

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: object) -> bool:
        return subscriber in self._subscribers

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def connect(self, subscriber: Any) -> None:
        """Register a subscriber and push the current snapshot to it right away."""
        self._subscribers.add(subscriber)
        logger.info("Subscriber connected", extra={"subscribers": len(self._subscribers)})
        await self._send(subscriber, self.store.serialize_all().decode("utf-8"))

    def disconnect(self, subscriber: Any) -> None:
        self._subscribers.discard(subscriber)
        logger.info("Subscriber disconnected", extra={"subscribers": len(self._subscribers)})

    async def broadcast(self, payload: bytes) -> int:
        """Start sending one encoded snapshot to every open subscriber.

        Returns the number of sends started. Delivery happens in the
        background; use :meth:`drain` to wait for it.
        """
        targets: List[Any] = [sub for sub in list(self._subscribers) if _is_open(sub)]
        if not targets:
            return 0
        text = payload.decode("utf-8")
        loop = asyncio.get_running_loop()
        started = 0
        for subscriber in targets:
            if subscriber in self._pending:
                logger.debug("Previous snapshot still in flight; skipping subscriber", extra={"reason": "busy"})
                continue
            task = loop.create_task(self._send(subscriber, text))
            self._pending[subscriber] = task
            task.add_done_callback(functools.partial(self._forget, subscriber))
            started += 1
        return started

    async def drain(self) -> int:
        """Wait for in-flight sends and return how many of them were delivered."""
        tasks = list(self._pending.values())
        if not tasks:
            return 0
        results = await asyncio.gather(*tasks, return_exceptions=True)
        return sum(1 for delivered in results if delivered is True)

    async def close_all(self) -> None:
        pending, self._pending = list(self._pending.values()), {}
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        subscribers, self._subscribers = list(self._subscribers), set()
        for subscriber in subscribers:
            close = getattr(subscriber, "close", None)
            if close is None or not _is_open(subscriber):
                continue
            try:
                await asyncio.wait_for(close(), timeout=self.send_timeout)
            except Exception as exc:  # noqa: BLE001 - shutdown is best effort
                logger.debug("Failed to close subscriber: %s", exc)

    def _forget(self, subscriber: Any, task: "asyncio.Task[bool]") -> None:
        if self._pending.get(subscriber) is task:
            del self._pending[subscriber]

    async def _send(self, subscriber: Any, text: str) -> bool:
        try:
            await asyncio.wait_for(subscriber.send_text(text), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning("Timed out sending snapshot to subscriber", extra={"reason": "timeout"})
            return False
        except Exception as exc:  # noqa: BLE001 - one subscriber must not affect the rest
            logger.warning(
                "Failed to send snapshot to subscriber: %s",
                exc,
                extra={"reason": type(exc).__name__},
            )
            return False
        return True
