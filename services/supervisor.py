"""Per-device link supervision with fixed-delay reconnects."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncContextManager, AsyncIterable, Callable, Optional, Union

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, WebSocketException

from app.schemas import Reading, ReadingStatus
from models.records import LinkState, LinkStatus
from services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

Frame = Union[str, bytes]
Connector = Callable[..., AsyncContextManager[AsyncIterable[Frame]]]


class SourceLinkSupervisor:
    """Owns one outbound device connection and its slot in the snapshot.

    The link is driven by four events (opened, frame, closed, errored). Closing
    arms a single one-shot reconnect timer; once ``max_reconnect_attempts``
    scheduled attempts have been spent the supervisor stops for good. A limit
    of 0 retries forever.
    """

    def __init__(
        self,
        slot: int,
        address: str,
        store: SnapshotStore,
        reconnect_interval_ms: int,
        max_reconnect_attempts: int,
        connector: Optional[Connector] = None,
        open_timeout: float = 10.0,
    ) -> None:
        self.slot = slot
        self.address = address.strip()
        self.store = store
        self.reconnect_interval = reconnect_interval_ms / 1000
        self.max_reconnect_attempts = max_reconnect_attempts
        self.open_timeout = open_timeout
        self._connector: Connector = connector or websockets.connect
        self._state = LinkState.disconnected
        self._attempts = 0
        self._reconnecting = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._closed = False

    @property
    def state(self) -> LinkState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def reconnect_limit(self) -> Optional[int]:
        return self.max_reconnect_attempts or None

    def status(self) -> LinkStatus:
        return LinkStatus(
            slot=self.slot,
            address=self.address,
            state=self._state,
            attempts=self._attempts,
            max_attempts=self.reconnect_limit,
            reconnecting=self._reconnecting,
        )

    def start(self) -> None:
        """Open the link for the first time. Must run inside the event loop."""
        if self._task is not None or self._closed:
            return
        self._connect()

    async def stop(self) -> None:
        """Cancel the pending reconnect and any in-flight read on the link."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._reconnecting = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._state = LinkState.stopped
        self.store.set_status(self.slot, ReadingStatus.not_connected)

    def handle_open(self) -> None:
        self._attempts = 0
        self._state = LinkState.connected
        self.store.set_status(self.slot, ReadingStatus.ok)
        logger.info("Connected to scale %s", self.address, extra=self._context())

    def handle_frame(self, frame: Frame) -> None:
        try:
            reading = Reading.parse_frame(frame)
        except ValidationError as exc:
            logger.error(
                "Failed to parse data from scale %s",
                self.address,
                extra=self._context(reason=_summarize(exc)),
            )
            return
        self.store.set(self.slot, reading)
        logger.debug("Received data from %s: %r", self.address, frame, extra=self._context())

    def handle_error(self, exc: BaseException) -> None:
        logger.error(
            "Connection error with scale %s: %s",
            self.address,
            exc,
            extra=self._context(reason=type(exc).__name__),
        )

    def handle_close(self) -> None:
        self._state = LinkState.disconnected
        self.store.set_status(self.slot, ReadingStatus.not_connected)
        logger.warning("Connection to scale %s closed", self.address, extra=self._context())
        if not self._closed:
            self.schedule_reconnect()

    def schedule_reconnect(self) -> None:
        if self._reconnecting or self._closed:
            return

        limit = self.reconnect_limit
        if limit is not None and self._attempts >= limit:
            self._state = LinkState.stopped
            logger.error(
                "Reconnect attempts to scale %s exhausted; giving up",
                self.address,
                extra=self._context(attempt=self._attempts, max_attempts=limit),
            )
            return

        self._reconnecting = True
        self._attempts += 1
        logger.info(
            "Reconnecting to scale %s in %.1f seconds",
            self.address,
            self.reconnect_interval,
            extra=self._context(attempt=self._attempts, max_attempts=limit or "unlimited"),
        )
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.reconnect_interval, self._connect)

    def _connect(self) -> None:
        self._timer = None
        self._reconnecting = False
        if self._closed:
            return
        self._state = LinkState.connecting
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run_link(), name=f"source-link-{self.slot}")

    async def _run_link(self) -> None:
        try:
            async with self._connector(self.address, open_timeout=self.open_timeout) as link:
                self.handle_open()
                async for frame in link:
                    self.handle_frame(frame)
        except ConnectionClosedOK as exc:
            logger.debug("Scale %s closed the link: %s", self.address, exc, extra=self._context())
        except ConnectionClosedError as exc:
            self.handle_error(exc)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            self.handle_error(exc)
        except Exception as exc:  # noqa: BLE001 - any failure is a transport error for this link
            logger.exception("Unexpected failure on link to scale %s", self.address, extra=self._context())
            self.handle_error(exc)
        self.handle_close()

    def _context(self, **extra: Any) -> dict[str, Any]:
        context: dict[str, Any] = {"slot": self.slot, "source": self.address}
        context.update(extra)
        return context


def _summarize(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid payload"
    first = errors[0]
    return str(first.get("msg") or first.get("type") or "invalid payload")
