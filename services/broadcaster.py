"""Fixed-interval broadcast of the full snapshot."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from services.snapshot_store import SnapshotStore
from services.subscribers import SubscriberManager

logger = logging.getLogger(__name__)


class BroadcastScheduler:
    """Serializes the snapshot once per tick and hands it to the subscribers."""

    def __init__(
        self,
        store: SnapshotStore,
        subscribers: SubscriberManager,
        interval_ms: int = 1000,
    ) -> None:
        self.store = store
        self.subscribers = subscribers
        self.interval = interval_ms / 1000
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="snapshot-broadcast"
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def tick(self) -> int:
        """Broadcast the current snapshot once; returns the number of sends started."""
        payload = self.store.serialize_all()
        return await self.subscribers.broadcast(payload)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception:  # noqa: BLE001 - keep ticking
                logger.exception("Snapshot broadcast failed")
