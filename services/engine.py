"""Wiring of supervisors, snapshot store, subscribers and the broadcast loop."""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import List, Optional, Sequence, Tuple

from app.schemas import Reading
from models.records import LinkStatus
from services.broadcaster import BroadcastScheduler
from services.snapshot_store import SnapshotStore
from services.subscribers import SubscriberManager
from services.supervisor import Connector, SourceLinkSupervisor
from settings import get_settings

logger = logging.getLogger(__name__)


class AggregatorEngine:
    """Aggregates device readings and serves them to subscribers.

    Every component receives the shared store at construction time; slot ``n``
    belongs to the ``n``-th configured address for the life of the engine.
    """

    def __init__(
        self,
        sources: Sequence[str],
        reconnect_interval_ms: int = 60000,
        max_reconnect_attempts: int = 120,
        broadcast_interval_ms: int = 1000,
        send_timeout_ms: int = 5000,
        connector: Optional[Connector] = None,
    ) -> None:
        addresses = tuple(source.strip() for source in sources)
        if not addresses:
            raise ValueError("No scale addresses configured (set WEIGHT_SERVICES).")
        self.sources: Tuple[str, ...] = addresses
        self.store = SnapshotStore(len(addresses))
        self.subscribers = SubscriberManager(self.store, send_timeout_ms=send_timeout_ms)
        self.scheduler = BroadcastScheduler(
            self.store, self.subscribers, interval_ms=broadcast_interval_ms
        )
        self.supervisors: List[SourceLinkSupervisor] = [
            SourceLinkSupervisor(
                slot=slot,
                address=address,
                store=self.store,
                reconnect_interval_ms=reconnect_interval_ms,
                max_reconnect_attempts=max_reconnect_attempts,
                connector=connector,
            )
            for slot, address in enumerate(addresses, start=1)
        ]
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        logger.info("Starting aggregation of %d scale(s)", len(self.supervisors))
        for supervisor in self.supervisors:
            supervisor.start()
        self.scheduler.start()

    async def stop(self) -> None:
        """Release every connection, timer and task owned by the engine."""
        if not self._started:
            return
        self._started = False
        await self.scheduler.stop()
        await asyncio.gather(*(supervisor.stop() for supervisor in self.supervisors))
        await self.subscribers.close_all()
        logger.info("Aggregation stopped")

    def slot_for(self, address: str) -> Optional[int]:
        candidate = address.strip()
        for slot, source in enumerate(self.sources, start=1):
            if source == candidate:
                return slot
        return None

    def lookup(self, address: Optional[str]) -> Reading:
        """Return the current reading of the slot configured for ``address``."""
        if address is None or not address.strip():
            raise ValueError("Path to the target scale is missing.")
        slot = self.slot_for(address)
        if slot is None:
            raise KeyError("Scale with the given path is not registered.")
        return self.store.get(slot)

    def health(self) -> List[LinkStatus]:
        return [supervisor.status() for supervisor in self.supervisors]


@lru_cache
def build_default_engine() -> AggregatorEngine:
    """Factory that wires the engine from environment settings."""
    settings = get_settings()
    return AggregatorEngine(
        sources=settings.sources,
        reconnect_interval_ms=settings.reconnect_interval_ms,
        max_reconnect_attempts=settings.reconnect_attempts,
        broadcast_interval_ms=settings.broadcast_interval_ms,
        send_timeout_ms=settings.send_timeout_ms,
    )
