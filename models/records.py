"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LinkState(str, Enum):
    """Lifecycle of one device link."""

    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"
    stopped = "stopped"


@dataclass(frozen=True, slots=True)
class LinkStatus:
    """Point-in-time view of a supervisor's connection bookkeeping."""

    slot: int
    address: str
    state: LinkState
    attempts: int
    max_attempts: Optional[int]
    reconnecting: bool = False
