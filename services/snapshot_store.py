"""Shared keyed snapshot of the latest reading per slot."""

from __future__ import annotations

import json
from threading import Lock
from typing import Dict, Tuple

from app.schemas import Reading, ReadingStatus


class SnapshotStore:
    """Mapping from 1-based slot index to the latest ``Reading``.

    Readings are immutable, so swapping one under the lock is enough for a
    reader never to observe a partially updated slot.
    """

    def __init__(self, slot_count: int) -> None:
        if slot_count < 1:
            raise ValueError("At least one source slot is required.")
        self._readings: Dict[int, Reading] = {
            slot: Reading() for slot in range(1, slot_count + 1)
        }
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._readings)

    @property
    def slots(self) -> Tuple[int, ...]:
        return tuple(self._readings)

    def get(self, slot: int) -> Reading:
        with self._lock:
            return self._readings[self._check_slot(slot)]

    def set(self, slot: int, reading: Reading) -> None:
        with self._lock:
            self._readings[self._check_slot(slot)] = reading

    def set_status(self, slot: int, status: ReadingStatus) -> Reading:
        """Replace only the status of a slot, keeping its other fields."""
        with self._lock:
            key = self._check_slot(slot)
            updated = self._readings[key].model_copy(update={"status": status.value})
            self._readings[key] = updated
            return updated

    def snapshot(self) -> Dict[int, Reading]:
        with self._lock:
            return dict(self._readings)

    def serialize_all(self) -> bytes:
        """Encode every slot as JSON keyed by the slot index as a string."""
        readings = self.snapshot()
        payload = {str(slot): readings[slot].to_wire() for slot in sorted(readings)}
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")

    def _check_slot(self, slot: int) -> int:
        if slot not in self._readings:
            raise KeyError(f"Slot {slot!r} is not configured.")
        return slot
