"""Subscriber-facing WebSocket route."""

from __future__ import annotations

from fastapi import APIRouter, Depends, WebSocket

from services.engine import AggregatorEngine, build_default_engine

router = APIRouter()


def get_engine() -> AggregatorEngine:
    return build_default_engine()


@router.websocket("/")
async def snapshot_stream(
    websocket: WebSocket,
    engine: AggregatorEngine = Depends(get_engine),
) -> None:
    await websocket.accept()
    await engine.subscribers.connect(websocket)
    try:
        while True:
            # Inbound frames, text or binary, carry no meaning; only disconnects matter.
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        engine.subscribers.disconnect(websocket)
