"""Real sockets: mock scales -> engine -> subscriber stream served by uvicorn."""

from __future__ import annotations

import asyncio
import json
import socket
import time

import uvicorn
import websockets

from app.main import create_stream_app
from devices.mock_scale import MockScale
from services.engine import AggregatorEngine

SCALE_PAYLOADS = [
    {"WeightNet": 100, "WeightGross": 100, "Status": "OK", "DeviceMessage": None},
    {"WeightNet": 200, "WeightGross": 200, "Status": "OK", "DeviceMessage": None},
]


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _install_engine(monkeypatch, sources, **options) -> list:
    engines: list = []

    def build_test_engine() -> AggregatorEngine:
        if not engines:
            engines.append(AggregatorEngine(sources, **options))
        return engines[0]

    build_test_engine.cache_clear = engines.clear  # type: ignore[attr-defined]
    monkeypatch.setattr("app.main.build_default_engine", build_test_engine)
    monkeypatch.setattr("app.stream.build_default_engine", build_test_engine)
    return engines


def test_subscriber_observes_both_scales(monkeypatch, wait_until) -> None:
    async def scenario() -> None:
        scales = [await MockScale(payload, interval_ms=1000).start() for payload in SCALE_PAYLOADS]
        _install_engine(
            monkeypatch,
            [scale.url for scale in scales],
            reconnect_interval_ms=200,
            max_reconnect_attempts=5,
            broadcast_interval_ms=1000,
        )
        port = _free_port()
        server = uvicorn.Server(
            uvicorn.Config(create_stream_app(), host="127.0.0.1", port=port, log_config=None)
        )
        server_task = asyncio.create_task(server.serve())
        try:
            await wait_until(lambda: server.started, timeout=10.0)
            # Give the scales a moment to push their first frames.
            await asyncio.sleep(0.5)

            received = None
            deadline = time.monotonic() + 10.0
            async with websockets.connect(f"ws://127.0.0.1:{port}/") as subscriber:
                while time.monotonic() < deadline:
                    received = json.loads(await asyncio.wait_for(subscriber.recv(), timeout=5.0))
                    if received.get("1") == SCALE_PAYLOADS[0] and received.get("2") == SCALE_PAYLOADS[1]:
                        break

            assert received is not None
            assert len(received) == 2
            assert received["1"] == SCALE_PAYLOADS[0]
            assert received["2"] == SCALE_PAYLOADS[1]
        finally:
            server.should_exit = True
            await server_task
            for scale in scales:
                await scale.stop()

    asyncio.run(scenario())


def test_engine_recovers_when_scale_drops_link(wait_until) -> None:
    async def scenario() -> None:
        async with MockScale(SCALE_PAYLOADS[0], interval_ms=50) as scale:
            engine = AggregatorEngine(
                [scale.url],
                reconnect_interval_ms=100,
                max_reconnect_attempts=3,
                broadcast_interval_ms=50,
            )
            await engine.start()
            try:
                await wait_until(lambda: engine.store.get(1).weight_net == 100, timeout=5.0)

                await scale.drop_clients()
                await wait_until(lambda: engine.store.get(1).status == "Not connected", timeout=5.0)
                assert engine.store.get(1).weight_net == 100

                scale.set_reading({"WeightNet": 150, "WeightGross": 160, "Status": "OK"})
                await wait_until(lambda: engine.store.get(1).weight_net == 150, timeout=5.0)
                assert engine.health()[0].attempts == 0
            finally:
                await engine.stop()

    asyncio.run(scenario())


def test_unreachable_scale_gives_up_after_limit(wait_until) -> None:
    async def scenario() -> None:
        port = _free_port()
        engine = AggregatorEngine(
            [f"ws://127.0.0.1:{port}"],
            reconnect_interval_ms=20,
            max_reconnect_attempts=2,
        )
        await engine.start()
        try:
            await wait_until(lambda: engine.health()[0].state.value == "stopped", timeout=5.0)
            assert engine.health()[0].attempts == 2
            assert engine.store.get(1).status == "Not connected"
        finally:
            await engine.stop()

    asyncio.run(scenario())
