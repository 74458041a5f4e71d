import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence

import pytest

from agrismart_telemetry.config import ConnectionConfig
from agrismart_telemetry.core import Topic, TransportHandlers

FIXED_NOW = datetime(2026, 10, 19, 8, 30, 15, tzinfo=timezone.utc)


class FakeTransport:
    """In-memory stand-in for the Socket.IO transport."""

    def __init__(self, handlers: TransportHandlers, *, failures: int = 0) -> None:
        self.handlers = handlers
        self.failures_remaining = failures
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.last_url: Optional[str] = None
        self.last_transports: Sequence[str] = ()
        self.connected = False
        self._closed = asyncio.Event()

    @property
    def session_id(self) -> Optional[str]:
        return "fake-sid" if self.connected else None

    async def connect(self, url: str, *, transports: Sequence[str], timeout: float) -> None:
        self.connect_calls += 1
        self.last_url = url
        self.last_transports = tuple(transports)
        if self.failures_remaining != 0:
            self.failures_remaining -= 1
            raise ConnectionError("Simulated connection failure")
        self._closed = asyncio.Event()
        self.connected = True
        self.handlers.on_connect()

    async def wait(self) -> None:
        await self._closed.wait()

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.connected:
            self.drop("io client disconnect")

    def drop(self, reason: str = "transport close") -> None:
        self.connected = False
        self.handlers.on_disconnect(reason)
        self._closed.set()

    def emit(self, topic: Topic, payload: Any) -> None:
        self.handlers.on_event(topic, payload)


class FakeTransportFactory:
    """Builds fake transports and remembers each one."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.transports: List[FakeTransport] = []

    def __call__(self, handlers: TransportHandlers) -> FakeTransport:
        transport = FakeTransport(handlers, failures=self.failures)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


class RecordingListener:
    """Connection listener that records every notification."""

    def __init__(self) -> None:
        self.events: List[tuple] = []

    def on_connected(self) -> None:
        self.events.append(("connected",))

    def on_disconnected(self, reason: str) -> None:
        self.events.append(("disconnected", reason))

    def on_message(self, topic: Topic, payload: Any) -> None:
        self.events.append(("message", topic, payload))

    def of_kind(self, kind: str) -> List[tuple]:
        return [event for event in self.events if event[0] == kind]


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def connection_config() -> ConnectionConfig:
    return ConnectionConfig(
        url="http://node.test:5000",
        reconnection_delay=0.01,
        reconnection_delay_max=0.05,
        randomization_factor=0.0,
        connect_timeout=1.0,
    )


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def sample_payload() -> dict:
    return {
        "soil_raw": 512,
        "soil_pct": 42,
        "soil_temp": 18.5,
        "air_temp": 24.0,
        "humidity": 61.0,
        "pump_on": False,
        "manual": False,
        "pump_life": 120,
    }


@pytest.fixture
def eventually():
    async def _eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        async with asyncio.timeout(timeout):
            while not predicate():
                await asyncio.sleep(0.005)

    return _eventually
