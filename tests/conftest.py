from __future__ import annotations

import asyncio
import inspect
import sys
from pathlib import Path
from typing import Any, Callable, List

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import ClientSettings  # noqa: E402
from transport.base import TransportRequest  # noqa: E402


class FakeTransport:
    """Records every request and answers through ``handler``."""

    def __init__(self, handler: Callable[[TransportRequest], Any]):
        self.handler = handler
        self.calls: List[TransportRequest] = []
        self.closed = False

    async def request(self, request: TransportRequest):
        self.calls.append(request)
        result = self.handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def close(self) -> None:
        self.closed = True

    def paths(self) -> List[str]:
        return [call.url.split("://", 1)[-1].split("/", 1)[-1] for call in self.calls]


class FakeClock:
    """Monotonic clock advanced only by ``sleep``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> ClientSettings:
    return ClientSettings(
        base_url="http://comfy.test:8188",
        client_id="client_test",
        max_retries=2,
        retry_base_delay_s=1.0,
        retry_max_delay_s=5.0,
        poll_interval_s=1.0,
        poll_max_delay_s=10.0,
        max_wait_s=60.0,
    )


@pytest.fixture
def make_transport():
    def _make(handler: Callable[[TransportRequest], Any]) -> FakeTransport:
        return FakeTransport(handler)

    return _make
