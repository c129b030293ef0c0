import asyncio
from typing import Callable, List

from platinum_shade_bridge.config import RoomEntry, ShadeEntry
from platinum_shade_bridge.controller import SimulatedController
from platinum_shade_bridge.models import DeviceStatus


class FixedJitter:
    """Random source whose uniform draw is always the same fraction of the range."""

    def __init__(self, fraction: float = 0.5) -> None:
        self.fraction = fraction

    def uniform(self, a: float, b: float) -> float:
        return a + (b - a) * self.fraction


class ManualSleep:
    """Stand-in for asyncio.sleep that records delays and waits for tick()."""

    def __init__(self) -> None:
        self.delays: List[float] = []
        self._ticks: asyncio.Queue[None] = asyncio.Queue()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await self._ticks.get()

    def tick(self) -> None:
        self._ticks.put_nowait(None)


class GatedController(SimulatedController):
    """Simulated controller whose get_status blocks until released."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.gate = asyncio.Event()

    async def get_status(self) -> DeviceStatus:
        self.status_calls += 1
        await self.gate.wait()
        if self._failures:
            raise self._failures.pop(0)
        return dict(self._positions)


def make_controller(cls=SimulatedController, **kwargs) -> SimulatedController:
    return cls(
        shades=[
            ShadeEntry(id="A", name="Left", room_id="1", position=0),
            ShadeEntry(id="B", name="Right", room_id="1", position=255),
        ],
        rooms=[RoomEntry(id="1", name="Kitchen")],
        serial_number="SN-0042",
        software_version="2018",
        **kwargs,
    )


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached")
        await asyncio.sleep(0.001)
