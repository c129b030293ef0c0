import pytest_asyncio

from helpers import FixedJitter, ManualSleep, make_controller
from platinum_shade_bridge.health import BackoffPolicy
from platinum_shade_bridge.scheduler import RefreshScheduler


@pytest_asyncio.fixture
async def manual_sleep() -> ManualSleep:
    return ManualSleep()


@pytest_asyncio.fixture
async def controller():
    return make_controller()


@pytest_asyncio.fixture
async def scheduler(controller, manual_sleep):
    scheduler = RefreshScheduler(
        controller,
        base_interval_seconds=60,
        controller_timeout=1.0,
        backoff=BackoffPolicy(rng=FixedJitter(0.5)),
        sleep=manual_sleep,
    )
    await scheduler.start()
    try:
        yield scheduler
    finally:
        await scheduler.stop()
