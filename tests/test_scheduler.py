import asyncio
import logging

import pytest

from helpers import FixedJitter, GatedController, ManualSleep, make_controller, wait_until
from platinum_shade_bridge.errors import ConnectivityError
from platinum_shade_bridge.health import BackoffPolicy
from platinum_shade_bridge.scheduler import RefreshScheduler, SchedulerState


def _scheduler(controller, sleep, **kwargs) -> RefreshScheduler:
    return RefreshScheduler(
        controller,
        base_interval_seconds=kwargs.pop("base_interval_seconds", 60),
        controller_timeout=kwargs.pop("controller_timeout", 1.0),
        backoff=BackoffPolicy(rng=FixedJitter(0.5)),
        sleep=sleep,
        **kwargs,
    )


@pytest.mark.parametrize("interval", [0, -5, 1.5, True])
def test_base_interval_must_be_positive_integer(interval) -> None:
    with pytest.raises(ValueError):
        RefreshScheduler(make_controller(), base_interval_seconds=interval)


def test_store_unavailable_before_start() -> None:
    scheduler = RefreshScheduler(make_controller())
    with pytest.raises(RuntimeError):
        scheduler.store


@pytest.mark.asyncio
async def test_first_poll_runs_immediately_then_waits_base_interval(scheduler, controller, manual_sleep) -> None:
    await wait_until(lambda: len(manual_sleep.delays) == 1)

    assert controller.config_calls == 1
    assert controller.status_calls == 1
    assert manual_sleep.delays == [60.0]
    assert scheduler.retry_attempt == 0
    assert scheduler.state is SchedulerState.IDLE
    assert scheduler.health.status == "ok"
    assert scheduler.store.record("B").current_position == 100


@pytest.mark.asyncio
async def test_next_poll_fires_after_timer(scheduler, controller, manual_sleep) -> None:
    await wait_until(lambda: len(manual_sleep.delays) == 1)
    controller.set_native_position("A", 255)

    manual_sleep.tick()
    await wait_until(lambda: len(manual_sleep.delays) == 2)

    assert controller.status_calls == 2
    assert controller.config_calls == 1
    assert scheduler.store.record("A").current_position == 100


@pytest.mark.asyncio
async def test_failures_back_off_then_recover(controller, manual_sleep) -> None:
    scheduler = _scheduler(controller, manual_sleep)
    await scheduler.start()
    # The first poll has not run yet, so all three polls fail.
    controller.fail_next(3)
    try:
        await wait_until(lambda: len(manual_sleep.delays) == 1)
        assert scheduler.retry_attempt == 1
        assert all(record.fault_status for record in scheduler.store.records())

        manual_sleep.tick()
        await wait_until(lambda: len(manual_sleep.delays) == 2)
        assert scheduler.retry_attempt == 2

        manual_sleep.tick()
        await wait_until(lambda: len(manual_sleep.delays) == 3)
        assert scheduler.retry_attempt == 3
        assert scheduler.health.status == "degraded"

        manual_sleep.tick()
        await wait_until(lambda: len(manual_sleep.delays) == 4)

        assert manual_sleep.delays == [60.5, 60.5, 61.5, 60.0]
        assert scheduler.retry_attempt == 0
        assert scheduler.health.status == "ok"
        assert not any(record.fault_status for record in scheduler.store.records())
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_failed_poll_keeps_positions_and_logs(controller, manual_sleep, caplog) -> None:
    scheduler = _scheduler(controller, manual_sleep)
    await scheduler.start()
    try:
        await wait_until(lambda: len(manual_sleep.delays) == 1)
        controller.fail_next()
        caplog.set_level(logging.ERROR, logger="shades.scheduler")

        manual_sleep.tick()
        await wait_until(lambda: len(manual_sleep.delays) == 2)

        assert scheduler.retry_attempt == 1
        assert scheduler.running
        record = scheduler.store.record("B")
        assert record.fault_status is True
        assert record.current_position == 100
        assert any("Status poll failed" in r.message for r in caplog.records)
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_on_demand_refreshes_join_loop_refresh(manual_sleep) -> None:
    controller = make_controller(GatedController)
    scheduler = _scheduler(controller, manual_sleep)
    await scheduler.start()
    try:
        await wait_until(lambda: controller.status_calls == 1)
        assert scheduler.in_flight
        assert scheduler.state is SchedulerState.REFRESHING

        readers = [asyncio.create_task(scheduler.refresh()) for _ in range(4)]
        await asyncio.sleep(0)
        controller.gate.set()
        await asyncio.gather(*readers)
        await wait_until(lambda: len(manual_sleep.delays) == 1)

        assert controller.status_calls == 1
        assert not scheduler.in_flight
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_on_demand_refresh_failure_reaches_every_reader(manual_sleep) -> None:
    controller = make_controller(GatedController)
    scheduler = _scheduler(controller, manual_sleep)
    await scheduler.start()
    try:
        await wait_until(lambda: controller.status_calls == 1)
        controller.fail_next()
        readers = [asyncio.create_task(scheduler.refresh()) for _ in range(3)]
        await asyncio.sleep(0)
        controller.gate.set()
        results = await asyncio.gather(*readers, return_exceptions=True)

        assert controller.status_calls == 1
        assert all(isinstance(result, ConnectivityError) for result in results)
        await wait_until(lambda: len(manual_sleep.delays) == 1)
        assert scheduler.retry_attempt == 1
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_hung_status_call_times_out(manual_sleep) -> None:
    controller = make_controller(GatedController)
    scheduler = _scheduler(controller, manual_sleep, controller_timeout=0.05)
    await scheduler.start()
    try:
        await wait_until(lambda: len(manual_sleep.delays) == 1)
        assert scheduler.retry_attempt == 1
        assert "timed out" in scheduler.health.last_error
        assert all(record.fault_status for record in scheduler.store.records())
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_start_propagates_config_failure(controller, manual_sleep) -> None:
    controller.fail_next()
    scheduler = _scheduler(controller, manual_sleep)

    with pytest.raises(ConnectivityError):
        await scheduler.start()

    assert not scheduler.running
    assert controller.status_calls == 0


@pytest.mark.asyncio
async def test_stop_cancels_loop(scheduler, manual_sleep) -> None:
    await wait_until(lambda: len(manual_sleep.delays) == 1)
    await scheduler.stop()
    assert not scheduler.running


@pytest.mark.asyncio
async def test_on_demand_success_resets_retry_attempt(controller, manual_sleep) -> None:
    scheduler = _scheduler(controller, manual_sleep)
    await scheduler.start()
    controller.fail_next(3)
    try:
        await wait_until(lambda: len(manual_sleep.delays) == 1)
        manual_sleep.tick()
        await wait_until(lambda: len(manual_sleep.delays) == 2)
        manual_sleep.tick()
        await wait_until(lambda: len(manual_sleep.delays) == 3)
        assert scheduler.retry_attempt == 3

        await scheduler.refresh()

        assert scheduler.retry_attempt == 0
        assert scheduler.health.status == "ok"
        assert not any(record.fault_status for record in scheduler.store.records())

        # The next loop failure backs off from the first attempt again.
        controller.fail_next()
        manual_sleep.tick()
        await wait_until(lambda: len(manual_sleep.delays) == 4)
        assert manual_sleep.delays[-1] == 60.5
        assert scheduler.retry_attempt == 1
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_stop_cancels_in_flight_refresh(manual_sleep) -> None:
    controller = make_controller(GatedController)
    scheduler = _scheduler(controller, manual_sleep)
    await scheduler.start()
    await wait_until(lambda: controller.status_calls == 1)
    assert scheduler.in_flight
    before = scheduler.store.record("A").current_position

    await scheduler.stop()

    assert not scheduler.in_flight
    controller.set_native_position("A", 255)
    controller.gate.set()
    await asyncio.sleep(0.01)
    assert scheduler.store.record("A").current_position == before
    assert controller.status_calls == 1
