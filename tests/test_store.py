import pytest

from helpers import make_controller
from platinum_shade_bridge.errors import ConnectivityError, UnknownShadeError, ValidationError
from platinum_shade_bridge.models import native_to_percent, percent_to_native
from platinum_shade_bridge.store import AccessoryStateStore


async def _store(controller=None) -> AccessoryStateStore:
    controller = controller or make_controller()
    config = await controller.get_config()
    return AccessoryStateStore.from_config(config, controller)


@pytest.mark.parametrize("percent", [0, 1, 50, 99, 100])
def test_percent_native_round_trip(percent: int) -> None:
    assert abs(native_to_percent(percent_to_native(percent)) - percent) <= 1


def test_conversions_clamp_to_range() -> None:
    assert native_to_percent(255) == 100
    assert native_to_percent(300) == 100
    assert percent_to_native(50) == 128
    assert percent_to_native(-5) == 0


@pytest.mark.asyncio
async def test_records_built_from_config() -> None:
    store = await _store()
    assert len(store) == 2
    assert "A" in store
    record = store.record("A")
    assert record.display_name == "Kitchen Left"
    assert record.room_id == "1"
    assert record.fault_status is False


@pytest.mark.asyncio
async def test_apply_success_converts_native_positions() -> None:
    store = await _store()
    store.apply_success({"A": 0, "B": 255})

    a, b = store.record("A"), store.record("B")
    assert (a.current_position, a.target_position, a.fault_status) == (0, 0, False)
    assert (b.current_position, b.target_position, b.fault_status) == (100, 100, False)


@pytest.mark.asyncio
async def test_apply_failure_flags_faults_and_keeps_positions() -> None:
    store = await _store()
    store.apply_success({"A": 128, "B": 255})
    store.apply_failure()

    assert all(record.fault_status for record in store.records())
    assert store.record("A").current_position == 50
    assert store.record("B").current_position == 100
    assert store.faulted_count() == 2


@pytest.mark.asyncio
async def test_apply_success_clears_faults() -> None:
    store = await _store()
    store.apply_failure()
    store.apply_success({"A": 64, "B": 192})
    assert store.faulted_count() == 0
    assert store.record("A").current_position == 25
    assert store.record("B").current_position == 75


@pytest.mark.asyncio
async def test_missing_status_entry_marks_shade_faulted(caplog) -> None:
    store = await _store()
    store.apply_success({"A": 255, "B": 255})
    store.apply_success({"A": 0})

    assert store.record("A").current_position == 0
    assert store.record("A").fault_status is False
    assert store.record("B").fault_status is True
    assert store.record("B").current_position == 100
    assert any("missing shades" in record.message for record in caplog.records)


@pytest.mark.asyncio
async def test_set_target_commands_native_position_and_updates_optimistically() -> None:
    controller = make_controller()
    store = await _store(controller)

    record = await store.set_target("A", 50)

    assert controller.commands == [(("A",), 128)]
    assert record.current_position == 50
    assert record.target_position == 50
    assert store.record("A").current_position == 50


@pytest.mark.asyncio
@pytest.mark.parametrize("percent", [-1, 101, 50.5, True])
async def test_set_target_rejects_invalid_positions(percent) -> None:
    controller = make_controller()
    store = await _store(controller)

    with pytest.raises(ValidationError):
        await store.set_target("A", percent)
    assert controller.commands == []


@pytest.mark.asyncio
async def test_set_target_unknown_shade() -> None:
    store = await _store()
    with pytest.raises(UnknownShadeError):
        await store.set_target("missing", 10)


@pytest.mark.asyncio
async def test_set_target_failure_propagates_without_mutation() -> None:
    controller = make_controller()
    store = await _store(controller)
    store.apply_success({"A": 255, "B": 255})
    controller.fail_next()

    with pytest.raises(ConnectivityError):
        await store.set_target("A", 10)

    record = store.record("A")
    assert record.current_position == 100
    assert record.target_position == 100
    assert controller.commands == []
