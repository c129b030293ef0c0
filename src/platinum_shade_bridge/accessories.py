"""Host-facing accessory views over the shade state store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from .models import BlindRecord
from .scheduler import RefreshScheduler

MANUFACTURER = "HunterDouglas"


@dataclass(frozen=True)
class AccessoryInformation:
    """Identification shared by every shade behind one controller."""

    manufacturer: str
    model: str
    serial_number: str
    firmware_revision: str = ""


def accessory_information(scheduler: RefreshScheduler) -> AccessoryInformation:
    # The controller's software version is not a dotted firmware string, so it
    # is reported as the model.
    config = scheduler.device_config
    return AccessoryInformation(
        manufacturer=MANUFACTURER,
        model=config.software_version,
        serial_number=config.serial_number,
    )


class ShadeAccessory:
    """One shade as seen by a host integration.

    Getters refresh through the scheduler before reading, so values are never
    older than one polling interval. Concurrent reads share one controller
    call, and a failed refresh is raised to the reader.
    """

    def __init__(self, scheduler: RefreshScheduler, shade_id: str) -> None:
        self._scheduler = scheduler
        self.shade_id = shade_id

    @property
    def record(self) -> BlindRecord:
        return self._scheduler.store.record(self.shade_id)

    @property
    def display_name(self) -> str:
        return self.record.display_name

    @property
    def information(self) -> AccessoryInformation:
        return accessory_information(self._scheduler)

    async def current_position(self) -> int:
        await self._scheduler.refresh()
        return self.record.current_position

    async def target_position(self) -> int:
        await self._scheduler.refresh()
        return self.record.target_position

    async def fault_status(self) -> bool:
        await self._scheduler.refresh()
        return self.record.fault_status

    async def set_target_position(self, percent: int) -> BlindRecord:
        return await self._scheduler.store.set_target(self.shade_id, percent)


def build_accessories(scheduler: RefreshScheduler) -> List[ShadeAccessory]:
    """Create an accessory for every shade the scheduler tracks."""

    return [ShadeAccessory(scheduler, record.id) for record in scheduler.store.records()]
