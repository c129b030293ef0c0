"""In-memory controller used for dry runs and tests."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import RoomEntry, ShadeEntry
from ..errors import ConnectivityError, ProtocolError
from ..logging import get_logger
from ..models import NATIVE_MAX, DeviceConfig, DeviceStatus, RoomDescriptor, ShadeDescriptor
from .base import Controller


class SimulatedController(Controller):
    """Serve a fixed shade configuration and remember commanded positions.

    Failures can be injected with :meth:`fail_next` to exercise the
    scheduler's backoff and fault handling without a real gateway.
    """

    def __init__(
        self,
        shades: Sequence[ShadeEntry],
        rooms: Sequence[RoomEntry] = (),
        serial_number: str = "SIMULATED-0001",
        software_version: str = "2018",
        latency: float = 0.0,
    ) -> None:
        self.logger = get_logger("shades.controller")
        self._config = DeviceConfig(
            serial_number=serial_number,
            software_version=software_version,
            shades={
                shade.id: ShadeDescriptor(id=shade.id, name=shade.name, room_id=shade.room_id)
                for shade in shades
            },
            rooms={room.id: RoomDescriptor(id=room.id, name=room.name) for room in rooms},
        )
        self._positions: Dict[str, int] = {shade.id: shade.position for shade in shades}
        self._latency = latency
        self._failures: List[BaseException] = []
        self.config_calls = 0
        self.status_calls = 0
        self.commands: List[Tuple[Tuple[str, ...], int]] = []

    @property
    def controller_name(self) -> str:
        return "simulated"

    @property
    def positions(self) -> Dict[str, int]:
        return dict(self._positions)

    def set_native_position(self, shade_id: str, native_position: int) -> None:
        """Move a shade as if someone used the physical remote."""

        self._positions[shade_id] = native_position

    def fail_next(self, count: int = 1, error: Optional[BaseException] = None) -> None:
        """Make the next ``count`` controller calls raise ``error``."""

        for _ in range(count):
            self._failures.append(error or ConnectivityError("Simulated controller unreachable"))

    async def _call(self) -> None:
        if self._latency > 0:
            await asyncio.sleep(self._latency)
        if self._failures:
            raise self._failures.pop(0)

    async def get_config(self) -> DeviceConfig:
        self.config_calls += 1
        await self._call()
        return self._config

    async def get_status(self) -> DeviceStatus:
        self.status_calls += 1
        await self._call()
        return dict(self._positions)

    async def set_position(self, shade_ids: Sequence[str], native_position: int) -> None:
        await self._call()
        if not 0 <= native_position <= NATIVE_MAX:
            raise ProtocolError(f"Native position out of range: {native_position}")
        unknown = [shade_id for shade_id in shade_ids if shade_id not in self._positions]
        if unknown:
            raise ProtocolError(f"Unknown shade ids: {', '.join(unknown)}")
        for shade_id in shade_ids:
            self._positions[shade_id] = native_position
        self.commands.append((tuple(shade_ids), native_position))
        self.logger.debug(
            "Simulated shades moved",
            extra={"shade_ids": list(shade_ids), "native_position": native_position},
        )
