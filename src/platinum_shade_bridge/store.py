"""In-memory accessory state for tracked shades."""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from .controller.base import Controller, call_with_timeout
from .errors import UnknownShadeError, ValidationError
from .logging import get_logger
from .metrics import record_command_result, set_faulted_shades
from .models import PERCENT_MAX, BlindRecord, DeviceConfig, DeviceStatus, native_to_percent, percent_to_native


class AccessoryStateStore:
    """Hold cached shade state and apply refresh outcomes and commands to it.

    Records are created once from the controller configuration and live for
    the lifetime of the process.
    """

    def __init__(
        self,
        records: List[BlindRecord],
        controller: Controller,
        command_timeout: Optional[float] = None,
    ) -> None:
        self._records: Dict[str, BlindRecord] = {record.id: record for record in records}
        self._controller = controller
        self._command_timeout = command_timeout
        self.logger = get_logger("shades.store")

    @classmethod
    def from_config(
        cls,
        config: DeviceConfig,
        controller: Controller,
        command_timeout: Optional[float] = None,
    ) -> "AccessoryStateStore":
        records = [
            BlindRecord(
                id=shade.id,
                room_id=shade.room_id,
                name=shade.name,
                display_name=config.display_name(shade),
            )
            for shade in config.shades.values()
        ]
        return cls(records, controller, command_timeout=command_timeout)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, shade_id: object) -> bool:
        return shade_id in self._records

    def __iter__(self) -> Iterator[BlindRecord]:
        return iter(self._records.values())

    def records(self) -> List[BlindRecord]:
        return list(self._records.values())

    def record(self, shade_id: str) -> BlindRecord:
        try:
            return self._records[shade_id]
        except KeyError:
            raise UnknownShadeError(f"Unknown shade: {shade_id}") from None

    def apply_success(self, status: DeviceStatus) -> None:
        """Update every record from a fresh controller status.

        A shade missing from ``status`` is marked faulted and keeps its last
        known positions.
        """

        missing: List[str] = []
        for record in self._records.values():
            native = status.get(record.id)
            if native is None:
                record.fault_status = True
                missing.append(record.id)
                continue
            percent = native_to_percent(native)
            record.current_position = percent
            record.target_position = percent
            record.fault_status = False
        if missing:
            self.logger.warning(
                "Controller status missing shades; marking them faulted",
                extra={"shade_ids": missing},
            )
        self._publish_faults()

    def apply_failure(self) -> None:
        """Flag every record as faulted, leaving positions untouched."""

        for record in self._records.values():
            record.fault_status = True
        self._publish_faults()

    async def set_target(self, shade_id: str, percent: int) -> BlindRecord:
        """Command a shade to a percent position.

        On success the record is updated optimistically without waiting for the
        next poll. Controller failures propagate and leave the record as is.
        """

        record = self.record(shade_id)
        if isinstance(percent, bool) or not isinstance(percent, int):
            raise ValidationError(f"Position must be an integer percent; got {percent!r}")
        if not 0 <= percent <= PERCENT_MAX:
            raise ValidationError(f"Position must be between 0 and {PERCENT_MAX}; got {percent}")
        native = percent_to_native(percent)
        self.logger.info(
            "Setting shade position",
            extra={"shade_id": shade_id, "percent": percent, "native_position": native},
        )
        try:
            await call_with_timeout(
                self._controller.set_position([shade_id], native),
                self._command_timeout,
                "set_position",
            )
        except Exception:
            record_command_result("failure")
            self.logger.warning(
                "Shade command failed",
                extra={"shade_id": shade_id, "percent": percent},
                exc_info=True,
            )
            raise
        record_command_result("success")
        record.current_position = percent
        record.target_position = percent
        return record

    def faulted_count(self) -> int:
        return sum(1 for record in self._records.values() if record.fault_status)

    def _publish_faults(self) -> None:
        set_faulted_shades(self.faulted_count())
