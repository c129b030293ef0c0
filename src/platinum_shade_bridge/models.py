"""Data models for shade configuration, status and cached accessory state."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

NATIVE_MAX = 255
PERCENT_MAX = 100

# Native positions reported by the controller, keyed by shade id.
DeviceStatus = Mapping[str, int]


def native_to_percent(native: int) -> int:
    """Convert a 0-255 controller position to a 0-100 percentage."""

    percent = round(native / NATIVE_MAX * PERCENT_MAX)
    return max(0, min(PERCENT_MAX, percent))


def percent_to_native(percent: int) -> int:
    """Convert a 0-100 percentage to the controller's 0-255 scale."""

    native = round(percent / PERCENT_MAX * NATIVE_MAX)
    return max(0, min(NATIVE_MAX, native))


@dataclass(frozen=True)
class RoomDescriptor:
    """A room as reported by the controller."""

    id: str
    name: str


@dataclass(frozen=True)
class ShadeDescriptor:
    """A shade as reported by the controller."""

    id: str
    name: str
    room_id: str


@dataclass(frozen=True)
class DeviceConfig:
    """Controller configuration fetched once at startup."""

    serial_number: str
    software_version: str
    shades: Mapping[str, ShadeDescriptor] = field(default_factory=dict)
    rooms: Mapping[str, RoomDescriptor] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "shades", MappingProxyType(dict(self.shades)))
        object.__setattr__(self, "rooms", MappingProxyType(dict(self.rooms)))

    def room_name(self, room_id: str) -> Optional[str]:
        room = self.rooms.get(room_id)
        return room.name if room else None

    def display_name(self, shade: ShadeDescriptor) -> str:
        """Return the accessory label, prefixed with the room name when known."""

        room = self.room_name(shade.room_id)
        return f"{room} {shade.name}" if room else shade.name


@dataclass
class BlindRecord:
    """Cached state for a single shade."""

    id: str
    room_id: str
    name: str
    display_name: str
    current_position: int = 0
    target_position: int = 0
    fault_status: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "room_id": self.room_id,
            "name": self.name,
            "display_name": self.display_name,
            "current_position": self.current_position,
            "target_position": self.target_position,
            "fault_status": self.fault_status,
        }
