"""Controller driver registry."""

from __future__ import annotations

from typing import Callable, Dict

from ..config import Config
from .base import Controller, call_with_timeout
from .simulated import SimulatedController

# Default driver when none is configured
DEFAULT_CONTROLLER = "simulated"


def _simulated(config: Config) -> Controller:
    return SimulatedController(
        shades=config.simulated_shades,
        rooms=config.simulated_rooms,
        serial_number=config.simulated_serial_number,
        software_version=config.simulated_software_version,
        latency=config.simulated_latency,
    )


# Registry of available controller drivers
_CONTROLLER_FACTORIES: Dict[str, Callable[[Config], Controller]] = {
    "simulated": _simulated,
}


def get_controller(config: Config) -> Controller:
    """Build the controller driver selected by the configuration.

    Raises:
        ValueError: If the driver is not recognized
    """
    name = config.controller or DEFAULT_CONTROLLER
    if name not in _CONTROLLER_FACTORIES:
        raise ValueError(
            f"Unknown controller: {name}. "
            f"Supported controllers: {', '.join(_CONTROLLER_FACTORIES.keys())}"
        )
    return _CONTROLLER_FACTORIES[name](config)


def get_supported_controllers() -> list[str]:
    return list(_CONTROLLER_FACTORIES.keys())


__all__ = [
    "Controller",
    "call_with_timeout",
    "SimulatedController",
    "get_controller",
    "get_supported_controllers",
    "DEFAULT_CONTROLLER",
]
