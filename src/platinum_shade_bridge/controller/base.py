"""Base interface for shade controller drivers."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Optional, Sequence, TypeVar

from ..errors import ConnectivityError
from ..models import DeviceConfig, DeviceStatus

T = TypeVar("T")


async def call_with_timeout(call: Awaitable[T], timeout: Optional[float], operation: str) -> T:
    """Await a controller call, converting a timeout into ``ConnectivityError``."""

    if timeout is None:
        return await call
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ConnectivityError(f"Controller {operation} timed out after {timeout}s") from exc


class Controller(ABC):
    """Abstract base class for shade controller drivers.

    A driver owns the connection to the physical gateway. Each operation is a
    coroutine that either returns a value or raises one of the errors from
    :mod:`platinum_shade_bridge.errors`:

    - ``ConnectivityError`` when the gateway cannot be reached
    - ``ProtocolError`` when a response cannot be understood
    """

    @abstractmethod
    async def get_config(self) -> DeviceConfig:
        """Fetch the gateway's shade and room configuration.

        Returns:
            Immutable configuration including serial number and software version.
        """

    @abstractmethod
    async def get_status(self) -> DeviceStatus:
        """Fetch the current native position (0-255) of every shade.

        Implementations must not mutate caller state when they fail.
        """

    @abstractmethod
    async def set_position(self, shade_ids: Sequence[str], native_position: int) -> None:
        """Move the given shades to a native position (0-255)."""

    @property
    @abstractmethod
    def controller_name(self) -> str:
        """Get the driver identifier (e.g., 'simulated')."""

    async def close(self) -> None:
        """Release any connection resources held by the driver."""

        return None
