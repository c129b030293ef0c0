"""Perpetual status polling with backoff on failure."""

from __future__ import annotations

import asyncio
import contextlib
import time
from enum import Enum
from typing import Awaitable, Callable, Optional

from .coalescer import RefreshCoalescer
from .config import DEFAULT_STATUS_POLLING_SECONDS
from .controller.base import Controller, call_with_timeout
from .health import BackoffPolicy, RefreshHealth
from .logging import get_logger
from .metrics import observe_refresh, set_retry_attempt
from .models import DeviceConfig
from .store import AccessoryStateStore


class SchedulerState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class RefreshScheduler:
    """Fetch controller configuration once, then poll shade status forever.

    After a successful poll the next one runs ``base_interval_seconds`` later.
    Any successful refresh, including an on-demand one, resets the retry
    counter to zero. After a failure every shade is flagged faulted and the
    next poll is delayed by :class:`BackoffPolicy`.
    Poll failures are logged and never stop the loop.

    Refreshes requested through :meth:`refresh` (for example by accessory
    reads) share the loop's in-flight operation instead of issuing another
    controller call.
    """

    def __init__(
        self,
        controller: Controller,
        base_interval_seconds: int = DEFAULT_STATUS_POLLING_SECONDS,
        controller_timeout: Optional[float] = None,
        backoff: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if isinstance(base_interval_seconds, bool) or not isinstance(base_interval_seconds, int):
            raise ValueError(f"base_interval_seconds must be an integer; got {base_interval_seconds!r}")
        if base_interval_seconds <= 0:
            raise ValueError(f"base_interval_seconds must be positive; got {base_interval_seconds}")
        self.controller = controller
        self.base_interval_seconds = base_interval_seconds
        self.logger = get_logger("shades.scheduler")
        self._controller_timeout = controller_timeout
        self._backoff = backoff or BackoffPolicy()
        self._sleep = sleep
        self._coalescer: RefreshCoalescer[None] = RefreshCoalescer(self._refresh_status)
        self._retry_attempt = 0
        self._state = SchedulerState.IDLE
        self._health = RefreshHealth()
        self._device_config: Optional[DeviceConfig] = None
        self._store: Optional[AccessoryStateStore] = None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def retry_attempt(self) -> int:
        return self._retry_attempt

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def health(self) -> RefreshHealth:
        return self._health

    @property
    def in_flight(self) -> bool:
        return self._coalescer.in_flight

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def device_config(self) -> DeviceConfig:
        if self._device_config is None:
            raise RuntimeError("Refresh scheduler has not been started")
        return self._device_config

    @property
    def store(self) -> AccessoryStateStore:
        if self._store is None:
            raise RuntimeError("Refresh scheduler has not been started")
        return self._store

    async def start(self) -> AccessoryStateStore:
        """Fetch configuration, build the accessory store and start polling.

        Raises whatever the controller raised if the configuration cannot be
        fetched; polling is not started in that case.
        """

        if self._task:
            return self.store
        self.logger.info("Fetching shade configuration")
        config = await call_with_timeout(
            self.controller.get_config(), self._controller_timeout, "get_config"
        )
        self._device_config = config
        self._store = AccessoryStateStore.from_config(
            config, self.controller, command_timeout=self._controller_timeout
        )
        self.logger.info(
            "Connected to shade controller",
            extra={
                "controller": self.controller.controller_name,
                "serial_number": config.serial_number,
                "software_version": config.software_version,
                "shades": len(self._store),
            },
        )
        self._retry_attempt = 0
        self._task = asyncio.create_task(self._run())
        self.logger.info(
            "Status polling started",
            extra={"interval_seconds": self.base_interval_seconds},
        )
        return self._store

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        await self._coalescer.cancel()
        self._task = None
        self._state = SchedulerState.IDLE
        self.logger.info("Status polling stopped")

    async def refresh(self) -> None:
        """Refresh every shade, sharing any refresh already in flight."""

        if self._store is None:
            raise RuntimeError("Refresh scheduler has not been started")
        await self._coalescer.request_refresh()

    async def _run(self) -> None:
        while True:
            self._state = SchedulerState.REFRESHING
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                delay = self._backoff.next_delay(self._retry_attempt, self.base_interval_seconds)
                self.logger.error(
                    "Status poll failed",
                    extra={"retry_attempt": self._retry_attempt, "delay_seconds": round(delay, 3)},
                    exc_info=(type(exc), exc, exc.__traceback__),
                )
                self._health.record_failure(exc, delay)
                self._retry_attempt += 1
            else:
                self.logger.debug("Status poll succeeded")
                delay = float(self.base_interval_seconds)
            set_retry_attempt(self._retry_attempt)
            self._state = SchedulerState.IDLE
            await self._sleep(delay)

    async def _refresh_status(self) -> None:
        store = self.store
        started = time.perf_counter()
        try:
            status = await call_with_timeout(
                self.controller.get_status(), self._controller_timeout, "get_status"
            )
        except Exception:
            store.apply_failure()
            observe_refresh("failure", time.perf_counter() - started)
            raise
        store.apply_success(status)
        observe_refresh("success", time.perf_counter() - started)
        # Any successful refresh, loop or on-demand, ends the backoff run.
        self._retry_attempt = 0
        set_retry_attempt(0)
        self._health.record_success(float(self.base_interval_seconds))
        self.logger.debug(
            "Shade status refreshed",
            extra={"serial_number": self.device_config.serial_number, "shades": len(store)},
        )
