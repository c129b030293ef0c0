"""Entrypoint for the Platinum shade bridge."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from typing import Iterable, Optional

from .api import ApiService
from .config import Config, load_config
from .controller import get_controller
from .health import BackoffPolicy
from .logging import configure_logging, get_logger
from .scheduler import RefreshScheduler


async def _start_scheduler(
    stop_event: asyncio.Event, config: Config, scheduler: RefreshScheduler
) -> bool:
    """Fetch the controller configuration, retrying with backoff until it succeeds."""

    logger = get_logger("shades.scheduler")
    backoff = BackoffPolicy()
    failures = 0
    while not stop_event.is_set():
        try:
            store = await scheduler.start()
        except Exception:
            failures += 1
            if config.startup_retry_limit and failures >= config.startup_retry_limit:
                logger.exception(
                    "Unable to fetch shade configuration; giving up",
                    extra={"attempts": failures},
                )
                return False
            delay = backoff.next_delay(failures - 1, config.status_polling_seconds)
            logger.exception(
                "Unable to fetch shade configuration; will retry",
                extra={"attempts": failures, "delay_seconds": round(delay, 3)},
            )
            await _wait_or_stop(stop_event, delay)
            continue
        logger.info("Found shades", extra={"count": len(store)})
        return True
    return False


async def _run_async(config: Config) -> None:
    logger = get_logger("shades")
    stop_event = asyncio.Event()

    def _request_shutdown(sig: Optional[str] = None) -> None:
        if not stop_event.is_set():
            logger.warning("Shutdown requested", extra={"signal": sig})
            stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_shutdown, sig.name)

    controller = get_controller(config)
    scheduler = RefreshScheduler(
        controller,
        base_interval_seconds=config.status_polling_seconds,
        controller_timeout=config.controller_timeout_seconds,
    )
    api: Optional[ApiService] = None
    try:
        if not await _start_scheduler(stop_event, config, scheduler):
            return
        if config.api_enabled:
            api = ApiService(config, scheduler)
            await api.start()
        logger.info(
            "Bridge services started",
            extra={
                "controller": controller.controller_name,
                "status_polling_seconds": config.status_polling_seconds,
                "api_enabled": config.api_enabled,
                "api_port": config.api_port,
            },
        )
        await stop_event.wait()
    finally:
        if api:
            await api.stop()
        await scheduler.stop()
        await controller.close()
        logger.info("Bridge shutdown complete")


async def _wait_or_stop(stop_event: asyncio.Event, delay: float) -> None:
    if delay <= 0:
        return
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return


def run(cli_args: Optional[Iterable[str]] = None) -> None:
    """CLI entrypoint used by the console script."""

    config = load_config(cli_args)
    configure_logging(config)
    logger = get_logger("shades")
    logger.info("Loaded configuration", extra={"config": config.logging_dict()})
    try:
        asyncio.run(_run_async(config))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")


if __name__ == "__main__":
    run()
