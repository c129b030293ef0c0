"""Structured logging helpers."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from .config import Config

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_STANDARD_ATTRS = set(logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
}

# Subsystem loggers that may run at their own level, keyed by the config field.
_SUBSYSTEM_LOGGERS = {
    "scheduler_log_level": ("shades.scheduler", "shades.coalescer"),
    "api_log_level": ("shades.api",),
}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with ``extra=`` context as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        )
        return json.dumps(payload, ensure_ascii=False, default=str)


_REDACT_KEYS = {"authorization", "x-api-key", "cookie"}


def redact_mapping(values: Mapping[str, Any], extra_keys: Iterable[str] = ()) -> Dict[str, Any]:
    """Return a shallow copy of `values` with sensitive keys redacted."""

    redact_keys = _REDACT_KEYS | {key.lower() for key in extra_keys}
    return {
        key: "***REDACTED***" if key.lower() in redact_keys else value
        for key, value in values.items()
    }


def _logger_levels(config: Config) -> Dict[str, Dict[str, str]]:
    loggers = {"shades": {"level": config.log_level.upper()}}
    for field_name, names in _SUBSYSTEM_LOGGERS.items():
        # NOTSET defers to the "shades" level when no override is configured.
        override: Optional[str] = getattr(config, field_name)
        level = override.upper() if override else "NOTSET"
        loggers.update({name: {"level": level} for name in names})
    return loggers


def configure_logging(config: Config) -> None:
    """Install the console handler and per-subsystem levels.

    Subsystem loggers propagate to the root handler, so a level override only
    changes how verbose that subsystem is, never where its records go.
    """

    if config.log_format == "json":
        formatter: Dict[str, Any] = {"()": f"{__name__}.JsonFormatter"}
    else:
        formatter = {
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            "datefmt": "%Y-%m-%dT%H:%M:%S%z",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": formatter},
            "handlers": {
                "console": {"class": "logging.StreamHandler", "formatter": "default"},
            },
            "loggers": _logger_levels(config),
            "root": {"level": config.log_level.upper(), "handlers": ["console"]},
        }
    )


def get_logger(name: str) -> logging.Logger:
    """Return a namespaced logger for the requested subsystem."""

    return logging.getLogger(name)
