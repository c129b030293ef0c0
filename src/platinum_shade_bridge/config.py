"""Configuration loading for the Platinum shade bridge."""

from __future__ import annotations

import argparse
import json
import os
import re
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence, TypeVar

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for older interpreters
    import tomli as tomllib  # type: ignore


CONFIG_ENV_PREFIX = "PLATINUM_SHADES_"
CONFIG_VERSION = 1
MIN_SUPPORTED_CONFIG_VERSION = 1
DEFAULT_STATUS_POLLING_SECONDS = 60
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class RoomEntry:
    """Room definition served by the simulated controller."""

    id: str
    name: str


@dataclass(frozen=True)
class ShadeEntry:
    """Shade definition served by the simulated controller."""

    id: str
    name: str
    room_id: str
    position: int = 0


@dataclass(frozen=True)
class Config:
    """Application configuration."""

    status_polling_seconds: int = DEFAULT_STATUS_POLLING_SECONDS
    controller: str = "simulated"
    controller_host: Optional[str] = None
    controller_port: int = 522
    controller_timeout_seconds: float = 30.0
    startup_retry_limit: int = 0
    api_enabled: bool = True
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_key: Optional[str] = None
    api_bearer_token: Optional[str] = None
    api_docs: bool = True
    simulated_serial_number: str = "SIMULATED-0001"
    simulated_software_version: str = "2018"
    simulated_latency: float = 0.0
    simulated_rooms: Sequence[RoomEntry] = ()
    simulated_shades: Sequence[ShadeEntry] = ()
    log_format: str = "plain"
    log_level: str = "INFO"
    scheduler_log_level: Optional[str] = None
    api_log_level: Optional[str] = None
    config_version: int = CONFIG_VERSION

    def __post_init__(self) -> None:
        _validate_config(self)

    def logging_dict(self) -> Dict[str, Any]:
        """Return a sanitized mapping suitable for structured logging."""

        return {
            "config_version": self.config_version,
            "status_polling_seconds": self.status_polling_seconds,
            "controller": self.controller,
            "controller_host": self.controller_host,
            "controller_port": self.controller_port,
            "controller_timeout_seconds": self.controller_timeout_seconds,
            "startup_retry_limit": self.startup_retry_limit,
            "api_enabled": self.api_enabled,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "api_key": "***REDACTED***" if self.api_key else None,
            "api_bearer_token": "***REDACTED***" if self.api_bearer_token else None,
            "api_docs": self.api_docs,
            "simulated_serial_number": self.simulated_serial_number,
            "simulated_software_version": self.simulated_software_version,
            "simulated_latency": self.simulated_latency,
            "simulated_rooms": [{"id": room.id, "name": room.name} for room in self.simulated_rooms],
            "simulated_shades": [
                {"id": shade.id, "name": shade.name, "room_id": shade.room_id, "position": shade.position}
                for shade in self.simulated_shades
            ],
            "log_format": self.log_format,
            "log_level": self.log_level,
            "scheduler_log_level": self.scheduler_log_level,
            "api_log_level": self.api_log_level,
        }

    @classmethod
    def from_sources(cls, cli_args: Optional[Iterable[str]] = None) -> "Config":
        """Load configuration from defaults, file, env, and CLI (in that order)."""

        args = _parse_cli(cli_args)
        file_config = _load_file_config(
            args.config
            or _coerce_path(os.environ.get(f"{CONFIG_ENV_PREFIX}CONFIG"))
            or None
        )
        env_config = _load_env_config(CONFIG_ENV_PREFIX)
        cli_config = _cli_overrides(args)

        config = cls()
        config = _apply_mapping(config, file_config)
        config = _apply_mapping(config, env_config)
        config = _apply_mapping(config, cli_config)
        return config


def _validate_config(config: Config) -> None:
    _validate_version(config.config_version)
    if isinstance(config.status_polling_seconds, bool) or not isinstance(config.status_polling_seconds, int):
        raise ValueError(
            f"status_polling_seconds must be a positive integer; got {config.status_polling_seconds!r}."
        )
    _validate_range("status_polling_seconds", config.status_polling_seconds, 1, 86400)
    _validate_range("controller_port", config.controller_port, 1, 65535)
    _validate_range("controller_timeout_seconds", config.controller_timeout_seconds, 0.1, 600.0)
    _validate_range("startup_retry_limit", config.startup_retry_limit, 0, 100000)
    _validate_range("api_port", config.api_port, 1, 65535)
    _validate_range("simulated_latency", config.simulated_latency, 0.0, 60.0)
    for shade in config.simulated_shades:
        _validate_range(f"simulated shade {shade.id} position", shade.position, 0, 255)
    if config.log_format not in {"plain", "json"}:
        raise ValueError(f"log_format must be 'plain' or 'json'; got {config.log_format}.")
    for field_name, value in (
        ("log_level", config.log_level),
        ("scheduler_log_level", config.scheduler_log_level),
        ("api_log_level", config.api_log_level),
    ):
        _validate_log_level_value(value, field_name)


def _validate_version(version: int) -> None:
    if version < MIN_SUPPORTED_CONFIG_VERSION:
        raise ValueError(
            f"Config version {version} is too old; minimum supported is {MIN_SUPPORTED_CONFIG_VERSION}."
        )
    if version > CONFIG_VERSION:
        raise ValueError(
            f"Config version {version} is newer than supported ({CONFIG_VERSION}); please upgrade the bridge."
        )


def _validate_range(name: str, value: float, minimum: float, maximum: float) -> None:
    if value < minimum or value > maximum:
        raise ValueError(f"{name} must be between {minimum} and {maximum}; got {value}.")


def _validate_log_level_value(value: Optional[str], name: str) -> None:
    if value is None:
        return
    if value.upper() not in LOG_LEVELS:
        raise ValueError(f"{name} must be one of {sorted(LOG_LEVELS)}; got {value}.")


def _parse_cli(cli_args: Optional[Iterable[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="platinum-shade-bridge",
        description="Poll a Platinum shade controller and serve shade state over HTTP.",
    )
    parser.add_argument("--config", type=Path, help="Path to TOML config file.")
    parser.add_argument(
        "--status-polling-seconds",
        type=int,
        help=f"Seconds between status polls (default {DEFAULT_STATUS_POLLING_SECONDS}).",
    )
    parser.add_argument(
        "--controller",
        type=str,
        help="Controller driver to use (e.g., 'simulated').",
    )
    parser.add_argument("--controller-host", type=str, help="Hostname or IP of the shade controller.")
    parser.add_argument("--controller-port", type=int, help="TCP port of the shade controller.")
    parser.add_argument(
        "--controller-timeout-seconds",
        type=float,
        help="Seconds to wait for any single controller call before treating it as failed.",
    )
    parser.add_argument(
        "--startup-retry-limit",
        type=int,
        help="Attempts to fetch controller configuration at startup (0 retries forever).",
    )
    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Do not start the HTTP API server.",
    )
    parser.add_argument("--api-host", type=str, help="Interface for the HTTP API server.")
    parser.add_argument("--api-port", type=int, help="TCP port for the HTTP API server.")
    parser.add_argument(
        "--api-key",
        type=str,
        help="API key required via X-API-Key or Authorization: ApiKey <key>.",
    )
    parser.add_argument(
        "--api-bearer-token",
        type=str,
        help="Bearer token required via Authorization: Bearer <token>.",
    )
    parser.add_argument(
        "--no-api-docs",
        action="store_true",
        help="Disable interactive API docs.",
    )
    parser.add_argument(
        "--simulated-latency",
        type=float,
        help="Artificial delay in seconds added to simulated controller calls.",
    )
    parser.add_argument(
        "--room",
        action="append",
        dest="simulated_rooms",
        help="Simulated room as id=<id>,name=<name>.",
    )
    parser.add_argument(
        "--shade",
        action="append",
        dest="simulated_shades",
        help="Simulated shade as id=<id>,name=<name>,room_id=<room>[,position=<0-255>].",
    )
    parser.add_argument(
        "--log-format",
        choices=["plain", "json"],
        help="Structured logging format.",
    )
    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        help="Log verbosity level.",
    )
    parser.add_argument(
        "--scheduler-log-level",
        choices=list(LOG_LEVELS),
        help="Log verbosity for the refresh scheduler.",
    )
    parser.add_argument(
        "--api-log-level",
        choices=list(LOG_LEVELS),
        help="Log verbosity for the API server.",
    )
    parser.add_argument(
        "--config-version",
        type=int,
        help="Version of the configuration schema being supplied.",
    )
    return parser.parse_args(args=cli_args)


def _load_file_config(path: Optional[Path]) -> Dict[str, Any]:
    if path is None:
        return {}
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("rb") as f:
        parsed = tomllib.load(f)
    if not isinstance(parsed, Mapping):
        raise ValueError("Configuration file must contain a TOML table.")
    return {k.replace("-", "_"): v for k, v in parsed.items()}


def _load_env_config(prefix: str) -> Dict[str, Any]:
    mapping: Dict[str, Any] = {}
    for field in Config.__dataclass_fields__:
        env_key = f"{prefix}{field}".upper()
        if env_key in os.environ:
            mapping[field] = os.environ[env_key]
    return mapping


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    mapping = {
        k: v
        for k, v in vars(args).items()
        if k not in ("config", "no_api", "no_api_docs") and v is not None
    }
    if args.no_api:
        mapping["api_enabled"] = False
    if args.no_api_docs:
        mapping["api_docs"] = False
    return mapping


def _apply_mapping(config: Config, overrides: Mapping[str, Any]) -> Config:
    data: MutableMapping[str, Any] = {}
    for key, value in overrides.items():
        if value is None:
            continue
        if key in {
            "status_polling_seconds",
            "controller_port",
            "startup_retry_limit",
            "api_port",
            "config_version",
        }:
            data[key] = int(value)
        elif key in {"controller_timeout_seconds", "simulated_latency"}:
            data[key] = float(value)
        elif key in {"log_level", "scheduler_log_level", "api_log_level"}:
            data[key] = str(value).upper()
        elif key in {"log_format", "controller"}:
            data[key] = str(value).lower()
        elif key in {"api_enabled", "api_docs"}:
            data[key] = _coerce_bool(value)
        elif key == "simulated_rooms":
            data[key] = _coerce_entries(value, _room_from_mapping)
        elif key == "simulated_shades":
            data[key] = _coerce_entries(value, _shade_from_mapping)
        else:
            data[key] = value
    return replace(config, **data)


def _coerce_path(value: Any) -> Optional[Path]:
    if value is None:
        return None
    return value if isinstance(value, Path) else Path(str(value)).expanduser()


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


_Entry = TypeVar("_Entry", RoomEntry, ShadeEntry)


def _coerce_entries(value: Any, factory: Callable[[Mapping[str, Any]], _Entry]) -> Sequence[_Entry]:
    if value is None:
        return ()
    if isinstance(value, (RoomEntry, ShadeEntry)):
        return (value,)  # type: ignore[return-value]
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return (factory(_pairs_from_str(value)),)
        return _coerce_entries(parsed, factory)
    if isinstance(value, Mapping):
        return (factory(value),)

    if isinstance(value, Iterable):
        entries: List[_Entry] = []
        for item in value:
            entries.extend(_coerce_entries(item, factory))
        return tuple(entries)

    raise ValueError("Unsupported simulated room/shade configuration")


def _room_from_mapping(value: Mapping[str, Any]) -> RoomEntry:
    if "id" not in value or "name" not in value:
        raise ValueError("Rooms require 'id' and 'name' fields")
    return RoomEntry(id=str(value["id"]), name=str(value["name"]))


def _shade_from_mapping(value: Mapping[str, Any]) -> ShadeEntry:
    if "id" not in value or "name" not in value:
        raise ValueError("Shades require 'id' and 'name' fields")
    room_id = value.get("room_id", value.get("room"))
    return ShadeEntry(
        id=str(value["id"]),
        name=str(value["name"]),
        room_id=str(room_id) if room_id is not None else "",
        position=int(value.get("position", 0)),
    )


_PAIR = re.compile(r"(?P<key>[^=]+)=(?P<value>.+)")


def _pairs_from_str(value: str) -> Dict[str, str]:
    mapping: Dict[str, str] = {}
    for part in (part.strip() for part in value.split(",")):
        if not part:
            continue
        match = _PAIR.match(part)
        if not match:
            raise ValueError("Room and shade arguments must be key=value pairs separated by commas")
        mapping[match.group("key").strip()] = match.group("value").strip()
    return mapping


def load_config(cli_args: Optional[Iterable[str]] = None) -> Config:
    """Public helper used by the entrypoint."""

    try:
        return Config.from_sources(cli_args)
    except Exception as exc:  # pragma: no cover
        print(f"Failed to load configuration: {exc}", file=sys.stderr)
        raise
