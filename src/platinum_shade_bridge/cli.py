"""Command-line client for interacting with the bridge HTTP API."""

from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import dataclass
from typing import Any, Callable, Iterable, MutableMapping, Optional

import httpx
import yaml


DEFAULT_SERVER_URL = "http://127.0.0.1:8000"
ENV_PREFIX = "PLATINUM_SHADES_"


class CliError(Exception):
    """Raised when the CLI encounters an expected error condition."""


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for the API client."""

    server_url: str
    api_key: Optional[str]
    api_bearer_token: Optional[str]
    output: str
    timeout: float = 10.0


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="platinum-shades",
        description=(
            "CLI for the Platinum shade bridge API. Uses PLATINUM_SHADES_* env vars "
            "for defaults and prints JSON (default) or YAML. Examples: "
            "`platinum-shades shades list`, `platinum-shades shades set 12 --position 50`."
        ),
    )
    parser.add_argument(
        "--server-url",
        default=_env("SERVER_URL", DEFAULT_SERVER_URL),
        help=(
            f"Base URL for the bridge API (env: {ENV_PREFIX}SERVER_URL). "
            f"Defaults to {DEFAULT_SERVER_URL}."
        ),
    )
    parser.add_argument(
        "--api-key",
        default=_env("API_KEY"),
        help=(
            f"API key for authentication (env: {ENV_PREFIX}API_KEY). Sets both "
            "'X-API-Key' and 'Authorization: ApiKey <key>' headers when provided."
        ),
    )
    parser.add_argument(
        "--api-bearer-token",
        default=_env("API_BEARER_TOKEN"),
        help=(
            f"Bearer token for authentication (env: {ENV_PREFIX}API_BEARER_TOKEN). "
            "Overrides Authorization header when set."
        ),
    )
    parser.add_argument(
        "--output",
        choices=["json", "yaml"],
        default=_env("OUTPUT", "json"),
        help=f"Output format for responses (env: {ENV_PREFIX}OUTPUT). Defaults to 'json'.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_status_commands(subparsers)
    _add_shade_commands(subparsers)
    return parser


def _add_status_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    health = subparsers.add_parser(
        "health",
        help="Check API health (GET /health returns {'status': 'ok'} when healthy)",
    )
    health.set_defaults(func=_cmd_health)

    status = subparsers.add_parser(
        "status",
        help="Show refresh loop status (GET /status with retry attempt, faults, controller info)",
    )
    status.set_defaults(func=_cmd_status)

    refresh = subparsers.add_parser(
        "refresh",
        help="Refresh all shades now (POST /refresh); joins a refresh already in progress",
    )
    refresh.set_defaults(func=_cmd_refresh)


def _add_shade_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    shades = subparsers.add_parser(
        "shades",
        help="Shade commands (list/get/set)",
        description=(
            "Read cached shade state or command a new position. Positions are "
            "percentages from 0 (closed) to 100 (open)."
        ),
    )
    shade_sub = shades.add_subparsers(dest="shade_command", required=True)

    list_cmd = shade_sub.add_parser(
        "list",
        help="List shades (GET /shades -> cached state, no refresh)",
    )
    list_cmd.set_defaults(func=_cmd_shades_list)

    get = shade_sub.add_parser(
        "get",
        help="Refresh and show one shade (GET /shades/{id})",
    )
    get.add_argument("shade_id", help="Shade identifier")
    get.set_defaults(func=_cmd_shades_get)

    set_cmd = shade_sub.add_parser(
        "set",
        help="Move a shade (PUT /shades/{id}/target)",
    )
    set_cmd.add_argument("shade_id", help="Shade identifier")
    set_cmd.add_argument("--position", type=int, required=True, help="Target position in percent (0-100)")
    set_cmd.set_defaults(func=_cmd_shades_set)


def _load_config(args: argparse.Namespace) -> ClientConfig:
    output = args.output or "json"
    if output not in {"json", "yaml"}:
        raise CliError("Output format must be 'json' or 'yaml'")

    return ClientConfig(
        server_url=args.server_url,
        api_key=args.api_key,
        api_bearer_token=args.api_bearer_token,
        output=output,
    )


def _build_client(config: ClientConfig) -> httpx.Client:
    headers: MutableMapping[str, str] = {}
    if config.api_key:
        headers["X-API-Key"] = config.api_key
        headers.setdefault("Authorization", f"ApiKey {config.api_key}")
    if config.api_bearer_token:
        headers["Authorization"] = f"Bearer {config.api_bearer_token}"

    return httpx.Client(base_url=config.server_url, headers=headers, timeout=config.timeout)


def _print_output(data: Any, output: str) -> None:
    if output == "yaml":
        yaml.safe_dump(data, sys.stdout, sort_keys=False)
    else:
        json.dump(data, sys.stdout, indent=2)
        sys.stdout.write("\n")


def _handle_response(response: httpx.Response) -> Any:
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        detail = payload.get("detail") if isinstance(payload, dict) else payload
        raise CliError(f"Request failed ({response.status_code}): {detail}") from exc
    if response.content:
        return response.json()
    return None


def _cmd_health(config: ClientConfig, client: httpx.Client, args: argparse.Namespace) -> None:
    data = _handle_response(client.get("/health"))
    _print_output(data, config.output)


def _cmd_status(config: ClientConfig, client: httpx.Client, args: argparse.Namespace) -> None:
    data = _handle_response(client.get("/status"))
    _print_output(data, config.output)


def _cmd_refresh(config: ClientConfig, client: httpx.Client, args: argparse.Namespace) -> None:
    data = _handle_response(client.post("/refresh"))
    _print_output(data, config.output)


def _cmd_shades_list(config: ClientConfig, client: httpx.Client, args: argparse.Namespace) -> None:
    data = _handle_response(client.get("/shades"))
    _print_output(data, config.output)


def _cmd_shades_get(config: ClientConfig, client: httpx.Client, args: argparse.Namespace) -> None:
    data = _handle_response(client.get(f"/shades/{args.shade_id}"))
    _print_output(data, config.output)


def _cmd_shades_set(config: ClientConfig, client: httpx.Client, args: argparse.Namespace) -> None:
    if args.position < 0 or args.position > 100:
        raise CliError("Position must be between 0 and 100.")
    data = _handle_response(
        client.put(f"/shades/{args.shade_id}/target", json={"position": args.position})
    )
    _print_output(data, config.output)


def main(argv: Optional[Iterable[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(args=argv)

    try:
        config = _load_config(args)
        client = _build_client(config)
        with client:
            func: Callable[[ClientConfig, httpx.Client, argparse.Namespace], None] = args.func
            func(config, client, args)
    except CliError as exc:  # pragma: no cover - CLI feedback path
        sys.stderr.write(f"Error: {exc}\n")
        sys.exit(1)
    except httpx.RequestError as exc:  # pragma: no cover - CLI feedback path
        sys.stderr.write(f"HTTP request failed: {exc}\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
