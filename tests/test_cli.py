import json
from argparse import Namespace
from typing import Any

import httpx
import pytest

from platinum_shade_bridge.cli import (
    CliError,
    ClientConfig,
    _cmd_refresh,
    _cmd_shades_set,
    _handle_response,
)


def _client_with_capture(captured: dict, status: int = 200, response_json: Any = None) -> httpx.Client:
    def _handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["url"] = str(request.url)
        captured["json"] = json.loads(request.content.decode()) if request.content else None
        return httpx.Response(status, json=response_json if response_json is not None else {})

    transport = httpx.MockTransport(_handler)
    return httpx.Client(transport=transport, base_url="http://test")


def _config(output: str = "json") -> ClientConfig:
    return ClientConfig(server_url="http://test", api_key=None, api_bearer_token=None, output=output)


def test_shades_set_payload_and_url(capsys) -> None:
    captured: dict = {}
    args = Namespace(shade_id="12", position=40)

    with _client_with_capture(captured, response_json={"id": "12", "current_position": 40}) as client:
        _cmd_shades_set(_config(), client, args)

    assert captured["method"] == "PUT"
    assert captured["url"].endswith("/shades/12/target")
    assert captured["json"] == {"position": 40}
    assert json.loads(capsys.readouterr().out)["current_position"] == 40


def test_shades_set_rejects_out_of_range() -> None:
    args = Namespace(shade_id="12", position=101)
    with _client_with_capture({}) as client:
        with pytest.raises(CliError):
            _cmd_shades_set(_config(), client, args)


def test_refresh_prints_yaml(capsys) -> None:
    captured: dict = {}
    with _client_with_capture(captured, response_json={"status": "refreshed", "shades": 2}) as client:
        _cmd_refresh(_config("yaml"), client, Namespace())

    assert captured["method"] == "POST"
    assert "status: refreshed" in capsys.readouterr().out


def test_error_response_raises_cli_error() -> None:
    response = httpx.Response(
        503,
        json={"detail": "Refresh failed: gateway down"},
        request=httpx.Request("POST", "http://test/refresh"),
    )
    with pytest.raises(CliError, match="503"):
        _handle_response(response)
