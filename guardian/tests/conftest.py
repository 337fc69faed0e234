"""
Shared test fixtures for the sync daemon tests.

Provides environment isolation for GuardianSettings, a fake SolarGuardian API
served through httpx.MockTransport, and opened ApiClient / TreeStore
instances.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio
from guardian.src.client import (
    ALARMS_ENDPOINT,
    AUTH_ENDPOINT,
    DEVICES_ENDPOINT,
    EQUIPMENT_ENDPOINT,
    GATEWAYS_ENDPOINT,
    HISTORY_ENDPOINT,
    ORGANIZATIONS_ENDPOINT,
    POWER_STATIONS_ENDPOINT,
    ApiClient,
)
from guardian.src.store import TreeStore

API_BASE_URL = "https://api.test"

FIXED_NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=UTC)
"""Frozen clock value used by pipeline tests."""

# All GuardianSettings environment variable names, used for cleanup.
_ALL_GUARDIAN_ENV_VARS = (
    "APP_KEY",
    "APP_SECRET",
    "POLL_INTERVAL_MS",
    "API_BASE_URL",
    "REQUEST_TIMEOUT_S",
    "PAGE_SIZE",
    "HISTORY_WINDOW_H",
    "ALARM_WINDOW_DAYS",
    "TOKEN_REFRESH_INTERVAL_S",
    "STORE_PATH",
    "HEALTH_PATH",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_guardian_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all sync daemon env vars and isolate from .env files.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_GUARDIAN_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Fake SolarGuardian API
# ---------------------------------------------------------------------------


Route = dict[str, Any] | httpx.Response | Exception | Callable[[dict[str, Any]], Any]


class FakeGuardianApi:
    """Routes POST requests by path to canned responses and records calls.

    A route may be a response body dict, an ``httpx.Response``, an exception
    to raise (simulating a transport failure), or a callable receiving the
    decoded request body and returning any of those.
    """

    def __init__(self, routes: dict[str, Route]) -> None:
        self.routes = dict(routes)
        self.calls: list[dict[str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        self.calls.append(
            {
                "path": request.url.path,
                "body": body,
                "token": request.headers.get("X-Access-Token"),
            }
        )
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404)
        if callable(route) and not isinstance(route, Exception):
            route = route(body)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def bodies(self, path: str) -> list[dict[str, Any]]:
        """Request bodies sent to *path*, in call order."""
        return [call["body"] for call in self.calls if call["path"] == path]

    def paths(self) -> list[str]:
        return [call["path"] for call in self.calls]


def ok(data: Any) -> dict[str, Any]:
    """Wrap *data* in a successful API envelope."""
    return {"status": 0, "info": "success", "data": data}


def history_route(samples: dict[int, list[dict[str, Any]]]) -> Callable[[dict[str, Any]], Any]:
    """Build a history route returning *samples* keyed by dataPointId."""

    def _route(body: dict[str, Any]) -> dict[str, Any]:
        data_point_id = body["devDatapoints"]["dataPointId"]
        return ok([{"list": samples.get(data_point_id, [])}])

    return _route


def default_routes() -> dict[str, Route]:
    """One station, gateway, device (two parameters), two orgs and an alarm."""
    return {
        AUTH_ENDPOINT: ok({"X-Access-Token": "tok-abc"}),
        POWER_STATIONS_ENDPOINT: ok(
            {
                "list": [
                    {
                        "id": 1,
                        "powerStationName": "Plant A",
                        "alarmStatus": 0,
                        "equipmentCount": 2,
                        "equipmentOnlineCount": 2,
                    }
                ],
                "total": 1,
            }
        ),
        GATEWAYS_ENDPOINT: ok(
            {
                "dev": [
                    {
                        "id": 11,
                        "name": "GW-1",
                        "devid": "GW-SN-0001",
                        "onlineStatus": 1,
                        "powerStationName": "Plant A",
                    }
                ]
            }
        ),
        DEVICES_ENDPOINT: ok(
            {
                "list": [
                    {
                        "id": 101,
                        "equipmentName": "Charge Controller",
                        "equipmentNo": "EQ-0001",
                        "status": 1,
                        "powerStationId": 1,
                        "gatewayId": 11,
                        "trafficStationNo": 1,
                    }
                ]
            }
        ),
        ORGANIZATIONS_ENDPOINT: ok(
            [
                {
                    "id": 5,
                    "projectName": "Root Org",
                    "level": 1,
                    "children": [
                        {"id": 6, "projectName": "Branch", "level": 2, "parentId": 5}
                    ],
                }
            ]
        ),
        EQUIPMENT_ENDPOINT: ok(
            {
                "variableGroupList": [
                    {
                        "variableList": [
                            {
                                "dataPointId": 1001,
                                "itemId": 7,
                                "variableNameC": "PV voltage",
                                "unit": "V",
                            },
                            {
                                "dataPointId": 1002,
                                "itemId": 8,
                                "variableNameC": "Load state",
                            },
                        ]
                    }
                ]
            }
        ),
        HISTORY_ENDPOINT: history_route(
            {1001: [{"value": 12.5, "time": 1760875200000}]}
        ),
        ALARMS_ENDPOINT: ok(
            {
                "list": [
                    {
                        "hid": "a-1",
                        "content": "Battery low",
                        "deviceName": "Charge Controller",
                        "createTime": 1760870000000,
                        "status": 0,
                    }
                ]
            }
        ),
    }


@pytest.fixture()
def fake_api() -> FakeGuardianApi:
    """Fake API serving :func:`default_routes`; tests may edit ``routes``."""
    return FakeGuardianApi(default_routes())


@pytest_asyncio.fixture()
async def client(fake_api: FakeGuardianApi) -> AsyncIterator[ApiClient]:
    """Opened ApiClient talking to the fake API."""
    async with ApiClient(API_BASE_URL, transport=fake_api.transport()) as api_client:
        yield api_client


@pytest_asyncio.fixture()
async def store(tmp_path: Path) -> AsyncIterator[TreeStore]:
    """Opened TreeStore on a temporary database."""
    async with TreeStore(tmp_path / "tree.db") as tree:
        yield tree
