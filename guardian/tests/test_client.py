"""
Unit tests for the SolarGuardian API client.

Tests verify:
- Base URL must be HTTPS.
- fetch() POSTs JSON with the X-Access-Token header and returns ``data``.
- Non-zero ``status`` raises StageSoftError carrying ``info``.
- Transport errors, non-2xx responses and non-JSON bodies raise StageHardError.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import httpx
import pytest
from conftest import API_BASE_URL, FakeGuardianApi, ok
from guardian.src.client import DEVICES_ENDPOINT, ApiClient
from guardian.src.errors import StageHardError, StageSoftError


class TestHTTPSValidation:
    def test_http_url_rejected(self) -> None:
        with pytest.raises(ValueError, match="HTTPS"):
            ApiClient("http://openapi.epsolarpv.com")

    def test_trailing_slash_stripped(self) -> None:
        assert ApiClient("https://api.test/").base_url == "https://api.test"


class TestFetch:
    @pytest.mark.asyncio
    async def test_returns_data_and_sends_token(
        self, client: ApiClient, fake_api: FakeGuardianApi
    ) -> None:
        data = await client.fetch(DEVICES_ENDPOINT, {"pageNo": 1, "pageSize": 100}, "tok-1")

        assert data["list"][0]["id"] == 101
        assert fake_api.calls == [
            {
                "path": DEVICES_ENDPOINT,
                "body": {"pageNo": 1, "pageSize": 100},
                "token": "tok-1",
            }
        ]

    @pytest.mark.asyncio
    async def test_non_zero_status_is_soft_error(
        self, client: ApiClient, fake_api: FakeGuardianApi
    ) -> None:
        fake_api.routes[DEVICES_ENDPOINT] = {"status": 500, "info": "token invalid"}

        with pytest.raises(StageSoftError) as exc_info:
            await client.fetch(DEVICES_ENDPOINT, {}, "tok-1")

        assert exc_info.value.status == 500
        assert exc_info.value.info == "token invalid"
        assert exc_info.value.endpoint == DEVICES_ENDPOINT

    @pytest.mark.asyncio
    async def test_missing_status_is_soft_error(
        self, client: ApiClient, fake_api: FakeGuardianApi
    ) -> None:
        fake_api.routes[DEVICES_ENDPOINT] = {"data": {"list": []}}

        with pytest.raises(StageSoftError, match="unknown error"):
            await client.fetch(DEVICES_ENDPOINT, {}, "tok-1")

    @pytest.mark.asyncio
    async def test_connect_error_is_hard_error(
        self, client: ApiClient, fake_api: FakeGuardianApi
    ) -> None:
        fake_api.routes[DEVICES_ENDPOINT] = httpx.ConnectError("connection refused")

        with pytest.raises(StageHardError, match="ConnectError"):
            await client.fetch(DEVICES_ENDPOINT, {}, "tok-1")

    @pytest.mark.asyncio
    async def test_timeout_is_hard_error(
        self, client: ApiClient, fake_api: FakeGuardianApi
    ) -> None:
        fake_api.routes[DEVICES_ENDPOINT] = httpx.ReadTimeout("timed out")

        with pytest.raises(StageHardError):
            await client.fetch(DEVICES_ENDPOINT, {}, "tok-1")

    @pytest.mark.asyncio
    async def test_http_error_status_is_hard_error(
        self, client: ApiClient, fake_api: FakeGuardianApi
    ) -> None:
        fake_api.routes[DEVICES_ENDPOINT] = httpx.Response(502, text="bad gateway")

        with pytest.raises(StageHardError, match="HTTP 502"):
            await client.fetch(DEVICES_ENDPOINT, {}, "tok-1")

    @pytest.mark.asyncio
    async def test_invalid_json_is_hard_error(
        self, client: ApiClient, fake_api: FakeGuardianApi
    ) -> None:
        fake_api.routes[DEVICES_ENDPOINT] = httpx.Response(200, text="<html>")

        with pytest.raises(StageHardError, match="not valid JSON"):
            await client.fetch(DEVICES_ENDPOINT, {}, "tok-1")

    @pytest.mark.asyncio
    async def test_non_object_body_is_hard_error(
        self, client: ApiClient, fake_api: FakeGuardianApi
    ) -> None:
        fake_api.routes[DEVICES_ENDPOINT] = httpx.Response(200, json=[ok({})])

        with pytest.raises(StageHardError, match="not a JSON object"):
            await client.fetch(DEVICES_ENDPOINT, {}, "tok-1")


class TestPost:
    @pytest.mark.asyncio
    async def test_post_without_token_omits_header(self, fake_api: FakeGuardianApi) -> None:
        async with ApiClient(API_BASE_URL, transport=fake_api.transport()) as api:
            payload = await api.post(DEVICES_ENDPOINT, {})

        assert payload["status"] == 0
        assert fake_api.calls[0]["token"] is None
