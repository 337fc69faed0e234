"""
Async HTTPS client for the SolarGuardian open API.

Every call is a JSON POST. The API reports application-level success in the
body: ``status == 0`` means success, anything else is a failure whose message
is in ``info``. This module turns those outcomes into the sync engine's error
taxonomy:

- ``status != 0``                               -> StageSoftError
- connection error, timeout, non-2xx, bad JSON  -> StageHardError

Pagination is single-page: stages send a fixed page size and consume only the
first page of results.

Operations:
- post(endpoint, body, token=None): raw request, returns the decoded body.
- fetch(endpoint, body, token): request plus status check, returns ``data``.

CHANGELOG:
- 2026-10-19: Initial creation, adapted from the batch uploader

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from guardian.src.errors import StageHardError, StageSoftError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openapi.epsolarpv.com"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_PAGE_SIZE = 100

TOKEN_HEADER = "X-Access-Token"

AUTH_ENDPOINT = "/epCloud/user/getAuthToken"
POWER_STATIONS_ENDPOINT = "/epCloud/vn/openApi/getPowerStationListPage"
GATEWAYS_ENDPOINT = "/epCloud/vn/openApi/getDevs"
DEVICES_ENDPOINT = "/epCloud/vn/openApi/getEquipmentList"
ORGANIZATIONS_ENDPOINT = "/epCloud/vn/openApi/queryOrganizationList"
EQUIPMENT_ENDPOINT = "/epCloud/vn/openApi/getEquipment"
HISTORY_ENDPOINT = "/epCloud/vn/openApi/getDeviceDataPointHistory"
ALARMS_ENDPOINT = "/epCloud/vn/openApi/getAlarmHistory"


class ApiClient:
    """HTTPS client for the SolarGuardian open API.

    The underlying :class:`httpx.AsyncClient` is created by :meth:`open` and
    reused for every request until :meth:`close`. TLS certificate
    verification is always enabled.

    Args:
        base_url: API base URL. Must start with ``https://``.
        timeout_s: Per-request timeout in seconds.
        transport: Optional httpx transport, used by tests to plug in
            :class:`httpx.MockTransport`.

    Raises:
        ValueError: If *base_url* does not start with ``https://``.

    Usage::

        async with ApiClient("https://openapi.epsolarpv.com") as client:
            data = await client.fetch(DEVICES_ENDPOINT, body, token)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url.lower().startswith("https://"):
            raise ValueError(f"API base URL must use HTTPS (got: '{base_url}').")
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def open(self) -> None:
        """Create the pooled HTTP client."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout_s,
                verify=True,
                transport=self._transport,
                headers={"Content-Type": "application/json"},
            )

    async def close(self) -> None:
        """Close the pooled HTTP client."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> ApiClient:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def post(
        self,
        endpoint: str,
        body: dict[str, Any],
        *,
        token: str | None = None,
    ) -> dict[str, Any]:
        """POST *body* to *endpoint* and return the decoded response body.

        No status interpretation happens here.

        Raises:
            StageHardError: On transport failure, timeout, a non-2xx HTTP
                status or a body that is not a JSON object.
        """
        assert self._http is not None, "ApiClient not opened. Call open() or use async with."
        headers = {TOKEN_HEADER: token} if token else None
        try:
            response = await self._http.post(endpoint, json=body, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise StageHardError(endpoint, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise StageHardError(endpoint, f"{type(exc).__name__}: {exc}") from exc
        except ValueError as exc:
            raise StageHardError(endpoint, "response is not valid JSON") from exc

        if not isinstance(payload, dict):
            raise StageHardError(endpoint, "response body is not a JSON object")
        return payload

    async def fetch(self, endpoint: str, body: dict[str, Any], token: str) -> Any:
        """POST with the bearer token and return the response's ``data``.

        Raises:
            StageSoftError: If the body's ``status`` is not ``0``.
            StageHardError: See :meth:`post`.
        """
        payload = await self.post(endpoint, body, token=token)
        status = payload.get("status")
        if status != 0:
            info = str(payload.get("info") or "unknown error")
            raise StageSoftError(endpoint, status, info)
        logger.debug("POST %s ok", endpoint)
        return payload.get("data")
