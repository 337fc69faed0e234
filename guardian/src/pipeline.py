"""
Stage pipeline: one full synchronization pass against the SolarGuardian API.

A cycle runs six stages strictly in sequence:

1. powerStations  - getPowerStationListPage -> ``powerStations.<id>``
2. gateways       - getDevs                 -> ``gateways.<id>``
3. devices        - getEquipmentList        -> ``devices.<id>``
4. organizations  - queryOrganizationList   -> ``organizations.<id>``
5. parameters     - getEquipmentList (refetched), then per device
                    getEquipment and per variable getDeviceDataPointHistory
                    -> ``devices.<id>.parameters.<dataPointId>``
6. alarms         - getAlarmHistory         -> ``alarms.<hid>``

Failure isolation works at three levels:

- Stage: soft (``status != 0``), hard (transport) and unexpected errors are
  caught at the stage boundary, logged and recorded in the stage's
  :class:`StageResult`. Later stages always run.
- Device: a failing ``getEquipment`` call skips only that device's parameters.
- Entity: a record that cannot be mapped, or a failing history lookup, affects
  only that record; a parameter whose history lookup fails keeps its
  placeholder value.

The parameters stage refetches the device list instead of reusing the
devices stage's output, so it does not depend on that stage having succeeded.

Pagination is single-page. When the API reports a ``total`` larger than the
records received, a warning names the truncated endpoint.

CHANGELOG:
- 2026-10-19: Initial creation
- 2026-10-19: Register parameters before their history lookup; map top-level records through map_entity

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from guardian.src.client import (
    ALARMS_ENDPOINT,
    DEFAULT_PAGE_SIZE,
    DEVICES_ENDPOINT,
    EQUIPMENT_ENDPOINT,
    GATEWAYS_ENDPOINT,
    HISTORY_ENDPOINT,
    ORGANIZATIONS_ENDPOINT,
    POWER_STATIONS_ENDPOINT,
)
from guardian.src.errors import MappingError, StageHardError, StageSoftError
from guardian.src.mapper import (
    EntityKind,
    map_entity,
    map_parameter_registration,
    map_parameter_value,
    parameter_path,
)
from guardian.src.models import Device, HistorySample, Variable

if TYPE_CHECKING:
    from guardian.src.client import ApiClient
    from guardian.src.store import TreeStore

logger = logging.getLogger(__name__)

HISTORY_WINDOW = timedelta(hours=24)
"""Trailing window searched for a parameter's latest sample."""

ALARM_WINDOW = timedelta(days=7)
"""Trailing window of alarm creation times mirrored each cycle."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _epoch_ms(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class StageResult:
    """Outcome of one stage.

    Attributes:
        name: Stage name (``powerStations``, ``gateways``, ...).
        ok: ``False`` if the stage itself failed at its boundary.
        entities: Entities written successfully.
        failed_entities: Entities skipped because of a per-entity failure.
        error: Error message when ``ok`` is ``False``.
    """

    name: str
    ok: bool = True
    entities: int = 0
    failed_entities: int = 0
    error: str | None = None


@dataclass
class CycleReport:
    """Outcome of one full pipeline pass."""

    started_at: datetime
    finished_at: datetime | None = None
    stages: list[StageResult] = field(default_factory=list)

    @property
    def failed_stages(self) -> list[str]:
        return [stage.name for stage in self.stages if not stage.ok]

    @property
    def ok(self) -> bool:
        return not self.failed_stages

    def stage(self, name: str) -> StageResult:
        """Return the result of the stage called *name*.

        Raises:
            KeyError: If the stage did not run in this cycle.
        """
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise KeyError(name)


_StageBody = Callable[[str, StageResult], Awaitable[None]]


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class SyncPipeline:
    """Runs the ordered fetch-and-map stages against one store.

    Args:
        client: An opened :class:`~guardian.src.client.ApiClient`.
        store: An opened :class:`~guardian.src.store.TreeStore`.
        page_size: Records requested per list call (single page).
        history_window: Trailing window for parameter history lookups.
        alarm_window: Trailing window for alarm history.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        client: ApiClient,
        store: TreeStore,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        history_window: timedelta = HISTORY_WINDOW,
        alarm_window: timedelta = ALARM_WINDOW,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._store = store
        self._page_size = page_size
        self._history_window = history_window
        self._alarm_window = alarm_window
        self._clock = clock

    async def run_cycle(self, token: str) -> CycleReport:
        """Run every stage once, in order, and report the outcome.

        Never raises for API or mapping failures; those end up in the report.
        """
        report = CycleReport(started_at=self._clock())
        for stage in (
            self.sync_power_stations,
            self.sync_gateways,
            self.sync_devices,
            self.sync_organizations,
            self.sync_parameters,
            self.sync_alarms,
        ):
            report.stages.append(await stage(token))
        report.finished_at = self._clock()

        if report.ok:
            logger.info("Sync cycle complete: all stages succeeded")
        else:
            logger.warning(
                "Sync cycle complete with failed stages: %s",
                ", ".join(report.failed_stages),
            )
        return report

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def sync_power_stations(self, token: str) -> StageResult:
        return await self._run_stage("powerStations", self._power_stations, token)

    async def sync_gateways(self, token: str) -> StageResult:
        return await self._run_stage("gateways", self._gateways, token)

    async def sync_devices(self, token: str) -> StageResult:
        return await self._run_stage("devices", self._devices, token)

    async def sync_organizations(self, token: str) -> StageResult:
        return await self._run_stage("organizations", self._organizations, token)

    async def sync_parameters(self, token: str) -> StageResult:
        return await self._run_stage("parameters", self._parameters, token)

    async def sync_alarms(self, token: str) -> StageResult:
        return await self._run_stage("alarms", self._alarms, token)

    async def _run_stage(self, name: str, body: _StageBody, token: str) -> StageResult:
        """Run one stage body inside its error boundary."""
        result = StageResult(name=name)
        try:
            await body(token, result)
        except StageSoftError as exc:
            logger.warning("Stage %s skipped: API error: %s", name, exc)
            result.ok = False
            result.error = str(exc)
        except StageHardError as exc:
            logger.error("Stage %s failed: %s", name, exc, exc_info=True)
            result.ok = False
            result.error = str(exc)
        except Exception as exc:
            logger.error("Stage %s failed unexpectedly", name, exc_info=True)
            result.ok = False
            result.error = f"{type(exc).__name__}: {exc}"
        return result

    async def _power_stations(self, token: str, result: StageResult) -> None:
        data = await self._client.fetch(
            POWER_STATIONS_ENDPOINT,
            {"powerStationName": "", "pageNo": 1, "pageSize": self._page_size},
            token,
        )
        stations = _page_items(POWER_STATIONS_ENDPOINT, data, "list")
        for raw in stations:
            await self._apply_entity(EntityKind.POWER_STATION, result, raw)
        logger.info("Fetched %d power stations", len(stations))

    async def _gateways(self, token: str, result: StageResult) -> None:
        data = await self._client.fetch(
            GATEWAYS_ENDPOINT,
            {
                "search_param": "",
                "searchByDeviceStatus": "",
                "page_param": {"offset": 0, "limit": self._page_size},
            },
            token,
        )
        gateways = _page_items(GATEWAYS_ENDPOINT, data, "dev")
        for raw in gateways:
            await self._apply_entity(EntityKind.GATEWAY, result, raw)
        logger.info("Fetched %d gateways", len(gateways))

    async def _devices(self, token: str, result: StageResult) -> None:
        devices = await self._list_devices(token)
        for raw in devices:
            await self._apply_entity(EntityKind.DEVICE, result, raw)
        logger.info("Fetched %d devices", len(devices))

    async def _organizations(self, token: str, result: StageResult) -> None:
        data = await self._client.fetch(ORGANIZATIONS_ENDPOINT, {"isTree": 1}, token)
        roots = _page_items(ORGANIZATIONS_ENDPOINT, data, "list")
        count = 0
        for raw in _flatten_organizations(roots):
            await self._apply_entity(EntityKind.ORGANIZATION, result, raw)
            count += 1
        logger.info("Fetched %d organizations", count)

    async def _parameters(self, token: str, result: StageResult) -> None:
        devices = await self._list_devices(token)
        for raw_device in devices:
            try:
                device = Device.model_validate(raw_device)
            except ValidationError:
                logger.warning("Skipping parameters of malformed device record: %r", raw_device)
                result.failed_entities += 1
                continue
            await self._sync_device_parameters(token, device, result)
        logger.info(
            "Fetched parameters and history for %d devices (%d parameters)",
            len(devices),
            result.entities,
        )

    async def _alarms(self, token: str, result: StageResult) -> None:
        now = self._clock()
        data = await self._client.fetch(
            ALARMS_ENDPOINT,
            {
                "pageNo": 1,
                "pageSize": self._page_size,
                "timeStart": _epoch_ms(now - self._alarm_window),
                "timeEnd": _epoch_ms(now),
            },
            token,
        )
        alarms = _page_items(ALARMS_ENDPOINT, data, "list")
        for raw in alarms:
            await self._apply_entity(EntityKind.ALARM, result, raw)
        logger.info("Fetched %d alarms", len(alarms))

    # ------------------------------------------------------------------
    # Parameter helpers
    # ------------------------------------------------------------------

    async def _sync_device_parameters(
        self, token: str, device: Device, result: StageResult
    ) -> None:
        try:
            data = await self._client.fetch(EQUIPMENT_ENDPOINT, {"id": device.id}, token)
        except (StageSoftError, StageHardError) as exc:
            logger.warning("Skipping parameters of device %s: %s", device.id, exc)
            result.failed_entities += 1
            return

        groups = data.get("variableGroupList") if isinstance(data, dict) else None
        for group in groups or []:
            variables = group.get("variableList") if isinstance(group, dict) else None
            for raw_variable in variables or []:
                await self._sync_parameter(token, device, raw_variable, result)

    async def _sync_parameter(
        self,
        token: str,
        device: Device,
        raw_variable: Any,
        result: StageResult,
    ) -> None:
        """Register one parameter, then resolve its value from history.

        The channel node, name and unit are committed before the history
        lookup so a slow or abandoned lookup never leaves the parameter
        unregistered. A first-time parameter also gets its placeholder value
        in that batch; a known one keeps its last value until the lookup
        overwrites it.
        """
        try:
            variable = Variable.model_validate(raw_variable)
            registration = map_parameter_registration(device.id, raw_variable)
        except (ValidationError, MappingError):
            logger.warning(
                "Skipping malformed parameter of device %s: %r", device.id, raw_variable
            )
            result.failed_entities += 1
            return

        base = parameter_path(device.id, variable.data_point_id)
        if not await self._store.has_value(f"{base}.value"):
            registration += map_parameter_value(device.id, variable.data_point_id)
        await self._store.apply(registration)

        sample = await self._latest_sample(token, device, variable)
        await self._store.apply(
            map_parameter_value(device.id, variable.data_point_id, sample)
        )
        result.entities += 1

    async def _latest_sample(
        self, token: str, device: Device, variable: Variable
    ) -> HistorySample | None:
        """Return the newest sample in the history window, or ``None``.

        Lookup failures are logged and yield ``None`` so the parameter keeps
        its placeholder value.
        """
        now = self._clock()
        body = {
            "devDatapoints": {
                "deviceNo": device.gateway_id,
                "slaveIndex": device.traffic_station_no,
                "itemId": variable.item_id,
                "dataPointId": variable.data_point_id,
            },
            "start": _epoch_ms(now - self._history_window),
            "end": _epoch_ms(now),
            "pageNo": 1,
            "pageSize": 1,
            "timeSort": "desc",
        }
        try:
            data = await self._client.fetch(HISTORY_ENDPOINT, body, token)
        except (StageSoftError, StageHardError) as exc:
            logger.warning(
                "History lookup failed for device %s data point %s: %s",
                device.id,
                variable.data_point_id,
                exc,
            )
            return None

        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return None
        samples = data[0].get("list")
        if not isinstance(samples, list) or not samples:
            return None
        try:
            return HistorySample.model_validate(samples[0])
        except ValidationError:
            logger.warning(
                "Ignoring malformed history sample for device %s data point %s",
                device.id,
                variable.data_point_id,
            )
            return None

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    async def _list_devices(self, token: str) -> list[Any]:
        data = await self._client.fetch(
            DEVICES_ENDPOINT,
            {"equipmentName": "", "pageNo": 1, "pageSize": self._page_size},
            token,
        )
        return _page_items(DEVICES_ENDPOINT, data, "list")

    async def _apply_entity(self, kind: EntityKind, result: StageResult, raw: Any) -> None:
        """Map one record and write it; a MappingError skips only this record."""
        try:
            writes = map_entity(kind, raw)
        except MappingError as exc:
            logger.warning("Skipping %s record: %s", kind, exc)
            result.failed_entities += 1
            return
        await self._store.apply(writes)
        result.entities += 1


def _page_items(endpoint: str, data: Any, key: str) -> list[Any]:
    """Extract the record list from a single-page response.

    Accepts either ``{key: [...], "total": n}`` or a bare list.

    Raises:
        StageHardError: If the payload has neither shape.
    """
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        raise StageHardError(endpoint, f"unexpected payload type {type(data).__name__}")

    items = data.get(key)
    if items is None:
        items = []
    if not isinstance(items, list):
        raise StageHardError(endpoint, f"'{key}' is not a list")

    total = data.get("total")
    if isinstance(total, int) and total > len(items):
        logger.warning(
            "%s reported %d records, only the first page of %d was synced",
            endpoint,
            total,
            len(items),
        )
    return items


def _flatten_organizations(roots: list[Any]) -> Iterator[Any]:
    """Yield organizations depth-first, each parent before its children."""
    for node in roots:
        yield node
        children = node.get("children") if isinstance(node, dict) else None
        if isinstance(children, list):
            yield from _flatten_organizations(children)
