"""
Pydantic models for SolarGuardian API records.

Each model mirrors one record shape returned by the open API, keeping only the
fields the sync engine consumes. Field aliases carry the API's camelCase names;
unknown fields are ignored. Only the identifier of each record is required,
every other attribute is optional here and receives its explicit default in
the mapper, so a sparse record still produces a complete set of tree writes.

Nested collections that are mapped entity-by-entity (variable lists,
organization children) are not modelled. The sync pipeline walks them as raw
JSON, so one malformed child does not invalidate its parent.

CHANGELOG:
- 2026-10-19: Initial creation
- 2026-10-19: Stop modelling nested children so a bad child cannot reject its parent

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

Scalar = int | float | str | bool | None
"""A value that can be written to a leaf node."""

RecordId = int | str
"""Remote-assigned identifier; used verbatim as a path segment."""


class _Record(BaseModel):
    """Base for API records: accept aliases or field names, ignore extras."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Credential(BaseModel):
    """Bearer token returned by ``getAuthToken``.

    Replaced wholesale on re-authentication, never mutated.

    Attributes:
        token: Value sent in the ``X-Access-Token`` header.
        acquired_at: When the token was obtained (UTC).
    """

    model_config = ConfigDict(frozen=True)

    token: str
    acquired_at: datetime


class PowerStation(_Record):
    id: RecordId
    power_station_name: str | None = Field(default=None, alias="powerStationName")
    alarm_status: Scalar = Field(default=None, alias="alarmStatus")
    equipment_count: Scalar = Field(default=None, alias="equipmentCount")
    equipment_online_count: Scalar = Field(default=None, alias="equipmentOnlineCount")


class Gateway(_Record):
    id: RecordId
    name: str | None = None
    devid: Scalar = None
    online_status: Scalar = Field(default=None, alias="onlineStatus")
    power_station_name: str | None = Field(default=None, alias="powerStationName")


class Device(_Record):
    """A piece of equipment (controller, inverter) attached to a gateway.

    ``gateway_id`` and ``traffic_station_no`` double as the ``deviceNo`` and
    ``slaveIndex`` keys of the data point history lookup.
    """

    id: RecordId
    equipment_name: str | None = Field(default=None, alias="equipmentName")
    equipment_no: Scalar = Field(default=None, alias="equipmentNo")
    status: Scalar = None
    power_station_id: Scalar = Field(default=None, alias="powerStationId")
    gateway_id: Scalar = Field(default=None, alias="gatewayId")
    traffic_station_no: Scalar = Field(default=None, alias="trafficStationNo")


class Organization(_Record):
    id: RecordId
    project_name: str | None = Field(default=None, alias="projectName")
    level: Scalar = None
    parent_id: Scalar = Field(default=None, alias="parentId")


class Variable(_Record):
    """One measurement parameter of a device (a data point)."""

    data_point_id: RecordId = Field(alias="dataPointId")
    item_id: Scalar = Field(default=None, alias="itemId")
    variable_name_c: str | None = Field(default=None, alias="variableNameC")
    unit: str | None = None


class HistorySample(_Record):
    value: Scalar = None
    time: Scalar = None


class Alarm(_Record):
    hid: RecordId
    content: str | None = None
    device_name: str | None = Field(default=None, alias="deviceName")
    create_time: Scalar = Field(default=None, alias="createTime")
    status: Scalar = None
