"""
Pure entity mapper: converts one SolarGuardian record into tree writes.

Every mapping produces an ordered list of writes:

1. One :class:`CreateObject` for the entity's container node, so the node's
   kind and display name are registered once.
2. One :class:`WriteValue` per tracked attribute, written on every cycle.

Paths are built only from the entity kind, its remote identifier and fixed
attribute names, so the same entity always lands on the same path and a repeated
cycle overwrites instead of duplicating. Missing attributes are written with an
explicit default (``""`` for text, ``None`` for numbers and references,
``0`` for an organization's ``parentId``); they are never skipped.

This module does no I/O. Records arrive as decoded JSON dicts and are
validated against the models in :mod:`guardian.src.models`; a record that
fails validation raises :class:`~guardian.src.errors.MappingError` for that
record only.

CHANGELOG:
- 2026-10-19: Initial creation
- 2026-10-19: Split parameter mapping into registration and value writes

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from guardian.src.errors import MappingError
from guardian.src.models import (
    Alarm,
    Device,
    Gateway,
    HistorySample,
    Organization,
    PowerStation,
    RecordId,
    Scalar,
    Variable,
)

PLACEHOLDER_VALUE = "N/A"
"""Parameter value written until a history sample resolves it."""

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class EntityKind(StrEnum):
    POWER_STATION = "powerStation"
    GATEWAY = "gateway"
    DEVICE = "device"
    ORGANIZATION = "organization"
    PARAMETER = "parameter"
    ALARM = "alarm"


# ---------------------------------------------------------------------------
# Write operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateObject:
    """Register a container node if it does not exist yet.

    Attributes:
        path: Dot-delimited node path.
        kind: Node kind (``device``, ``folder``, ``channel`` or ``state``).
        display_name: Human readable name stored with the node.
    """

    path: str
    kind: str
    display_name: str


@dataclass(frozen=True)
class WriteValue:
    """Unconditionally write one scalar to a leaf node."""

    path: str
    value: Scalar


TreeWrite = CreateObject | WriteValue


# ---------------------------------------------------------------------------
# Path builders
# ---------------------------------------------------------------------------


def segment(value: RecordId) -> str:
    """Turn a remote identifier into a single path segment.

    Dots would split the segment and whitespace is not addressable, so both
    are replaced with ``_``. The result is a pure function of *value*.

    Raises:
        MappingError: If the identifier is empty.
    """
    text = str(value).strip()
    if not text:
        raise MappingError("path", "empty identifier")
    return "_".join(text.replace(".", "_").split())


def station_path(station_id: RecordId) -> str:
    return f"powerStations.{segment(station_id)}"


def gateway_path(gateway_id: RecordId) -> str:
    return f"gateways.{segment(gateway_id)}"


def device_path(device_id: RecordId) -> str:
    return f"devices.{segment(device_id)}"


def organization_path(org_id: RecordId) -> str:
    return f"organizations.{segment(org_id)}"


def parameter_path(device_id: RecordId, data_point_id: RecordId) -> str:
    return f"{device_path(device_id)}.parameters.{segment(data_point_id)}"


def alarm_path(hid: RecordId) -> str:
    return f"alarms.{segment(hid)}"


# ---------------------------------------------------------------------------
# Record mappers
# ---------------------------------------------------------------------------


def map_power_station(raw: dict[str, Any]) -> list[TreeWrite]:
    station = _parse(PowerStation, EntityKind.POWER_STATION, raw)
    base = station_path(station.id)
    name = _text(station.power_station_name)
    return [
        CreateObject(base, "device", name or str(station.id)),
        WriteValue(f"{base}.name", name),
        WriteValue(f"{base}.alarmStatus", station.alarm_status),
        WriteValue(f"{base}.equipmentCount", station.equipment_count),
        WriteValue(f"{base}.equipmentOnlineCount", station.equipment_online_count),
    ]


def map_gateway(raw: dict[str, Any]) -> list[TreeWrite]:
    gateway = _parse(Gateway, EntityKind.GATEWAY, raw)
    base = gateway_path(gateway.id)
    name = _text(gateway.name)
    return [
        CreateObject(base, "device", name or str(gateway.id)),
        WriteValue(f"{base}.name", name),
        WriteValue(f"{base}.serial", _text(gateway.devid)),
        WriteValue(f"{base}.onlineStatus", gateway.online_status),
        WriteValue(f"{base}.parentStationName", _text(gateway.power_station_name)),
    ]


def map_device(raw: dict[str, Any]) -> list[TreeWrite]:
    device = _parse(Device, EntityKind.DEVICE, raw)
    base = device_path(device.id)
    name = _text(device.equipment_name)
    return [
        CreateObject(base, "device", name or str(device.id)),
        WriteValue(f"{base}.name", name),
        WriteValue(f"{base}.serialNumber", _text(device.equipment_no)),
        WriteValue(f"{base}.status", device.status),
        WriteValue(f"{base}.powerStationId", device.power_station_id),
        WriteValue(f"{base}.gatewayId", device.gateway_id),
    ]


def map_organization(raw: dict[str, Any]) -> list[TreeWrite]:
    org = _parse(Organization, EntityKind.ORGANIZATION, raw)
    base = organization_path(org.id)
    name = _text(org.project_name)
    # A root organization reports no parent (or an empty one).
    parent_id = org.parent_id if org.parent_id not in (None, "") else 0
    return [
        CreateObject(base, "folder", name or str(org.id)),
        WriteValue(f"{base}.name", name),
        WriteValue(f"{base}.level", org.level),
        WriteValue(f"{base}.parentId", parent_id),
    ]


def map_parameter_registration(device_id: RecordId, raw: dict[str, Any]) -> list[TreeWrite]:
    """Register one device variable: its channel node, name and unit.

    The ``value`` and ``timestamp`` leaves are left to
    :func:`map_parameter_value`.
    """
    variable = _parse(Variable, EntityKind.PARAMETER, raw)
    base = parameter_path(device_id, variable.data_point_id)
    name = _text(variable.variable_name_c)
    return [
        CreateObject(base, "channel", name or str(variable.data_point_id)),
        WriteValue(f"{base}.name", name),
        WriteValue(f"{base}.unit", _text(variable.unit)),
    ]


def map_parameter_value(
    device_id: RecordId,
    data_point_id: RecordId,
    sample: HistorySample | None = None,
) -> list[TreeWrite]:
    """Write a parameter's ``value`` and ``timestamp`` leaves.

    Without a sample the ``value`` leaf holds :data:`PLACEHOLDER_VALUE` and the
    ``timestamp`` leaf holds ``None``.
    """
    base = parameter_path(device_id, data_point_id)
    if sample is None:
        return [
            WriteValue(f"{base}.value", PLACEHOLDER_VALUE),
            WriteValue(f"{base}.timestamp", None),
        ]
    return [
        WriteValue(f"{base}.value", sample.value),
        WriteValue(f"{base}.timestamp", sample.time),
    ]


def map_parameter(
    device_id: RecordId,
    raw: dict[str, Any],
    sample: HistorySample | None = None,
) -> list[TreeWrite]:
    """Map one device variable, resolving its value from *sample* if given.

    Args:
        device_id: Identifier of the owning device.
        raw: One entry of a variable group's ``variableList``.
        sample: Latest history sample for this data point, if any.
    """
    variable = _parse(Variable, EntityKind.PARAMETER, raw)
    return map_parameter_registration(device_id, raw) + map_parameter_value(
        device_id, variable.data_point_id, sample
    )


def map_alarm(raw: dict[str, Any]) -> list[TreeWrite]:
    alarm = _parse(Alarm, EntityKind.ALARM, raw)
    base = alarm_path(alarm.hid)
    content = _text(alarm.content)
    return [
        CreateObject(base, "state", content or str(alarm.hid)),
        WriteValue(f"{base}.content", content),
        WriteValue(f"{base}.deviceName", _text(alarm.device_name)),
        WriteValue(f"{base}.createTime", alarm.create_time),
        WriteValue(f"{base}.status", alarm.status),
    ]


_MAPPERS = {
    EntityKind.POWER_STATION: map_power_station,
    EntityKind.GATEWAY: map_gateway,
    EntityKind.DEVICE: map_device,
    EntityKind.ORGANIZATION: map_organization,
    EntityKind.ALARM: map_alarm,
}


def map_entity(kind: EntityKind, raw: dict[str, Any]) -> list[TreeWrite]:
    """Map a top-level record of the given kind.

    Parameters are nested under a device and go through
    :func:`map_parameter_registration` and :func:`map_parameter_value` instead.

    Raises:
        MappingError: If *raw* is not a valid record of *kind*.
        ValueError: If *kind* has no top-level mapper.
    """
    try:
        mapper = _MAPPERS[kind]
    except KeyError:
        raise ValueError(f"No top-level mapper for kind '{kind}'") from None
    return mapper(raw)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse(model: type[_ModelT], kind: EntityKind, raw: Any) -> _ModelT:
    """Validate *raw* as *model*, converting failures into MappingError."""
    if not isinstance(raw, dict):
        raise MappingError(kind, f"expected an object, got {type(raw).__name__}")
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise MappingError(kind, str(exc)) from exc


def _text(value: Scalar) -> str:
    """Render an optional attribute as text, ``""`` when absent."""
    if value is None:
        return ""
    return str(value)
